"""Per-candidate summary CSV source (one row per candidate, messages pipe-joined)."""

from __future__ import annotations

import csv
import io
from datetime import timedelta
from pathlib import Path
from typing import Iterable

from skills.conversation_funnel.sources.csv_source import CsvLoadResult, parse_date
from skills.conversation_funnel.types import AI_ROLE, CANDIDATE_ROLE, CandidateConversation, Message

REQUIRED_SUMMARY_COLUMNS = ["candidateId", "messages", "startTime"]
ALLOWED_DECISIONS = {"PASS", "FAIL", "NO_RESP"}
AI_PREFIX = "Assistant:"
CANDIDATE_PREFIX = "User:"


def split_messages(raw: str) -> list[str]:
    text = (raw or "").replace("\\!", "!")
    return [part.strip() for part in text.split("|") if part.strip()]


def parse_decision(raw: str) -> str | None:
    value = (raw or "").strip().upper()
    return value if value in ALLOWED_DECISIONS else None


def parse_tags(raw: str) -> list[str]:
    return [t.strip() for t in (raw or "").split(",") if t.strip()]


def _parse_duration_ms(raw: str) -> int:
    try:
        return max(0, int(float((raw or "").strip())))
    except ValueError:
        return 0


def conversation_from_row(row: dict[str, str]) -> CandidateConversation:
    """Rebuild one conversation; message times are spread evenly over ``duration`` (ms)."""
    candidate_id = (row.get("candidateId") or "").strip()
    texts = split_messages(row.get("messages") or "")
    if not candidate_id or not texts:
        raise ValueError("candidateId and messages are required")

    started = parse_date(row.get("startTime") or "")
    duration = timedelta(milliseconds=_parse_duration_ms(row.get("duration") or ""))
    step = duration / (len(texts) - 1) if len(texts) > 1 else timedelta(0)
    name = (row.get("candidateName") or "").strip() or f"Candidate {candidate_id}"

    messages: list[Message] = []
    for idx, text in enumerate(texts):
        if text.startswith(AI_PREFIX):
            role, body = AI_ROLE, text[len(AI_PREFIX):]
        else:
            role = CANDIDATE_ROLE
            body = text[len(CANDIDATE_PREFIX):] if text.startswith(CANDIDATE_PREFIX) else text
        messages.append(
            Message(
                position=idx,
                role=role,
                text=body.strip(),
                timestamp=started + step * idx,
                candidate_id=candidate_id,
                message_id=f"{candidate_id}_msg_{idx}",
                candidate_name=name,
            )
        )

    return CandidateConversation(
        candidate_id=candidate_id,
        candidate_name=name,
        messages=messages,
        decision=parse_decision(row.get("decision") or ""),
        tags=parse_tags(row.get("tags") or ""),
    )


def conversations_from_summary_rows(rows: Iterable[dict[str, str]], fieldnames: list[str]) -> CsvLoadResult:
    missing = [c for c in REQUIRED_SUMMARY_COLUMNS if c not in fieldnames]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    conversations: list[CandidateConversation] = []
    error_rows: list[int] = []
    total = 0
    for idx, row in enumerate(rows, start=2):
        total += 1
        try:
            conversations.append(conversation_from_row(row))
        except ValueError:
            error_rows.append(idx)
    return CsvLoadResult(conversations=conversations, total_rows=total, error_rows=error_rows)


def load_summary_csv_text(text: str) -> CsvLoadResult:
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    return conversations_from_summary_rows(reader, list(reader.fieldnames or []))


def load_summary_csv(csv_path: str) -> CsvLoadResult:
    path = Path(csv_path).expanduser().resolve()
    if not path.exists():
        raise ValueError(f"CSV file not found: {path}")

    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        return conversations_from_summary_rows(reader, list(reader.fieldnames or []))
