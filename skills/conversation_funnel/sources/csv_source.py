"""CSV source adapter returning candidate conversations."""

from __future__ import annotations

import csv
import io
from dataclasses import dataclass, field
from datetime import datetime, timezone
from pathlib import Path
from typing import Iterable

from skills.conversation_funnel.types import AI_ROLE, CANDIDATE_ROLE, CandidateConversation, Message

REQUIRED_CSV_COLUMNS = ["MessageID", "CandidateID", "Entity", "Message", "Date"]

ENTITY_MAPPING = {
    "ai": AI_ROLE,
    "ai_recruiter": AI_ROLE,
    "ai_agent": AI_ROLE,
    "recruiter": AI_ROLE,
    "assistant": AI_ROLE,
    "user": CANDIDATE_ROLE,
    "candidate": CANDIDATE_ROLE,
}


@dataclass(slots=True)
class CsvLoadResult:
    conversations: list[CandidateConversation]
    total_rows: int
    error_rows: list[int] = field(default_factory=list)


def normalize_role(raw: str) -> str:
    role = ENTITY_MAPPING.get((raw or "").strip().lower())
    if not role:
        raise ValueError(f"Unknown entity: {raw!r}")
    return role


def parse_date(raw: str) -> datetime:
    """Parse ``d/m/yyyy h:mm am/pm`` export dates, falling back to ISO-8601."""
    value = (raw or "").strip()
    if not value:
        raise ValueError("empty date")
    for fmt in ("%d/%m/%Y %I:%M %p", "%d/%m/%Y %H:%M"):
        try:
            return datetime.strptime(value.upper(), fmt)
        except ValueError:
            continue
    parsed = datetime.fromisoformat(value)
    if parsed.tzinfo is not None:
        # Export dates are naive; aware values are stored as naive UTC.
        parsed = parsed.astimezone(timezone.utc).replace(tzinfo=None)
    return parsed


def group_conversations(messages: Iterable[Message]) -> list[CandidateConversation]:
    """Group messages per candidate, sort each group by time and renumber positions."""
    grouped: dict[str, list[Message]] = {}
    for msg in messages:
        grouped.setdefault(msg.candidate_id, []).append(msg)

    out: list[CandidateConversation] = []
    for candidate_id, group in grouped.items():
        group.sort(key=lambda m: m.timestamp)
        for idx, msg in enumerate(group):
            msg.position = idx
        name = next((m.candidate_name for m in group if m.candidate_name), "") or f"Candidate {candidate_id}"
        out.append(CandidateConversation(candidate_id=candidate_id, candidate_name=name, messages=group))
    return out


def conversations_from_rows(rows: Iterable[dict[str, str]], fieldnames: list[str]) -> CsvLoadResult:
    missing = [c for c in REQUIRED_CSV_COLUMNS if c not in fieldnames]
    if missing:
        raise ValueError(f"Missing required columns: {', '.join(missing)}")

    messages: list[Message] = []
    error_rows: list[int] = []
    total = 0
    # Row numbers are 1-based and count the header line.
    for idx, row in enumerate(rows, start=2):
        total += 1
        try:
            role = normalize_role(row.get("Entity") or "")
            timestamp = parse_date(row.get("Date") or "")
        except ValueError:
            error_rows.append(idx)
            continue
        candidate_id = (row.get("CandidateID") or "").strip()
        messages.append(
            Message(
                position=0,
                role=role,
                text=row.get("Message") or "",
                timestamp=timestamp,
                candidate_id=candidate_id,
                message_id=(row.get("MessageID") or "").strip(),
                candidate_name=(row.get("FullName") or "").strip(),
            )
        )

    return CsvLoadResult(conversations=group_conversations(messages), total_rows=total, error_rows=error_rows)


def load_csv_text(text: str) -> CsvLoadResult:
    reader = csv.DictReader(io.StringIO(text.lstrip("\ufeff")))
    return conversations_from_rows(reader, list(reader.fieldnames or []))


def load_csv_conversations(csv_path: str) -> CsvLoadResult:
    path = Path(csv_path).expanduser().resolve()
    if not path.exists():
        raise ValueError(f"CSV file not found: {path}")

    with path.open("r", encoding="utf-8-sig", newline="") as f:
        reader = csv.DictReader(f)
        return conversations_from_rows(reader, list(reader.fieldnames or []))
