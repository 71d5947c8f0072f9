"""Test-candidate filter applied before funnel analysis."""

from __future__ import annotations

import csv
from dataclasses import dataclass
from pathlib import Path

from skills.conversation_funnel.types import CandidateConversation

TEST_NAME_MARKERS = ("test",)


@dataclass(slots=True)
class FilterDecision:
    keep: bool
    reason: str


def is_test_candidate(conversation: CandidateConversation) -> FilterDecision:
    name = (conversation.candidate_name or "").lower()
    for marker in TEST_NAME_MARKERS:
        if marker in name:
            return FilterDecision(False, f"name_contains_{marker}")
    return FilterDecision(True, "")


def filter_test_candidates(
    conversations: list[CandidateConversation],
) -> tuple[list[CandidateConversation], list[dict[str, str]]]:
    kept: list[CandidateConversation] = []
    rows: list[dict[str, str]] = []
    for conversation in conversations:
        decision = is_test_candidate(conversation)
        if decision.keep:
            kept.append(conversation)
        rows.append(
            {
                "candidate_id": conversation.candidate_id,
                "candidate_name": conversation.candidate_name,
                "message_count": str(conversation.message_count),
                "kept_or_dropped": "kept" if decision.keep else "dropped",
                "drop_reason": decision.reason,
            }
        )
    return kept, rows


def write_filter_report(path: str, rows: list[dict[str, str]]) -> str:
    out = Path(path).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(
            f,
            fieldnames=["candidate_id", "candidate_name", "message_count", "kept_or_dropped", "drop_reason"],
        )
        writer.writeheader()
        writer.writerows(sorted(rows, key=lambda r: (r["kept_or_dropped"], r["candidate_name"].lower())))
    return str(out)


def build_filter_summary(rows: list[dict[str, str]]) -> list[str]:
    dropped = [r for r in rows if r["kept_or_dropped"] == "dropped"]
    lines = [
        "Test-candidate filter",
        f"- total candidates: {len(rows)}",
        f"- kept: {len(rows) - len(dropped)}",
        f"- removed: {len(dropped)}",
    ]
    for r in dropped:
        lines.append(f"- removed {r['candidate_name']} ({r['candidate_id']}, {r['message_count']} messages)")
    return lines
