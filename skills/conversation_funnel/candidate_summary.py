"""Per-candidate summary table and batch statistics that need no LLM."""

from __future__ import annotations

import csv
from collections import Counter
from pathlib import Path

from skills.conversation_funnel.types import CandidateConversation, CandidateFunnelResult

STATUS_ORDER = ("PASS", "FAIL", "NO_RESP")
MIN_RESPONSIVE_MESSAGES = 3
PASS_MESSAGE_COUNT = 6

SUMMARY_COLUMNS = [
    "candidate_id",
    "candidate_name",
    "status",
    "status_source",
    "message_count",
    "started_at",
    "duration_seconds",
    "current_stage",
    "decision_made",
    "dropped_at",
    "tags",
]


def basic_status(conversation: CandidateConversation) -> tuple[str, str]:
    if conversation.decision in STATUS_ORDER:
        return str(conversation.decision), "explicit_decision"
    if conversation.message_count < MIN_RESPONSIVE_MESSAGES:
        return "NO_RESP", "message_count"
    if conversation.message_count >= PASS_MESSAGE_COUNT:
        return "PASS", "message_count"
    return "FAIL", "message_count"


def build_candidate_summary_rows(
    conversations: list[CandidateConversation],
    results: list[CandidateFunnelResult],
    ai_rows: list[dict[str, str]] | None = None,
) -> list[dict[str, str]]:
    by_id = {r.candidate_id: r for r in results}
    ai_status = {r["candidate_id"]: r["status"] for r in (ai_rows or []) if r.get("status")}

    rows: list[dict[str, str]] = []
    for conversation in conversations:
        status, source = basic_status(conversation)
        if conversation.candidate_id in ai_status:
            status, source = ai_status[conversation.candidate_id], "ai_scoring"
        funnel = by_id.get(conversation.candidate_id)
        started = conversation.started_at
        rows.append(
            {
                "candidate_id": conversation.candidate_id,
                "candidate_name": conversation.candidate_name,
                "status": status,
                "status_source": source,
                "message_count": str(conversation.message_count),
                "started_at": started.isoformat() if started else "",
                "duration_seconds": f"{conversation.duration_seconds:.0f}",
                "current_stage": funnel.current_stage if funnel else "",
                "decision_made": "1" if funnel and funnel.decision_made else "0",
                "dropped_at": (funnel.dropped_at or "") if funnel else "",
                "tags": ", ".join(conversation.tags),
            }
        )

    rows.sort(key=lambda r: (r["started_at"], r["candidate_id"]))
    return rows


def compute_status_distribution(rows: list[dict[str, str]]) -> dict[str, int]:
    counts = Counter(r["status"] for r in rows)
    return {
        "approved": counts.get("PASS", 0),
        "rejected": counts.get("FAIL", 0),
        "no_response": counts.get("NO_RESP", 0),
    }


def build_daily_conversations(conversations: list[CandidateConversation]) -> list[dict[str, object]]:
    daily: dict[str, list[str]] = {}
    for conversation in conversations:
        started = conversation.started_at
        if started is None:
            continue
        daily.setdefault(started.date().isoformat(), []).append(conversation.candidate_name)
    return [
        {"date": day, "count": len(names), "candidates": names}
        for day, names in sorted(daily.items())
    ]


def write_candidate_summary_csv(path: str, rows: list[dict[str, str]]) -> str:
    out = Path(path).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=SUMMARY_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    return str(out)


def build_candidate_console_summary(rows: list[dict[str, str]], conversations: list[CandidateConversation]) -> list[str]:
    dist = compute_status_distribution(rows)
    total = len(rows)
    total_messages = sum(c.message_count for c in conversations)
    durations = [c.duration_seconds for c in conversations]
    avg_minutes = round(sum(durations) / len(durations) / 60) if durations else 0

    def pct(n: int) -> str:
        return f"{(n / total * 100):.1f}%" if total else "0.0%"

    return [
        "Candidate summary",
        f"- candidates: {total} (messages: {total_messages})",
        f"- approved: {dist['approved']} ({pct(dist['approved'])})",
        f"- rejected: {dist['rejected']}",
        f"- no_response: {dist['no_response']}",
        f"- response rate: {pct(dist['approved'] + dist['rejected'])}",
        f"- average conversation duration: {avg_minutes} minutes",
    ]
