"""Markdown funnel report built from a FunnelSummary."""

from __future__ import annotations

from pathlib import Path

from skills.conversation_funnel.reporting.rule_hit_report import _md_table
from skills.conversation_funnel.types import FunnelSummary


def format_duration(seconds: float) -> str:
    total = int(max(seconds, 0))
    minutes, secs = divmod(total, 60)
    hours, mins = divmod(minutes, 60)
    days, hrs = divmod(hours, 24)
    if days > 0:
        return f"{days}d {hrs}h"
    if hours > 0:
        return f"{hours}h {mins}m"
    if minutes > 0:
        return f"{minutes}m {secs}s"
    return f"{secs}s"


def _pct(value: float) -> str:
    return f"{value:.1f}%"


def build_funnel_report(summary: FunnelSummary, run_meta: dict[str, str] | None = None, slowest: int = 5) -> str:
    meta = run_meta or {}
    lines: list[str] = ["# Conversation Funnel Report", ""]

    decided = sum(1 for c in summary.candidate_details if c.decision_made)
    lines.extend(
        [
            "## Overview",
            f"- run_id: **{meta.get('run_id', '')}**",
            f"- source: **{meta.get('source', '')}**",
            f"- total_candidates: **{summary.total_candidates}**",
            f"- decisions_reached: **{decided}**",
            f"- overall_conversion_rate: **{_pct(summary.overall_conversion_rate)}**",
            f"- avg_time_to_decision: **{format_duration(summary.avg_time_to_decision)}**",
            "",
        ]
    )

    stage_rows = [
        [
            s.stage_name,
            str(s.candidates_entered),
            str(s.candidates_completed),
            str(s.candidates_dropped),
            _pct(s.conversion_rate),
            format_duration(s.avg_time_in_stage),
        ]
        for s in summary.stages
    ]
    lines.extend(
        [
            "## Stages",
            _md_table(["stage", "entered", "completed", "dropped", "conversion", "avg_time"], stage_rows),
            "",
        ]
    )

    transition_rows: list[list[str]] = []
    for prev, cur in zip(summary.stages, summary.stages[1:]):
        lost = prev.candidates_entered - cur.candidates_entered
        reach = (cur.candidates_entered / prev.candidates_entered * 100) if prev.candidates_entered else 0.0
        transition_rows.append([f"{prev.stage_name} -> {cur.stage_name}", str(lost), _pct(reach)])
    lines.extend(["## Stage-to-stage drop-off", _md_table(["transition", "lost", "reached_next"], transition_rows), ""])

    interview = next((s for s in summary.stages if s.sub_stages), None)
    lines.append("## Interview questions")
    if interview is None:
        lines.extend(["_No interview questions recorded._", ""])
    else:
        sub_rows = [
            [
                q.stage_name,
                str(q.candidates_entered),
                str(q.candidates_completed),
                str(q.candidates_dropped),
                _pct(q.conversion_rate),
                format_duration(q.avg_time_in_stage),
            ]
            for q in interview.sub_stages or []
        ]
        lines.extend([_md_table(["question", "entered", "answered", "dropped", "conversion", "avg_time"], sub_rows), ""])

    drop_counts: dict[str, int] = {}
    for c in summary.candidate_details:
        if c.dropped_at:
            drop_counts[c.dropped_at] = drop_counts.get(c.dropped_at, 0) + 1
    drop_rows = [
        [name, str(count), _pct(count / summary.total_candidates * 100 if summary.total_candidates else 0.0)]
        for name, count in sorted(drop_counts.items(), key=lambda x: (-x[1], x[0]))
    ]
    lines.extend(["## Drop-off points", _md_table(["dropped_at", "candidates", "pct"], drop_rows), ""])

    ranked = sorted(summary.candidate_details, key=lambda c: (-c.total_duration, c.candidate_id))[:slowest]
    slow_rows = [
        [c.candidate_name, c.candidate_id, format_duration(c.total_duration), c.current_stage, "yes" if c.decision_made else "no"]
        for c in ranked
    ]
    lines.extend(["## Slowest conversations", _md_table(["candidate", "id", "duration", "current_stage", "decided"], slow_rows), ""])

    return "\n".join(lines)


def write_funnel_report(path: str, markdown: str) -> str:
    out = Path(path).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(markdown, encoding="utf-8")
    return str(out)
