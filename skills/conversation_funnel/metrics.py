"""Compute per-stage funnel metrics from classified candidates and provide audit rows."""

from __future__ import annotations

import re
from collections import Counter
from dataclasses import dataclass, field
from typing import Optional

from skills.conversation_funnel.types import (
    STAGE_NAMES,
    STAGE_ORDER,
    CandidateFunnelResult,
    FunnelStageMetrics,
    FunnelSummary,
    StageEvent,
)

MAX_SUB_STAGE_QUESTION = 10
SUB_STAGE_RE = re.compile(r"^2\.(\d+)$")

AUDIT_COLUMNS = [
    "candidate_id",
    "candidate_name",
    "event_count",
    "synthetic_events",
    "engagement_events",
    "interview_events",
    "scheduling_events",
    "completed_events",
    "stage_path",
    "current_stage",
    "decision_made",
    "decision_type",
    "decision_timestamp",
    "total_duration_seconds",
    "dropped_at",
]


@dataclass(slots=True)
class StageAccumulator:
    entered: set[str] = field(default_factory=set)
    completed: set[str] = field(default_factory=set)
    dropped: set[str] = field(default_factory=set)
    times: list[float] = field(default_factory=list)
    sub_stages: dict[str, StageAccumulator] = field(default_factory=dict)

    def sub_stage(self, label: str) -> StageAccumulator:
        if label not in self.sub_stages:
            self.sub_stages[label] = StageAccumulator()
        return self.sub_stages[label]


def _rate(num: int, den: int) -> float:
    return (num / den * 100.0) if den else 0.0


def _mean(values: list[float]) -> float:
    return sum(values) / len(values) if values else 0.0


def stage_id_for(name: str) -> str:
    return re.sub(r"\s+", "_", name.lower())


def _bucket_name(event: StageEvent) -> str:
    return STAGE_NAMES.get(event.stage_type, event.name)


def _dropped_target(result: CandidateFunnelResult) -> tuple[Optional[str], Optional[str]]:
    """Resolve ``dropped_at`` to a canonical bucket and, for questions, its sub-stage."""
    for event in reversed(result.stages):
        if event.name == result.dropped_at:
            return _bucket_name(event), event.sub_stage
    if result.dropped_at in STAGE_NAMES.values():
        return result.dropped_at, None
    return None, None


def accumulate(results: list[CandidateFunnelResult]) -> dict[str, StageAccumulator]:
    buckets = {STAGE_NAMES[t]: StageAccumulator() for t in STAGE_ORDER}

    for result in results:
        cid = result.candidate_id
        previous: Optional[StageEvent] = None
        for event in result.stages:
            # Synthetic events are inferred, not observed: no entry, completion or timing.
            if event.synthetic:
                continue
            bucket = buckets.get(_bucket_name(event))
            if bucket is None:
                continue

            bucket.entered.add(cid)
            if event.completed:
                bucket.completed.add(cid)
            if event.sub_stage:
                sub = bucket.sub_stage(event.sub_stage)
                sub.entered.add(cid)
                if event.completed:
                    sub.completed.add(cid)

            if previous is not None:
                # Dwell belongs to the stage the candidate was in before this event.
                elapsed = (event.timestamp - previous.timestamp).total_seconds()
                if elapsed > 0:
                    prev_bucket = buckets[_bucket_name(previous)]
                    prev_bucket.times.append(elapsed)
                    if previous.sub_stage:
                        prev_bucket.sub_stage(previous.sub_stage).times.append(elapsed)
            previous = event

        if result.dropped_at:
            bucket_name, sub_label = _dropped_target(result)
            if bucket_name in buckets:
                buckets[bucket_name].dropped.add(cid)
                if sub_label:
                    buckets[bucket_name].sub_stage(sub_label).dropped.add(cid)

    return buckets


def _metrics_from(name: str, stage_id: str, acc: StageAccumulator) -> FunnelStageMetrics:
    entered = len(acc.entered)
    completed = len(acc.completed)
    return FunnelStageMetrics(
        stage_name=name,
        stage_id=stage_id,
        candidates_entered=entered,
        candidates_completed=completed,
        candidates_dropped=len(acc.dropped),
        conversion_rate=_rate(completed, entered),
        avg_time_in_stage=_mean(acc.times),
    )


def _sub_stage_metrics(acc: StageAccumulator) -> list[FunnelStageMetrics]:
    rows: list[FunnelStageMetrics] = []
    for label, sub in acc.sub_stages.items():
        m = SUB_STAGE_RE.match(label)
        if not m:
            continue
        number = int(m.group(1))
        if number < 1 or number > MAX_SUB_STAGE_QUESTION:
            continue
        row = _metrics_from(f"Question {number}", label, sub)
        row.question_number = number
        rows.append(row)
    rows.sort(key=lambda r: r.question_number or 0)
    return rows


def calculate_funnel_metrics(results: list[CandidateFunnelResult]) -> list[FunnelStageMetrics]:
    buckets = accumulate(results)
    out: list[FunnelStageMetrics] = []
    for stage_type in STAGE_ORDER:
        name = STAGE_NAMES[stage_type]
        acc = buckets[name]
        metrics = _metrics_from(name, stage_id_for(name), acc)
        if stage_type == "interview":
            sub_rows = _sub_stage_metrics(acc)
            metrics.sub_stages = sub_rows or None
        out.append(metrics)
    return out


def build_funnel_summary(results: list[CandidateFunnelResult]) -> FunnelSummary:
    decided = [r for r in results if r.decision_made]
    decision_times = [r.total_duration for r in decided if r.total_duration > 0]
    return FunnelSummary(
        total_candidates=len(results),
        stages=calculate_funnel_metrics(results),
        overall_conversion_rate=_rate(len(decided), len(results)),
        avg_time_to_decision=_mean(decision_times),
        candidate_details=list(results),
    )


def _stage_path(events: list[StageEvent]) -> str:
    parts: list[str] = []
    for event in events:
        label = event.stage_type + ("*" if event.synthetic else "")
        if parts and parts[-1].split(" x")[0] == label:
            head, _, count = parts[-1].partition(" x")
            parts[-1] = f"{head} x{int(count or 1) + 1}"
        else:
            parts.append(label)
    return ">".join(parts)


def build_audit_rows(results: list[CandidateFunnelResult]) -> list[dict[str, str]]:
    rows: list[dict[str, str]] = []
    for result in results:
        by_type = Counter(e.stage_type for e in result.stages)
        row = {c: "" for c in AUDIT_COLUMNS}
        row["candidate_id"] = result.candidate_id
        row["candidate_name"] = result.candidate_name
        row["event_count"] = str(len(result.stages))
        row["synthetic_events"] = str(sum(1 for e in result.stages if e.synthetic))
        for stage_type in STAGE_ORDER:
            row[f"{stage_type}_events"] = str(by_type.get(stage_type, 0))
        row["stage_path"] = _stage_path(result.stages)
        row["current_stage"] = result.current_stage
        row["decision_made"] = "1" if result.decision_made else "0"
        row["decision_type"] = result.decision_type or ""
        row["decision_timestamp"] = result.decision_timestamp.isoformat() if result.decision_timestamp else ""
        row["total_duration_seconds"] = f"{result.total_duration:.0f}"
        row["dropped_at"] = result.dropped_at or ""
        rows.append(row)

    rows.sort(key=lambda r: (r["candidate_name"].lower(), r["candidate_id"]))
    return rows


def _out_of_order_candidates(results: list[CandidateFunnelResult]) -> list[str]:
    bad: list[str] = []
    for result in results:
        real = [e for e in result.stages if not e.synthetic]
        if any(b.timestamp < a.timestamp for a, b in zip(real, real[1:])):
            bad.append(result.candidate_id)
    return bad


def compute_funnel(results: list[CandidateFunnelResult]) -> tuple[FunnelSummary, list[str], list[dict[str, str]]]:
    warnings: list[str] = []
    summary = build_funnel_summary(results)
    rows = build_audit_rows(results)

    # Per-stage conservation check.
    bad_stages = [s.stage_name for s in summary.stages if s.candidates_completed > s.candidates_entered]
    if bad_stages:
        warnings.append(f"completed/entered consistency issue for stages: {', '.join(bad_stages)}")

    unordered = _out_of_order_candidates(results)
    if unordered:
        warnings.append(f"out-of-order timestamps for {len(unordered)} candidates; negative dwell times were skipped")

    return summary, warnings, rows
