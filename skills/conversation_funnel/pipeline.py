"""Main conversation funnel orchestrator."""

from __future__ import annotations

import csv
import json
import random
from dataclasses import asdict, dataclass, field
from datetime import date, datetime, timezone
from pathlib import Path
from typing import Any, Optional

from .ai_scoring import (
    build_ai_console_summary,
    build_score_summary,
    score_conversations_with_llm,
    write_ai_scores_csv,
)
from .candidate_summary import (
    build_candidate_console_summary,
    build_candidate_summary_rows,
    build_daily_conversations,
    compute_status_distribution,
    write_candidate_summary_csv,
)
from .classifiers.stages import StageDecisionRow, classify_conversation_with_meta
from .filters import build_filter_summary, filter_test_candidates, write_filter_report
from .insights import build_insights, build_insights_console_summary
from .metrics import AUDIT_COLUMNS, compute_funnel
from .reporting.funnel_report import build_funnel_report, write_funnel_report
from .reporting.rule_hit_report import build_rule_hit_report, write_rule_hit_report
from .sources.csv_source import load_csv_conversations
from .sources.sample_source import load_sample_conversations
from .sources.summary_csv_source import load_summary_csv
from .types import CandidateConversation, FunnelRunResult, FunnelSummary, SourceType


@dataclass(slots=True)
class FunnelAnalysis:
    conversations: list[CandidateConversation]
    summary: FunnelSummary
    warnings: list[str]
    audit_rows: list[dict[str, str]]
    decisions: list[StageDecisionRow]
    filter_rows: list[dict[str, str]] = field(default_factory=list)


def _run_id() -> str:
    return datetime.now(timezone.utc).strftime("%Y%m%dT%H%M%SZ")


def _json_default(value: Any) -> str:
    if isinstance(value, (datetime, date)):
        return value.isoformat()
    raise TypeError(f"Object of type {type(value).__name__} is not JSON serializable")


def _date_range(conversations: list[CandidateConversation]) -> str:
    starts = [c.started_at for c in conversations if c.started_at]
    ends = [c.ended_at for c in conversations if c.ended_at]
    if not starts or not ends:
        return ""
    return f"{min(starts).date().isoformat()}..{max(ends).date().isoformat()}"


def analyze_conversations(
    conversations: list[CandidateConversation],
    exclude_test_candidates: bool = True,
) -> FunnelAnalysis:
    """Filter, classify and aggregate a batch of grouped conversations."""
    filter_rows: list[dict[str, str]] = []
    if exclude_test_candidates:
        conversations, filter_rows = filter_test_candidates(conversations)

    results = []
    decisions: list[StageDecisionRow] = []
    for conversation in conversations:
        classification = classify_conversation_with_meta(conversation)
        results.append(classification.result)
        decisions.extend(classification.decisions)

    summary, warnings, audit_rows = compute_funnel(results)
    return FunnelAnalysis(
        conversations=conversations,
        summary=summary,
        warnings=warnings,
        audit_rows=audit_rows,
        decisions=decisions,
        filter_rows=filter_rows,
    )


def _save_metrics_json(path: Path, result: FunnelRunResult, extras: dict[str, Any]) -> None:
    payload = {
        "run_id": result.run_id,
        "summary": result.summary.to_dict(),
        "warnings": result.warnings,
        **extras,
    }
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(json.dumps(payload, indent=2, default=_json_default), encoding="utf-8")


def _save_audit_csv(path: Path, rows: list[dict[str, str]]) -> None:
    path.parent.mkdir(parents=True, exist_ok=True)
    with path.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=AUDIT_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)


def run(
    source: SourceType,
    csv_path: Optional[str] = None,
    out_dir: str = "output",
    dry_run: bool = False,
    exclude_test_candidates: bool = True,
    debug_sample: int = 0,
    audit: bool = False,
    audit_path: str = "output/audit_table.csv",
    funnel_report: bool = False,
    funnel_report_path: str = "output/funnel_report.md",
    report: bool = False,
    report_path: str = "output/rule_report.md",
    report_topk: int = 20,
    filter_report: bool = False,
    filter_report_path: str = "output/debug/filter_report.csv",
    ai_score: bool = False,
    ai_model: str = "gpt-4.1-mini",
    ai_api_key_env: str = "OPENAI_API_KEY",
    ai_base_url: str = "https://api.openai.com/v1",
    ai_max_transcript_chars: int = 12000,
    ai_scores_path: str = "output/ai_scores.csv",
) -> FunnelRunResult:
    skipped_rows: list[int] = []
    if source == "sample":
        conversations = load_sample_conversations()
    elif source in ("csv", "summary"):
        if not csv_path:
            raise ValueError(f"csv_path is required for source='{source}'")
        loaded = load_csv_conversations(csv_path) if source == "csv" else load_summary_csv(csv_path)
        conversations = loaded.conversations
        skipped_rows = loaded.error_rows
    else:
        raise ValueError(f"Unsupported source: {source}")

    analysis = analyze_conversations(conversations, exclude_test_candidates=exclude_test_candidates)
    warnings = list(analysis.warnings)
    if skipped_rows:
        preview = ", ".join(str(n) for n in skipped_rows[:10])
        more = "..." if len(skipped_rows) > 10 else ""
        reason = "unreadable role or date" if source == "csv" else "missing id, messages or start time"
        warnings.append(f"skipped {len(skipped_rows)} CSV rows with {reason} (rows {preview}{more})")

    run_id = _run_id()
    out = Path(out_dir).expanduser().resolve()
    metrics_path = out / "funnel_metrics.json"
    summary_csv_path = out / "candidate_summary.csv"
    audit_csv_path = Path(audit_path).expanduser().resolve()

    debug_rows: list[dict[str, Any]] = []
    if debug_sample > 0 and analysis.decisions:
        picked = random.sample(analysis.decisions, k=min(debug_sample, len(analysis.decisions)))
        debug_rows = [asdict(d) for d in picked]

    result = FunnelRunResult(
        run_id=run_id,
        summary=analysis.summary,
        artifacts={
            "json_path": str(metrics_path),
            "candidate_summary_csv_path": str(summary_csv_path),
            "audit_csv_path": str(audit_csv_path) if audit else "",
        },
        warnings=warnings,
        debug_samples=debug_rows,
    )

    ai_rows: list[dict[str, str]] | None = None
    if ai_score and not dry_run:
        ai_rows, failed_ids = score_conversations_with_llm(
            conversations=analysis.conversations,
            model=ai_model,
            api_key_env=ai_api_key_env,
            base_url=ai_base_url,
            max_transcript_chars=ai_max_transcript_chars,
        )
        if failed_ids:
            preview = ", ".join(failed_ids[:10])
            more = "..." if len(failed_ids) > 10 else ""
            warnings.append(f"AI scoring failed for {len(failed_ids)} candidates, treated as NO_RESP ({preview}{more})")
        result.artifacts["ai_scores_csv_path"] = write_ai_scores_csv(ai_scores_path, ai_rows)
        for line in build_ai_console_summary(build_score_summary(ai_rows)):
            print(line)

    summary_rows = build_candidate_summary_rows(analysis.conversations, analysis.summary.candidate_details, ai_rows)
    daily = build_daily_conversations(analysis.conversations)
    insights = build_insights(summary_rows, daily, ai_rows)

    if not dry_run:
        _save_metrics_json(
            metrics_path,
            result,
            {
                "status_distribution": compute_status_distribution(summary_rows),
                "daily_conversations": daily,
                "insights": insights,
            },
        )
        write_candidate_summary_csv(str(summary_csv_path), summary_rows)
        if audit:
            _save_audit_csv(audit_csv_path, analysis.audit_rows)
    for line in build_candidate_console_summary(summary_rows, analysis.conversations):
        print(line)
    for line in build_insights_console_summary(insights):
        print(line)

    run_meta = {"run_id": run_id, "source": source, "date_range": _date_range(analysis.conversations)}

    if filter_report and exclude_test_candidates and not dry_run:
        result.artifacts["filter_report_csv_path"] = write_filter_report(filter_report_path, analysis.filter_rows)
        for line in build_filter_summary(analysis.filter_rows):
            print(line)

    if funnel_report and not dry_run:
        md = build_funnel_report(analysis.summary, run_meta=run_meta)
        result.artifacts["funnel_report_path"] = write_funnel_report(funnel_report_path, md)

    if report and not dry_run:
        md = build_rule_hit_report(analysis.decisions, topk=report_topk, run_meta=run_meta)
        result.artifacts["rule_report_path"] = write_rule_hit_report(report_path, md)

    return result
