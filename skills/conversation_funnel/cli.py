"""CLI for conversation_funnel package."""

from __future__ import annotations

import argparse

from .pipeline import run
from .reporting.funnel_report import format_duration
from .types import FunnelRunResult


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(description="Run conversation funnel analysis")
    parser.add_argument("--source", choices=["csv", "summary", "sample"], required=True)
    parser.add_argument("--csv-path", help="Message-level export for --source csv, per-candidate summary for --source summary")
    parser.add_argument("--out", default="output")
    parser.add_argument("--dry-run", action="store_true", help="Classify and aggregate only; do not write files")
    parser.add_argument("--include-test-candidates", action="store_true", help="Keep candidates whose name contains 'test'")
    parser.add_argument("--debug-sample", type=int, default=0, help="Print N sampled per-message stage decisions")
    parser.add_argument("--audit", action="store_true", help="Write one-row-per-candidate audit table CSV")
    parser.add_argument("--audit-path", default="output/audit_table.csv")
    parser.add_argument("--funnel-report", action="store_true", help="Write Markdown funnel report")
    parser.add_argument("--funnel-report-path", default="output/funnel_report.md")
    parser.add_argument("--report", action="store_true", help="Write stage rule-hit report")
    parser.add_argument("--report-path", default="output/rule_report.md")
    parser.add_argument("--report-topk", type=int, default=20)
    parser.add_argument("--filter-report", action="store_true", help="Write test-candidate filter report CSV")
    parser.add_argument("--filter-report-path", default="output/debug/filter_report.csv")
    parser.add_argument("--ai-score", action="store_true", help="Score each conversation with an LLM")
    parser.add_argument("--ai-model", default="gpt-4.1-mini")
    parser.add_argument("--ai-api-key-env", default="OPENAI_API_KEY")
    parser.add_argument("--ai-base-url", default="https://api.openai.com/v1")
    parser.add_argument("--ai-max-transcript-chars", type=int, default=12000)
    parser.add_argument("--ai-scores-path", default="output/ai_scores.csv")
    return parser


def _print_summary(result: FunnelRunResult) -> None:
    s = result.summary
    print("Summary")
    print(
        f"candidates={s.total_candidates} overall_conversion_pct={s.overall_conversion_rate:.1f} "
        f"avg_time_to_decision={format_duration(s.avg_time_to_decision)}"
    )
    for stage in s.stages:
        print(
            f"{stage.stage_name}: entered={stage.candidates_entered} completed={stage.candidates_completed} "
            f"dropped={stage.candidates_dropped} conversion_pct={stage.conversion_rate:.1f} "
            f"avg_time={format_duration(stage.avg_time_in_stage)}"
        )


def main() -> None:
    parser = build_parser()
    args = parser.parse_args()

    if args.source in ("csv", "summary") and not args.csv_path:
        raise SystemExit(f"--csv-path is required with --source {args.source}")

    print("Run started.")
    result = run(
        source=args.source,
        csv_path=args.csv_path,
        out_dir=args.out,
        dry_run=args.dry_run,
        exclude_test_candidates=not args.include_test_candidates,
        debug_sample=args.debug_sample,
        audit=args.audit,
        audit_path=args.audit_path,
        funnel_report=args.funnel_report,
        funnel_report_path=args.funnel_report_path,
        report=args.report,
        report_path=args.report_path,
        report_topk=args.report_topk,
        filter_report=args.filter_report,
        filter_report_path=args.filter_report_path,
        ai_score=args.ai_score,
        ai_model=args.ai_model,
        ai_api_key_env=args.ai_api_key_env,
        ai_base_url=args.ai_base_url,
        ai_max_transcript_chars=args.ai_max_transcript_chars,
        ai_scores_path=args.ai_scores_path,
    )

    print(f"Run ID: {result.run_id}")
    _print_summary(result)
    if args.dry_run:
        print("dry_run=true (no files written)")
    else:
        print(f"funnel_metrics.json: {result.artifacts['json_path']}")
        print(f"candidate_summary.csv: {result.artifacts['candidate_summary_csv_path']}")
        if args.audit:
            print(f"audit_table.csv: {result.artifacts['audit_csv_path']}")
            print("Hint: filter audit_table.csv by decision_made=0 and group by dropped_at to see where candidates stall.")
        if args.funnel_report:
            print(f"funnel_report.md: {result.artifacts.get('funnel_report_path', '')}")
        if args.report:
            print(f"rule_report.md: {result.artifacts.get('rule_report_path', '')}")
        if args.filter_report:
            print(f"filter_report.csv: {result.artifacts.get('filter_report_csv_path', '')}")
        if args.ai_score:
            print(f"ai_scores.csv: {result.artifacts.get('ai_scores_csv_path', '')}")
    if result.debug_samples:
        print("Debug sample")
        for row in result.debug_samples:
            print(
                f"{row['date']} | {row['candidate_id']} | {row['role']} | {row['text'][:80]} | "
                f"{row['stage_type'] or ''} | {row['sub_stage'] or ''} | {row['rule_id']}"
            )
    if result.warnings:
        print("Warnings:")
        for warning in result.warnings:
            print(f"- {warning}")


if __name__ == "__main__":
    main()
