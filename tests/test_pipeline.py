import csv
import json

import pytest

import skills.conversation_funnel.ai_scoring as ai_scoring
import skills.conversation_funnel.pipeline as pipeline
from skills.conversation_funnel.cli import build_parser
from skills.conversation_funnel.pipeline import analyze_conversations, run
from skills.conversation_funnel.sources.sample_source import load_sample_conversations

CSV_TEXT = """MessageID,CandidateID,Entity,Message,Date,FullName
1,10,AI_RECRUITER,"Hi Marta, welcome!",3/3/2025 9:00 am,Marta Ruiz
2,10,USER,Hi,3/3/2025 9:02 am,Marta Ruiz
3,10,AI_RECRUITER,Let's schedule your interview with the HR team,3/3/2025 9:04 am,Marta Ruiz
4,10,USER,1,3/3/2025 9:06 am,Marta Ruiz
5,10,AI_RECRUITER,"Great, you have selected the time",3/3/2025 9:07 am,Marta Ruiz
6,11,AI_RECRUITER,"Hello, welcome!",4/3/2025 10:00 am,Test Account
7,11,USER,hey,4/3/2025 10:01 am,Test Account
8,12,AI_RECRUITER,"Hello Omar, welcome!",4/3/2025 11:00 am,Omar Haddad
9,12,USER,Hi,someday,Omar Haddad
"""

SUMMARY_TEXT = """candidateId,candidateName,messageCount,startTime,duration,messages,decision,tags
20,Rosa Diaz,6,3/3/2025 9:00 am,600000,Assistant: Hi Rosa | User: Hi | Assistant: Tell me about your experience? | User: Five years | Assistant: Thanks | User: Bye,FAIL,backend
21,Empty Row,0,3/3/2025 9:00 am,0,,PASS,
"""


def test_run_sample_writes_outputs(tmp_path, capsys):
    out_dir = tmp_path / "out"
    result = run(
        source="sample",
        out_dir=str(out_dir),
        audit=True,
        audit_path=str(out_dir / "audit.csv"),
        funnel_report=True,
        funnel_report_path=str(out_dir / "funnel.md"),
        report=True,
        report_path=str(out_dir / "rules.md"),
    )

    assert result.summary.total_candidates == 4
    assert result.warnings == []
    payload = json.loads((out_dir / "funnel_metrics.json").read_text(encoding="utf-8"))
    assert payload["run_id"] == result.run_id
    assert payload["summary"]["overall_conversion_rate"] == 50.0
    assert payload["status_distribution"] == {"approved": 2, "rejected": 1, "no_response": 1}
    assert payload["daily_conversations"][0]["count"] == 4

    with open(out_dir / "audit.csv", encoding="utf-8", newline="") as f:
        audit_rows = list(csv.DictReader(f))
    assert len(audit_rows) == 4
    assert (out_dir / "candidate_summary.csv").exists()
    assert result.artifacts["funnel_report_path"].endswith("funnel.md")
    assert "# Stage Rule-Hit Report" in (out_dir / "rules.md").read_text(encoding="utf-8")
    assert "Candidate summary" in capsys.readouterr().out


def test_run_dry_run_writes_nothing(tmp_path):
    out_dir = tmp_path / "out"
    result = run(
        source="sample",
        out_dir=str(out_dir),
        dry_run=True,
        audit=True,
        audit_path=str(out_dir / "audit.csv"),
        report=True,
        report_path=str(out_dir / "rules.md"),
        debug_sample=3,
    )
    assert not out_dir.exists()
    assert len(result.debug_samples) == 3
    assert {"rule_id", "candidate_id", "stage_type"} <= set(result.debug_samples[0])


def test_run_csv_filters_test_candidates_and_warns(tmp_path):
    csv_path = tmp_path / "export.csv"
    csv_path.write_text(CSV_TEXT, encoding="utf-8")
    out_dir = tmp_path / "out"

    result = run(
        source="csv",
        csv_path=str(csv_path),
        out_dir=str(out_dir),
        filter_report=True,
        filter_report_path=str(out_dir / "filter.csv"),
    )

    ids = [c.candidate_id for c in result.summary.candidate_details]
    assert sorted(ids) == ["10", "12"]
    assert result.summary.overall_conversion_rate == 50.0
    assert any("skipped 1 CSV rows" in w and "rows 10" in w for w in result.warnings)
    assert (out_dir / "filter.csv").exists()


def test_run_csv_can_keep_test_candidates(tmp_path):
    csv_path = tmp_path / "export.csv"
    csv_path.write_text(CSV_TEXT, encoding="utf-8")
    result = run(source="csv", csv_path=str(csv_path), dry_run=True, exclude_test_candidates=False)
    assert result.summary.total_candidates == 3


def test_run_requires_csv_path():
    with pytest.raises(ValueError, match="csv_path is required"):
        run(source="csv", dry_run=True)


def test_run_rejects_unknown_source():
    with pytest.raises(ValueError, match="Unsupported source"):
        run(source="xlsx", dry_run=True)  # type: ignore[arg-type]


def test_run_with_ai_scoring_overrides_status(tmp_path, monkeypatch):
    def fake_score(**kwargs):
        rows = [
            {"candidate_id": c.candidate_id, "candidate_name": c.candidate_name, "status": "FAIL", "sentiment": "neutral"}
            for c in kwargs["conversations"]
        ]
        return rows, []

    monkeypatch.setattr(pipeline, "score_conversations_with_llm", fake_score)
    out_dir = tmp_path / "out"
    result = run(source="sample", out_dir=str(out_dir), ai_score=True, ai_scores_path=str(out_dir / "ai.csv"))

    payload = json.loads((out_dir / "funnel_metrics.json").read_text(encoding="utf-8"))
    assert payload["status_distribution"] == {"approved": 0, "rejected": 4, "no_response": 0}
    assert result.artifacts["ai_scores_csv_path"].endswith("ai.csv")
    assert "low-approval-rate" in [i["id"] for i in payload["insights"]]


def test_run_keeps_going_when_one_candidate_fails_scoring(tmp_path, monkeypatch):
    monkeypatch.setenv("OPENAI_API_KEY", "sk-test")
    replies = iter(
        [
            {"output_text": '{"status": "PASS", "sentiment": "positive"}'},
            {"output_text": "Sorry, I cannot evaluate this."},
            {"output_text": '{"status": "FAIL", "sentiment": "neutral"}'},
            {"output_text": '{"status": "NO_RESP", "sentiment": "neutral"}'},
        ]
    )
    monkeypatch.setattr(ai_scoring, "llm_call", lambda feature, **kwargs: next(replies))
    out_dir = tmp_path / "out"

    result = run(source="sample", out_dir=str(out_dir), ai_score=True, ai_scores_path=str(out_dir / "ai.csv"))

    payload = json.loads((out_dir / "funnel_metrics.json").read_text(encoding="utf-8"))
    assert payload["status_distribution"] == {"approved": 1, "rejected": 1, "no_response": 2}
    assert any("AI scoring failed for 1 candidates" in w and "c-101" in w for w in result.warnings)
    assert payload["warnings"] == result.warnings
    with open(out_dir / "ai.csv", encoding="utf-8", newline="") as f:
        ai_rows = {r["candidate_id"]: r for r in csv.DictReader(f)}
    assert ai_rows["c-101"]["status"] == "NO_RESP"
    assert ai_rows["c-101"]["summary"].startswith("Analysis failed")


def test_run_summary_source_uses_explicit_decisions(tmp_path):
    csv_path = tmp_path / "summary.csv"
    csv_path.write_text(SUMMARY_TEXT, encoding="utf-8")
    out_dir = tmp_path / "out"

    result = run(source="summary", csv_path=str(csv_path), out_dir=str(out_dir))

    assert result.summary.total_candidates == 1
    assert any("skipped 1 CSV rows with missing id, messages or start time" in w for w in result.warnings)
    with open(out_dir / "candidate_summary.csv", encoding="utf-8", newline="") as f:
        rows = list(csv.DictReader(f))
    assert rows[0]["status"] == "FAIL"
    assert rows[0]["status_source"] == "explicit_decision"
    assert rows[0]["tags"] == "backend"


def test_run_writes_insights(tmp_path, capsys):
    out_dir = tmp_path / "out"
    run(source="sample", out_dir=str(out_dir))

    payload = json.loads((out_dir / "funnel_metrics.json").read_text(encoding="utf-8"))
    forecast = next(i for i in payload["insights"] if i["id"] == "weekly-prediction")
    assert forecast["data"]["predicted_approvals"] == 2
    assert "Weekly Hiring Forecast" in capsys.readouterr().out


def test_analyze_conversations_reports_filtered_rows():
    conversations = load_sample_conversations()
    conversations[0].candidate_name = "Test Ana"
    analysis = analyze_conversations(conversations)

    assert analysis.summary.total_candidates == 3
    assert [r["candidate_id"] for r in analysis.filter_rows if r["kept_or_dropped"] == "dropped"] == ["c-100"]
    assert len(analysis.decisions) == sum(c.message_count for c in analysis.conversations)


def test_cli_parser_flags():
    args = build_parser().parse_args(["--source", "csv", "--csv-path", "x.csv", "--include-test-candidates", "--ai-score"])
    assert args.source == "csv"
    assert args.csv_path == "x.csv"
    assert args.include_test_candidates is True
    assert args.ai_score is True
    assert args.report_topk == 20
