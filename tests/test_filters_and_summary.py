import csv
from datetime import datetime, timedelta

from skills.conversation_funnel.candidate_summary import (
    basic_status,
    build_candidate_console_summary,
    build_candidate_summary_rows,
    build_daily_conversations,
    compute_status_distribution,
    write_candidate_summary_csv,
)
from skills.conversation_funnel.classifiers.stages import classify_conversations
from skills.conversation_funnel.filters import build_filter_summary, filter_test_candidates, write_filter_report
from skills.conversation_funnel.sources.sample_source import load_sample_conversations
from skills.conversation_funnel.types import AI_ROLE, CANDIDATE_ROLE, CandidateConversation, Message

BASE = datetime(2025, 3, 3, 9, 0)


def _conv(cid: str, name: str, n_messages: int, day: int = 0, decision: str | None = None) -> CandidateConversation:
    messages = [
        Message(
            position=i,
            role=AI_ROLE if i % 2 == 0 else CANDIDATE_ROLE,
            text="hello",
            timestamp=BASE + timedelta(days=day, minutes=i * 2),
            candidate_id=cid,
        )
        for i in range(n_messages)
    ]
    return CandidateConversation(candidate_id=cid, candidate_name=name, messages=messages, decision=decision)


def test_filter_removes_names_containing_test():
    convs = [_conv("1", "Ana Torres", 3), _conv("2", "QA Test User", 2), _conv("3", "TESTER", 1)]
    kept, rows = filter_test_candidates(convs)

    assert [c.candidate_id for c in kept] == ["1"]
    dropped = [r for r in rows if r["kept_or_dropped"] == "dropped"]
    assert {r["candidate_id"] for r in dropped} == {"2", "3"}
    assert all(r["drop_reason"] == "name_contains_test" for r in dropped)


def test_filter_report_and_summary(tmp_path):
    _, rows = filter_test_candidates([_conv("1", "Ana", 3), _conv("2", "test", 1)])
    path = write_filter_report(str(tmp_path / "debug" / "filter.csv"), rows)

    with open(path, encoding="utf-8", newline="") as f:
        written = list(csv.DictReader(f))
    assert [r["kept_or_dropped"] for r in written] == ["dropped", "kept"]

    lines = build_filter_summary(rows)
    assert "- removed: 1" in lines
    assert "- removed test (2, 1 messages)" in lines


def test_basic_status_by_message_count():
    assert basic_status(_conv("1", "a", 2)) == ("NO_RESP", "message_count")
    assert basic_status(_conv("1", "a", 3)) == ("FAIL", "message_count")
    assert basic_status(_conv("1", "a", 6)) == ("PASS", "message_count")
    assert basic_status(_conv("1", "a", 1, decision="PASS")) == ("PASS", "explicit_decision")


def test_summary_rows_join_funnel_results_and_ai_status():
    conversations = load_sample_conversations()
    results = classify_conversations(conversations)
    ai_rows = [{"candidate_id": "c-103", "status": "FAIL"}]

    rows = build_candidate_summary_rows(conversations, results, ai_rows)
    by_id = {r["candidate_id"]: r for r in rows}

    assert by_id["c-100"]["status"] == "PASS"
    assert by_id["c-100"]["decision_made"] == "1"
    assert by_id["c-102"]["dropped_at"] == "Interview Question 2"
    assert by_id["c-103"]["status"] == "FAIL"
    assert by_id["c-103"]["status_source"] == "ai_scoring"
    assert compute_status_distribution(rows) == {"approved": 2, "rejected": 2, "no_response": 0}


def test_daily_conversations_grouped_by_start_date():
    convs = [_conv("1", "Ana", 2, day=1), _conv("2", "Luis", 2, day=0), _conv("3", "Priya", 2, day=1)]
    daily = build_daily_conversations(convs)
    assert daily == [
        {"date": "2025-03-03", "count": 1, "candidates": ["Luis"]},
        {"date": "2025-03-04", "count": 2, "candidates": ["Ana", "Priya"]},
    ]


def test_write_candidate_summary_csv_and_console(tmp_path):
    convs = [_conv("1", "Ana", 6), _conv("2", "Luis", 1)]
    rows = build_candidate_summary_rows(convs, classify_conversations(convs))
    path = write_candidate_summary_csv(str(tmp_path / "summary.csv"), rows)

    with open(path, encoding="utf-8", newline="") as f:
        written = list(csv.DictReader(f))
    assert [r["status"] for r in written] == ["PASS", "NO_RESP"]

    lines = build_candidate_console_summary(rows, convs)
    assert lines[0] == "Candidate summary"
    assert "- candidates: 2 (messages: 7)" in lines
    assert "- approved: 1 (50.0%)" in lines
