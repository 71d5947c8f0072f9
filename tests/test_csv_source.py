from datetime import datetime

import pytest

from skills.conversation_funnel.sources.csv_source import (
    load_csv_conversations,
    load_csv_text,
    normalize_role,
    parse_date,
)

CSV_TEXT = """MessageID,CandidateID,Entity,Message,Date,FullName
m3,42,USER,"Yes, happy to chat",3/3/2025 9:05 am,Ana Torres
m1,42,AI_RECRUITER,"Hi Ana, welcome!",3/3/2025 9:00 am,Ana Torres
m2,7,AI_RECRUITER,Hello there,4/3/2025 2:15 PM,
m4,42,AI_RECRUITER,"Tell me about your experience?",3/3/2025 9:06 am,Ana Torres
"""


def test_parse_date_day_first_with_meridiem():
    assert parse_date("3/4/2025 1:07 pm") == datetime(2025, 4, 3, 13, 7)
    assert parse_date("03/04/2025 12:00 AM") == datetime(2025, 4, 3, 0, 0)


def test_parse_date_falls_back_to_iso():
    assert parse_date("2025-04-03T13:07:00") == datetime(2025, 4, 3, 13, 7)
    assert parse_date("2025-04-03T13:07:00+02:00") == datetime(2025, 4, 3, 11, 7)


def test_parse_date_rejects_garbage():
    with pytest.raises(ValueError):
        parse_date("yesterday")
    with pytest.raises(ValueError):
        parse_date("")


def test_normalize_role_mapping():
    assert normalize_role("AI_RECRUITER") == "AI_AGENT"
    assert normalize_role(" user ") == "CANDIDATE"
    with pytest.raises(ValueError):
        normalize_role("bot")


def test_load_csv_text_groups_and_sorts_per_candidate():
    loaded = load_csv_text(CSV_TEXT)

    assert loaded.total_rows == 4
    assert loaded.error_rows == []
    by_id = {c.candidate_id: c for c in loaded.conversations}
    ana = by_id["42"]
    assert ana.candidate_name == "Ana Torres"
    assert [m.message_id for m in ana.messages] == ["m1", "m3", "m4"]
    assert [m.position for m in ana.messages] == [0, 1, 2]
    assert ana.messages[0].is_ai
    assert by_id["7"].candidate_name == "Candidate 7"


def test_load_csv_text_skips_unreadable_rows():
    text = CSV_TEXT + "m5,42,ROBOT,hmm,3/3/2025 9:10 am,Ana Torres\nm6,42,USER,ok,not a date,Ana Torres\n"
    loaded = load_csv_text(text)
    assert loaded.total_rows == 6
    assert loaded.error_rows == [6, 7]


def test_missing_columns_raise():
    with pytest.raises(ValueError, match="Missing required columns: Entity, Date"):
        load_csv_text("MessageID,CandidateID,Message\nm1,1,hi\n")


def test_load_csv_conversations_from_file(tmp_path):
    path = tmp_path / "export.csv"
    path.write_text("\ufeff" + CSV_TEXT, encoding="utf-8")
    loaded = load_csv_conversations(str(path))
    assert len(loaded.conversations) == 2


def test_load_csv_conversations_missing_file(tmp_path):
    with pytest.raises(ValueError, match="CSV file not found"):
        load_csv_conversations(str(tmp_path / "nope.csv"))


def test_load_csv_text_accepts_byte_order_mark():
    loaded = load_csv_text("\ufeff" + CSV_TEXT)
    assert loaded.error_rows == []
    assert sorted(c.candidate_id for c in loaded.conversations) == ["42", "7"]
