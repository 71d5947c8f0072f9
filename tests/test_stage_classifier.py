from datetime import datetime, timedelta

from skills.conversation_funnel.classifiers.stages import (
    ClassifierState,
    ai_step,
    candidate_step,
    classify_conversation,
    classify_conversation_with_meta,
)
from skills.conversation_funnel.types import AI_ROLE, CANDIDATE_ROLE, CandidateConversation, Message, StageEvent

BASE = datetime(2025, 3, 3, 9, 0)


def _conv(turns: list[tuple[str, str]], candidate_id: str = "c1", minutes: list[int] | None = None) -> CandidateConversation:
    messages = []
    for idx, (role, text) in enumerate(turns):
        minute = minutes[idx] if minutes else idx
        messages.append(
            Message(
                position=idx,
                role=role,
                text=text,
                timestamp=BASE + timedelta(minutes=minute),
                candidate_id=candidate_id,
            )
        )
    return CandidateConversation(candidate_id=candidate_id, candidate_name="Jane Doe", messages=messages)


def _ai(text: str) -> tuple[str, str]:
    return AI_ROLE, text


def _cand(text: str) -> tuple[str, str]:
    return CANDIDATE_ROLE, text


def test_greeting_and_reply_drops_at_engagement():
    result = classify_conversation(_conv([_ai("Hi, welcome!"), _cand("Thanks")]))

    assert [e.stage_type for e in result.stages] == ["engagement"]
    assert result.stages[0].completed is True
    assert result.decision_made is False
    assert result.dropped_at == "AI Engagement"
    assert result.current_stage == "AI Engagement"


def test_scheduling_then_completion_reaches_decision():
    conv = _conv(
        [
            _ai("Hi, welcome!"),
            _cand("Hello"),
            _ai("Let's schedule your interview: Monday 10:00-10:30 CDMX"),
            _cand("2"),
            _ai("Great, you've selected a time, I'll send a calendar invite"),
        ]
    )
    result = classify_conversation(conv)

    types = [e.stage_type for e in result.stages]
    assert types.count("scheduling") == 1
    assert types.count("completed") == 1
    assert result.decision_made is True
    assert result.decision_type == "PASS"
    assert result.decision_timestamp == BASE + timedelta(minutes=4)
    assert result.dropped_at is None
    assert result.current_stage == "Completed"


def test_interview_questions_are_capped_at_ten():
    turns = [_ai("Hello and welcome to the process")]
    turns += [_ai(f"Question {n}: what would you do with input {n}?") for n in range(1, 13)]
    with_meta = classify_conversation_with_meta(_conv(turns))
    interview = [e for e in with_meta.result.stages if e.stage_type == "interview"]

    assert len(interview) == 10
    assert [e.sub_stage for e in interview] == [f"2.{n}" for n in range(1, 11)]
    assert interview[-1].name == "Interview Question 10"
    assert [d.rule_id for d in with_meta.decisions[-2:]] == ["ignore:question_cap_reached"] * 2


def test_first_ai_message_is_engagement_regardless_of_text():
    result = classify_conversation(_conv([_ai("Let's schedule your interview with the HR team"), _cand("ok")]))
    assert result.stages[0].stage_type == "engagement"


def test_classification_is_deterministic():
    conv = _conv(
        [
            _ai("Welcome aboard"),
            _cand("Hi"),
            _ai("Tell me about a project you led"),
            _cand("Sure"),
            _ai("Why do you want this?"),
        ]
    )
    first = classify_conversation(conv)
    second = classify_conversation(conv)
    assert [(e.stage_type, e.completed, e.sub_stage) for e in first.stages] == [
        (e.stage_type, e.completed, e.sub_stage) for e in second.stages
    ]


def test_candidate_reply_closes_previous_interview_question():
    result = classify_conversation(
        _conv(
            [
                _ai("Welcome aboard"),
                _cand("Hi"),
                _ai("Tell me about your experience"),
                _cand("Five years"),
                _ai("Why do you want this?"),
            ]
        )
    )
    interview = [e for e in result.stages if e.stage_type == "interview"]
    assert [e.completed for e in interview] == [True, False]
    assert result.dropped_at == "Interview Question 2"


def test_completion_requires_candidate_response_to_scheduling():
    result = classify_conversation(
        _conv(
            [
                _ai("Welcome aboard"),
                _cand("Hi"),
                _ai("Let's schedule your interview: Monday 10:00"),
                _ai("Great, you've selected a time"),
            ]
        )
    )
    assert [e.stage_type for e in result.stages] == ["engagement", "scheduling"]
    assert result.decision_made is False
    assert result.dropped_at == "HR Interview Scheduling"


def test_scheduling_is_proposed_at_most_once():
    result = classify_conversation(
        _conv(
            [
                _ai("Welcome aboard"),
                _cand("Hi"),
                _ai("Let's schedule your interview: Monday 10:00"),
                _cand("Can we do another day"),
                _ai("Sure, Tuesday 11:00 works too"),
            ]
        )
    )
    assert [e.stage_type for e in result.stages].count("scheduling") == 1


def test_late_next_step_hint_triggers_scheduling():
    turns = [_ai("Welcome aboard"), _cand("Hi")]
    for n in range(5):
        turns += [_ai(f"Question {n}, why?"), _cand("Because")]
    turns.append(_ai("You made it to the next round, congrats"))
    with_meta = classify_conversation_with_meta(_conv(turns))

    assert with_meta.result.stages[-1].stage_type == "scheduling"
    assert with_meta.decisions[-1].rule_id == "scheduling:late_next_step"


def test_next_step_hint_ignored_early_in_conversation():
    turns = [
        _ai("Welcome aboard"),
        _cand("Hi"),
        _ai("Before the next round, one thing"),
        _cand("ok"),
        _ai("a"),
        _ai("b"),
        _ai("c"),
        _ai("d"),
    ]
    result = classify_conversation(_conv(turns))
    assert "scheduling" not in [e.stage_type for e in result.stages]


def test_implicit_fallback_adds_synthetic_events():
    # Later AI turns are checked for scheduling in the main pass, so the
    # fallback only sees a transcript whose sole AI turn is the greeting.
    conv = _conv(
        [
            _ai("Hi! Thanks for applying, we will contact you"),
            _cand("Hi"),
            _cand("Any update?"),
            _cand("Hello?"),
            _cand("Thanks for confirming, see you then"),
        ]
    )
    with_meta = classify_conversation_with_meta(conv)
    result = with_meta.result
    synthetic = [e for e in result.stages if e.synthetic]

    assert [e.id for e in synthetic] == ["scheduling_implicit", "completed_implicit"]
    assert all(e.completed for e in synthetic)
    assert result.decision_made is True
    assert result.dropped_at is None
    assert with_meta.decisions[-2].rule_id == "implicit:scheduling:in_touch"
    assert with_meta.decisions[-1].rule_id == "implicit:completed:thanks_for_confirming"


def test_implicit_fallback_skipped_for_short_conversations():
    conv = _conv(
        [
            _ai("Hi! We will contact you"),
            _cand("ok"),
            _cand("ok"),
            _cand("Thanks for confirming"),
        ]
    )
    result = classify_conversation(conv)
    assert not any(e.synthetic for e in result.stages)
    assert result.dropped_at == "AI Engagement"


def test_unsorted_timestamps_keep_list_order():
    conv = _conv(
        [_ai("Welcome aboard"), _cand("Hi"), _ai("Tell me about your experience")],
        minutes=[10, 5, 7],
    )
    result = classify_conversation(conv)
    assert [e.stage_type for e in result.stages] == ["engagement", "interview"]
    assert result.stages[1].timestamp < result.stages[0].timestamp


def test_empty_conversation():
    result = classify_conversation(CandidateConversation(candidate_id="c0", candidate_name="Nobody"))
    assert result.stages == []
    assert result.current_stage == "Unknown"
    assert result.total_duration == 0.0
    assert result.dropped_at is None


def test_completion_always_preceded_by_scheduling():
    convs = [
        _conv([_ai("Hi"), _cand("Hi"), _ai("Let's schedule your interview"), _cand("1"), _ai("Interview scheduled!")]),
        _conv([_ai("Hi, we will contact you"), _cand("hi"), _cand("ok"), _cand("sure"), _cand("Thanks for confirming")]),
    ]
    for conv in convs:
        result = classify_conversation(conv)
        assert result.decision_made
        types = [e.stage_type for e in result.stages]
        assert "scheduling" in types[: types.index("completed")]


def test_ai_step_transitions():
    msg = Message(position=0, role=AI_ROLE, text="hello", timestamp=BASE, candidate_id="c1")
    state, event, rule_id = ai_step(ClassifierState(), msg, 0, 3)
    assert state.stage == "engagement"
    assert event is not None and event.id == "engagement_0"
    assert rule_id == "engagement:first_ai_message"

    state, event, rule_id = ai_step(state, msg, 1, 3)
    assert event is None
    assert rule_id == "ignore:no_match"


def test_candidate_step_moves_scheduling_to_responded():
    open_event = StageEvent(id="scheduling_2", name="HR Interview Scheduling", stage_type="scheduling", timestamp=BASE, message="")
    state, rule_id = candidate_step(ClassifierState(stage="scheduling", scheduling_proposed=True), [open_event])
    assert state.stage == "scheduling_responded"
    assert rule_id == "reply:scheduling_response"
    assert open_event.completed is True


def test_candidate_step_without_events():
    state, rule_id = candidate_step(ClassifierState(), [])
    assert state == ClassifierState()
    assert rule_id == "reply:no_open_stage"
