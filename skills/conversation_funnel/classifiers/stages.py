"""Sequential funnel-stage classifier for a single candidate conversation."""

from __future__ import annotations

from dataclasses import dataclass, replace
from typing import Optional

from skills.conversation_funnel.classifiers.rules import (
    has_next_step_hint,
    has_question,
    match_completion,
    match_interview,
    match_scheduling,
)
from skills.conversation_funnel.types import (
    STAGE_NAMES,
    CandidateConversation,
    CandidateFunnelResult,
    Message,
    StageEvent,
)

MAX_INTERVIEW_QUESTIONS = 10
LATE_QUESTION_COUNT = 5
LATE_POSITION_RATIO = 0.7
FALLBACK_MIN_MESSAGES = 4

# Internal states; "scheduling_responded" is only reachable after a candidate
# replies to a scheduling proposal and is the sole state that checks completion.
STATE_START = "start"
STATE_ENGAGEMENT = "engagement"
STATE_INTERVIEW = "interview"
STATE_SCHEDULING = "scheduling"
STATE_SCHEDULING_RESPONDED = "scheduling_responded"
STATE_COMPLETED = "completed"


@dataclass(frozen=True, slots=True)
class ClassifierState:
    stage: str = STATE_START
    questions_asked: int = 0
    scheduling_proposed: bool = False
    process_completed: bool = False


@dataclass(slots=True)
class StageDecisionRow:
    candidate_id: str
    position: int
    date: str
    role: str
    text: str
    emitted: bool
    stage_type: Optional[str]
    sub_stage: Optional[str]
    rule_id: str
    synthetic: bool = False


@dataclass(slots=True)
class StageClassification:
    result: CandidateFunnelResult
    decisions: list[StageDecisionRow]


def _event(stage_type: str, event_id: str, msg: Message, *, completed: bool = False, synthetic: bool = False) -> StageEvent:
    return StageEvent(
        id=event_id,
        name=STAGE_NAMES[stage_type],
        stage_type=stage_type,
        timestamp=msg.timestamp,
        message=msg.text,
        completed=completed,
        synthetic=synthetic,
    )


def _is_late(state: ClassifierState, index: int, total: int) -> bool:
    return state.questions_asked >= LATE_QUESTION_COUNT or index > total * LATE_POSITION_RATIO


def ai_step(state: ClassifierState, msg: Message, index: int, total: int) -> tuple[ClassifierState, Optional[StageEvent], str]:
    """Advance the state machine on an AI message.

    Returns the new state, the emitted event (if any) and the id of the rule
    that decided the outcome. Checks run in fixed priority order: first-message
    engagement, completion, scheduling, interview.
    """
    text = msg.text or ""

    if state.stage == STATE_START:
        return replace(state, stage=STATE_ENGAGEMENT), _event("engagement", f"engagement_{index}", msg), "engagement:first_ai_message"

    if state.stage == STATE_SCHEDULING_RESPONDED and not state.process_completed:
        completion_rule = match_completion(text)
        if completion_rule:
            event = _event("completed", f"completed_{index}", msg, completed=True)
            return replace(state, stage=STATE_COMPLETED, process_completed=True), event, completion_rule

    if not state.scheduling_proposed:
        scheduling_rule = match_scheduling(text)
        if not scheduling_rule and has_next_step_hint(text) and _is_late(state, index, total):
            scheduling_rule = "scheduling:late_next_step"
        if scheduling_rule:
            event = _event("scheduling", f"scheduling_{index}", msg)
            return replace(state, stage=STATE_SCHEDULING, scheduling_proposed=True), event, scheduling_rule

    interview_rule = match_interview(text)
    question = has_question(text)
    rule_id = ""
    if state.stage == STATE_ENGAGEMENT and interview_rule:
        rule_id = interview_rule
    elif state.stage == STATE_INTERVIEW and question:
        rule_id = "interview:question_mark"
    elif state.stage == STATE_ENGAGEMENT and question and index > 0:
        rule_id = "interview:question_mark"

    if not rule_id:
        return state, None, "ignore:no_match"
    if state.questions_asked >= MAX_INTERVIEW_QUESTIONS:
        return state, None, "ignore:question_cap_reached"

    number = state.questions_asked + 1
    event = StageEvent(
        id=f"interview_{number}",
        name=f"Interview Question {number}",
        stage_type="interview",
        timestamp=msg.timestamp,
        message=text,
        sub_stage=f"2.{number}",
    )
    return replace(state, stage=STATE_INTERVIEW, questions_asked=number), event, rule_id


def candidate_step(state: ClassifierState, events: list[StageEvent]) -> tuple[ClassifierState, str]:
    """Advance the state machine on a candidate reply and close the open event."""
    rule_id = "reply:no_open_stage"
    if state.stage == STATE_SCHEDULING and state.scheduling_proposed:
        state = replace(state, stage=STATE_SCHEDULING_RESPONDED)
        rule_id = "reply:scheduling_response"

    if events and events[-1].stage_type != "completed":
        # A reply always closes out the preceding AI stage.
        events[-1].completed = True
        if rule_id == "reply:no_open_stage":
            rule_id = "reply:closes_stage"
    return state, rule_id


def _last_by_role(messages: list[Message], ai: bool) -> Optional[Message]:
    for msg in reversed(messages):
        if msg.is_ai == ai:
            return msg
    return None


def implicit_events(messages: list[Message]) -> list[tuple[StageEvent, str]]:
    """Infer scheduling/completion from the closing turns of a conversation."""
    last_ai = _last_by_role(messages, ai=True)
    last_candidate = _last_by_role(messages, ai=False)
    if last_ai is None or last_candidate is None:
        return []

    scheduling_rule = match_scheduling(last_ai.text or "")
    if not scheduling_rule:
        return []

    out = [(_event("scheduling", "scheduling_implicit", last_ai, completed=True, synthetic=True), scheduling_rule)]
    completion_rule = match_completion(last_candidate.text or "")
    if completion_rule:
        out.append((_event("completed", "completed_implicit", last_candidate, completed=True, synthetic=True), completion_rule))
    return out


def _decision_row(conversation: CandidateConversation, msg: Message, event: Optional[StageEvent], rule_id: str) -> StageDecisionRow:
    return StageDecisionRow(
        candidate_id=conversation.candidate_id,
        position=msg.position,
        date=msg.timestamp.isoformat(),
        role=msg.role,
        text=(msg.text or "")[:160],
        emitted=event is not None,
        stage_type=event.stage_type if event else None,
        sub_stage=event.sub_stage if event else None,
        rule_id=rule_id,
        synthetic=bool(event and event.synthetic),
    )


def build_result(conversation: CandidateConversation, events: list[StageEvent]) -> CandidateFunnelResult:
    messages = conversation.messages
    decision_event = next((e for e in events if e.stage_type == "completed"), None)
    total_duration = (messages[-1].timestamp - messages[0].timestamp).total_seconds() if messages else 0.0

    last = events[-1] if events else None
    dropped_at = None
    if decision_event is None:
        # Stalled candidates drop at their last observed (non-synthetic) stage.
        last_real = next((e for e in reversed(events) if not e.synthetic), last)
        dropped_at = last_real.name if last_real else None

    return CandidateFunnelResult(
        candidate_id=conversation.candidate_id,
        candidate_name=conversation.candidate_name,
        stages=events,
        current_stage=last.name if last else "Unknown",
        decision_made=decision_event is not None,
        decision_type="PASS" if decision_event else None,
        decision_timestamp=decision_event.timestamp if decision_event else None,
        total_duration=total_duration,
        dropped_at=dropped_at,
    )


def classify_conversation_with_meta(conversation: CandidateConversation) -> StageClassification:
    messages = conversation.messages
    total = len(messages)
    events: list[StageEvent] = []
    decisions: list[StageDecisionRow] = []
    state = ClassifierState()

    for index, msg in enumerate(messages):
        event: Optional[StageEvent] = None
        if msg.is_ai:
            state, event, rule_id = ai_step(state, msg, index, total)
            if event is not None:
                events.append(event)
        else:
            state, rule_id = candidate_step(state, events)
        decisions.append(_decision_row(conversation, msg, event, rule_id))

    if not state.scheduling_proposed and total > FALLBACK_MIN_MESSAGES:
        for event, rule_id in implicit_events(messages):
            events.append(event)
            source = _last_by_role(messages, ai=event.stage_type == "scheduling")
            decisions.append(_decision_row(conversation, source, event, f"implicit:{rule_id}"))

    return StageClassification(result=build_result(conversation, events), decisions=decisions)


def classify_conversation(conversation: CandidateConversation) -> CandidateFunnelResult:
    return classify_conversation_with_meta(conversation).result


def classify_conversations(conversations: list[CandidateConversation]) -> list[CandidateFunnelResult]:
    return [classify_conversation(c) for c in conversations]
