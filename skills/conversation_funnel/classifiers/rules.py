"""Bilingual pattern tables for funnel stage detection.

Each stage owns an ordered table of ``StageRule`` entries. Tables are plain
data; the order in which they are consulted lives in ``classifiers.stages``.
"""

from __future__ import annotations

import re
from dataclasses import dataclass


@dataclass(frozen=True, slots=True)
class StageRule:
    rule_id: str
    pattern: re.Pattern[str]

    def matches(self, text: str) -> bool:
        return self.pattern.search(text) is not None


def _table(stage: str, entries: list[tuple[str, str] | tuple[str, str, int]]) -> tuple[StageRule, ...]:
    rules: list[StageRule] = []
    for entry in entries:
        name, regex = entry[0], entry[1]
        flags = entry[2] if len(entry) > 2 else re.IGNORECASE
        rules.append(StageRule(rule_id=f"{stage}:{name}", pattern=re.compile(regex, flags)))
    return tuple(rules)


INTERVIEW_RULES = _table(
    "interview",
    [
        ("skills_experience", r"experience|project|skills|worked with|proficient|comfortable with|familiar with"),
        ("approach", r"how do you|what.*approach|describe.*time|can you explain"),
        ("motivation", r"interested|why.*company|what.*draws you|what.*motivates"),
        ("behavioral", r"tell me about a time|give me an example|describe a situation"),
    ],
)

SCHEDULING_RULES = _table(
    "scheduling",
    [
        # AI proposes concrete slots for the HR interview.
        ("schedule_call", r"momento.*agendar.*llamada|time.*schedule.*call"),
        ("call_duration", r"llamada.*\d+.*minutos|call.*\d+.*minutes"),
        ("hr_team", r"equipo.*factor.*humano|equipo.*HR|HR.*team|human.*resources"),
        ("slots_available", r"horarios.*que.*tenemos|slots.*available|times.*available"),
        ("these_are_the_times", r"estos.*son.*los.*horarios|these.*are.*the.*times"),
        ("date_dd_mm_yyyy", r"\d{1,2}/\d{1,2}/\d{4}", 0),
        ("time_range", r"\d{1,2}:\d{2}\s*a\s*\d{1,2}:\d{2}", 0),
        ("timezone", r"hora.*de.*CDMX|hora.*de.*\w+|timezone"),
        ("reply_with_number", r"responde.*con.*el.*número|respond.*with.*number"),
        ("option_that_works", r"opción.*que.*te.*funciona|option.*that.*works"),
        ("numbered_example", r"ej\.\s*1.*2.*3.*4|e\.g\.\s*1.*2.*3.*4"),
        ("available_times", r"available.*slots?|available.*times?|following.*dates?|following.*times?"),
        ("schedule_interview", r"schedule.*interview|book.*interview|arrange.*meeting|set.*up.*interview"),
        ("weekday_en", r"Monday|Tuesday|Wednesday|Thursday|Friday|Saturday|Sunday"),
        ("weekday_es", r"Lunes|Martes|Miércoles|Jueves|Viernes|Sábado|Domingo"),
        ("time_of_day", r"\d{1,2}:\d{2}\s*(am|pm|AM|PM)|morning|afternoon|evening"),
        ("confirm_slot", r"please.*confirm|let.*know.*works|choose.*slot|select.*time"),
        ("please_respond", r"por.*favor.*responde|please.*respond"),
        # Looser phrasings kept for older transcripts that never list slots.
        ("in_touch", r"we'll.*be.*in.*touch|we.*will.*contact.*you"),
        ("get_back", r"get.*back.*to.*you|reach.*out.*soon"),
        ("next_steps", r"next.*steps|moving.*forward"),
    ],
)

COMPLETION_RULES = _table(
    "completed",
    [
        ("slot_selected", r"genial.*has.*seleccionado.*horario|great.*you.*selected.*time"),
        ("selected_the_time", r"has.*seleccionado.*el.*horario|you.*have.*selected.*the.*time"),
        ("interview_with_team", r"tu.*entrevista.*con.*el.*equipo|your.*interview.*with.*team"),
        ("proceed_to_schedule", r"voy.*a.*proceder.*a.*agendar|going.*to.*proceed.*schedule"),
        ("proceed_schedule", r"proceder.*a.*agendar|proceed.*to.*schedule"),
        ("send_invitation", r"te.*enviaré.*una.*invitación|send.*you.*invitation"),
        ("invitation_email", r"enviaré.*invitación.*email|send.*invitation.*email"),
        ("successfully_scheduled", r"agendada.*exitosamente|successfully.*scheduled"),
        ("interview_confirmed", r"confirmada.*tu.*entrevista|confirmed.*your.*interview"),
        ("calendar_invitation", r"invitación.*calendario|calendar.*invitation"),
        ("see_you_soon", r"nos.*vemos.*pronto.*entrevista|see.*you.*soon.*interview"),
        ("thanks_for_confirming", r"gracias.*por.*confirmar|thanks.*for.*confirming"),
        ("invitation_to_email", r"invitación.*al.*email|invitation.*to.*email"),
        ("receive_confirmation", r"recibirás.*confirmación|receive.*confirmation"),
        ("meeting_scheduled", r"meeting.*scheduled|reunión.*agendada"),
        ("appointment_confirmed", r"appointment.*confirmed|cita.*confirmada"),
        ("interview_scheduled", r"interview.*scheduled|entrevista.*agendada"),
        ("booking_confirmed", r"booking.*confirmed|reserva.*confirmada"),
        ("see_you_at_interview", r"see.*you.*at.*interview|nos.*vemos.*en.*entrevista"),
    ],
)

NEXT_STEP_COMPANIONS = ("step", "interview", "round")


def match_rule(rules: tuple[StageRule, ...], text: str) -> StageRule | None:
    for rule in rules:
        if rule.matches(text):
            return rule
    return None


def match_completion(text: str) -> str | None:
    rule = match_rule(COMPLETION_RULES, text)
    return rule.rule_id if rule else None


def match_scheduling(text: str) -> str | None:
    rule = match_rule(SCHEDULING_RULES, text)
    return rule.rule_id if rule else None


def match_interview(text: str) -> str | None:
    rule = match_rule(INTERVIEW_RULES, text)
    return rule.rule_id if rule else None


def has_next_step_hint(text: str) -> bool:
    """Lenient scheduling hint: "next" alongside step/interview/round."""
    lowered = (text or "").lower()
    return "next" in lowered and any(word in lowered for word in NEXT_STEP_COMPANIONS)


def has_question(text: str) -> bool:
    return "?" in (text or "")
