"""Sample source for local demo without a CSV export."""

from __future__ import annotations

from datetime import datetime, timedelta

from skills.conversation_funnel.sources.csv_source import group_conversations
from skills.conversation_funnel.types import AI_ROLE, CANDIDATE_ROLE, CandidateConversation, Message

_BASE = datetime(2025, 3, 3, 9, 0)

_TRANSCRIPTS: dict[tuple[str, str], list[tuple[int, str, str]]] = {
    ("c-100", "Ana Torres"): [
        (0, AI_ROLE, "Hi Ana, welcome! Thanks for joining this first conversation."),
        (2, CANDIDATE_ROLE, "Hello, happy to be here."),
        (4, AI_ROLE, "Tell me about your experience with data pipelines?"),
        (9, CANDIDATE_ROLE, "I built ingestion jobs in Airflow for three years."),
        (11, AI_ROLE, "Which cloud services did you use for them?"),
        (15, CANDIDATE_ROLE, "Mostly S3, Glue and Redshift."),
        (17, AI_ROLE, "Let's schedule your interview with our HR team. Options: 1) Monday 10:00-10:30 2) Tuesday 16:00-16:30"),
        (20, CANDIDATE_ROLE, "2"),
        (21, AI_ROLE, "Great, you have selected the time. I'll send you a calendar invitation shortly."),
    ],
    ("c-101", "Luis Gómez"): [
        (0, AI_ROLE, "¡Hola Luis! Bienvenido al proceso."),
        (1, CANDIDATE_ROLE, "Hola, gracias."),
        (3, AI_ROLE, "Cuéntame, ¿cuál es tu experiencia con Python?"),
        (8, CANDIDATE_ROLE, "Cinco años en backend."),
        (10, AI_ROLE, "Es momento de agendar una llamada de 30 minutos con el equipo de Factor Humano. Responde con el número de la opción."),
        (14, CANDIDATE_ROLE, "1"),
        (15, AI_ROLE, "Genial, has seleccionado el horario. Te enviaré una invitación al email."),
    ],
    ("c-102", "Priya Nair"): [
        (0, AI_ROLE, "Hi Priya, welcome!"),
        (3, CANDIDATE_ROLE, "Hi!"),
        (5, AI_ROLE, "What draws you to this role?"),
        (12, CANDIDATE_ROLE, "The product and the team."),
        (14, AI_ROLE, "Can you explain a tricky bug you fixed recently?"),
    ],
    ("c-103", "Sam Lee"): [
        (0, AI_ROLE, "Hello Sam, welcome aboard this quick chat."),
    ],
}


def load_sample_conversations() -> list[CandidateConversation]:
    messages: list[Message] = []
    for (candidate_id, name), turns in _TRANSCRIPTS.items():
        for idx, (minute, role, text) in enumerate(turns):
            messages.append(
                Message(
                    position=idx,
                    role=role,
                    text=text,
                    timestamp=_BASE + timedelta(minutes=minute),
                    candidate_id=candidate_id,
                    message_id=f"sample-{candidate_id}-{idx}",
                    candidate_name=name,
                )
            )
    return group_conversations(messages)
