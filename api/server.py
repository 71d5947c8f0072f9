"""Conversation funnel API server."""

from __future__ import annotations

import os
from datetime import datetime, timezone

from fastapi import FastAPI, HTTPException
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field

from skills.conversation_funnel.candidate_summary import (
    build_candidate_summary_rows,
    build_daily_conversations,
    compute_status_distribution,
)
from skills.conversation_funnel.pipeline import FunnelAnalysis, analyze_conversations
from skills.conversation_funnel.sources.csv_source import group_conversations, load_csv_text, normalize_role
from skills.conversation_funnel.types import Message


class MessageIn(BaseModel):
    candidate_id: str
    role: str
    text: str = ""
    timestamp: datetime
    candidate_name: str = ""
    message_id: str = ""


class FunnelRequest(BaseModel):
    messages: list[MessageIn] = Field(default_factory=list)
    exclude_test_candidates: bool = True
    include_candidates: bool = True


class CsvFunnelRequest(BaseModel):
    csv_text: str
    exclude_test_candidates: bool = True
    include_candidates: bool = True


app = FastAPI(title="Conversation Funnel API", version="0.1.0")

allowed_origins_raw = os.getenv("ALLOWED_ORIGINS", "*").strip()
if allowed_origins_raw == "*" or not allowed_origins_raw:
    allowed_origins = ["*"]
else:
    allowed_origins = [item.strip() for item in allowed_origins_raw.split(",") if item.strip()]

app.add_middleware(
    CORSMiddleware,
    allow_origins=allowed_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _to_messages(items: list[MessageIn]) -> list[Message]:
    messages: list[Message] = []
    for idx, item in enumerate(items):
        if not item.candidate_id.strip():
            raise HTTPException(status_code=400, detail=f"messages[{idx}].candidate_id is required")
        try:
            role = normalize_role(item.role)
        except ValueError as exc:
            raise HTTPException(status_code=400, detail=f"messages[{idx}]: {exc}") from exc
        timestamp = item.timestamp
        if timestamp.tzinfo is not None:
            timestamp = timestamp.astimezone(timezone.utc).replace(tzinfo=None)
        messages.append(
            Message(
                position=0,
                role=role,
                text=item.text,
                timestamp=timestamp,
                candidate_id=item.candidate_id.strip(),
                message_id=item.message_id,
                candidate_name=item.candidate_name.strip(),
            )
        )
    return messages


def _response(analysis: FunnelAnalysis, include_candidates: bool) -> dict[str, object]:
    summary = analysis.summary
    details = summary.to_dict()
    summary_rows = build_candidate_summary_rows(analysis.conversations, summary.candidate_details)
    payload: dict[str, object] = {
        "total_candidates": summary.total_candidates,
        "overall_conversion_rate": summary.overall_conversion_rate,
        "avg_time_to_decision": summary.avg_time_to_decision,
        "stages": details["stages"],
        "status_distribution": compute_status_distribution(summary_rows),
        "daily_conversations": build_daily_conversations(analysis.conversations),
        "removed_test_candidates": [r["candidate_id"] for r in analysis.filter_rows if r["kept_or_dropped"] == "dropped"],
        "warnings": analysis.warnings,
    }
    if include_candidates:
        payload["candidates"] = details["candidate_details"]
    return payload


@app.get("/health")
def health() -> dict[str, str]:
    return {"status": "ok"}


@app.post("/api/funnel")
def funnel_from_messages(payload: FunnelRequest) -> dict[str, object]:
    if not payload.messages:
        raise HTTPException(status_code=400, detail="messages must not be empty")
    conversations = group_conversations(_to_messages(payload.messages))
    analysis = analyze_conversations(conversations, exclude_test_candidates=payload.exclude_test_candidates)
    return _response(analysis, payload.include_candidates)


@app.post("/api/funnel/csv")
def funnel_from_csv(payload: CsvFunnelRequest) -> dict[str, object]:
    if not payload.csv_text.strip():
        raise HTTPException(status_code=400, detail="csv_text must not be empty")
    try:
        loaded = load_csv_text(payload.csv_text)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    if not loaded.conversations:
        raise HTTPException(status_code=400, detail="CSV contains no readable messages")

    analysis = analyze_conversations(loaded.conversations, exclude_test_candidates=payload.exclude_test_candidates)
    body = _response(analysis, payload.include_candidates)
    body["skipped_rows"] = loaded.error_rows
    return body
