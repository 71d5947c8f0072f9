"""LLM-based candidate scoring over full conversation transcripts."""

from __future__ import annotations

import csv
import json
import os
import re
from collections import Counter
from pathlib import Path

from app.utils.llm_client import llm_call
from skills.conversation_funnel.types import CandidateConversation

ALLOWED_STATUSES = {"PASS", "FAIL", "NO_RESP"}
ALLOWED_SENTIMENTS = {"positive", "neutral", "negative"}
DIMENSIONS = (
    "technical_experience",
    "logical_reasoning",
    "ai_adoption",
    "cultural_fit",
    "communication_clarity",
    "engagement",
    "professionalism",
)
AI_SCORE_COLUMNS = [
    "candidate_id",
    "candidate_name",
    "status",
    "sentiment",
    *DIMENSIONS,
    "summary",
    "strengths",
    "concerns",
]


def _require_api_key(env_var: str) -> str:
    key = os.environ.get(env_var, "").strip()
    if not key:
        raise ValueError(f"Missing API key in environment variable: {env_var}")
    return key


def _extract_json_object(text: str) -> dict[str, object]:
    s = text.strip()
    if s.startswith("```"):
        s = re.sub(r"^```[a-zA-Z0-9_-]*\n?", "", s)
        s = re.sub(r"\n?```$", "", s)
    try:
        return json.loads(s)
    except json.JSONDecodeError:
        match = re.search(r"\{.*\}", s, flags=re.DOTALL)
        if not match:
            raise
        return json.loads(match.group(0))


def _extract_llm_text(data: dict[str, object]) -> str:
    """Support both Responses API output and legacy chat-completions shape."""
    output_text = data.get("output_text")
    if isinstance(output_text, str) and output_text.strip():
        return output_text

    output = data.get("output")
    if isinstance(output, list):
        chunks: list[str] = []
        for item in output:
            if not isinstance(item, dict):
                continue
            content = item.get("content")
            if not isinstance(content, list):
                continue
            for part in content:
                if isinstance(part, dict) and isinstance(part.get("text"), str):
                    chunks.append(part["text"])
        if chunks:
            return "\n".join(chunks)

    choices = data.get("choices")
    if isinstance(choices, list) and choices and isinstance(choices[0], dict):
        return str(choices[0].get("message", {}).get("content", ""))
    return ""


def _clamp_score(value: object) -> int:
    try:
        score = float(value)  # type: ignore[arg-type]
    except (TypeError, ValueError):
        return 0
    return int(round(max(0.0, min(100.0, score))))


def _join_list(value: object) -> str:
    if isinstance(value, list):
        return "; ".join(str(v).strip() for v in value if str(v).strip())
    return str(value or "").strip()


def format_transcript(conversation: CandidateConversation, max_chars: int) -> str:
    lines = [
        f"[{m.timestamp.isoformat()}] {'AI' if m.is_ai else 'CANDIDATE'}: {m.text}"
        for m in conversation.messages
    ]
    text = "\n".join(lines)
    return text[:max_chars]


def _llm_score_single_conversation(
    *,
    conversation: CandidateConversation,
    model: str,
    api_key: str,
    base_url: str,
    max_transcript_chars: int,
    timeout_sec: int,
) -> dict[str, str]:
    payload = {
        "candidate_name": conversation.candidate_name,
        "message_count": conversation.message_count,
        "duration_minutes": round(conversation.duration_seconds / 60),
        "transcript": format_transcript(conversation, max_transcript_chars),
    }

    system_prompt = (
        "You are an HR analyst reviewing a screening chat between an AI recruiter and a candidate. "
        "Return only a JSON object with keys: "
        "status (PASS|FAIL|NO_RESP), sentiment (positive|neutral|negative), "
        f"scores (object with integer 0..100 values for {', '.join(DIMENSIONS)}), "
        "summary (string, 2-3 sentences), strengths (list of strings), concerns (list of strings). "
        "Use NO_RESP when the candidate barely answered."
    )
    user_prompt = "Evaluate this conversation:\n" + json.dumps(payload, ensure_ascii=True)

    body = {
        "model": model,
        "temperature": 0,
        "text": {"format": {"type": "json_object"}},
        "input": [
            {"role": "system", "content": [{"type": "input_text", "text": system_prompt}]},
            {"role": "user", "content": [{"type": "input_text", "text": user_prompt}]},
        ],
    }

    data = llm_call(
        "candidate_scoring",
        api_key=api_key,
        base_url=base_url,
        timeout_sec=timeout_sec,
        **body,
    )

    parsed = _extract_json_object(_extract_llm_text(data))
    if not isinstance(parsed, dict):
        raise ValueError("LLM reply is not a JSON object")
    status = str(parsed.get("status", "")).strip().upper()
    if status not in ALLOWED_STATUSES:
        status = "NO_RESP"
    sentiment = str(parsed.get("sentiment", "")).strip().lower()
    if sentiment not in ALLOWED_SENTIMENTS:
        sentiment = "neutral"

    raw_scores = parsed.get("scores")
    scores = raw_scores if isinstance(raw_scores, dict) else {}

    row = {
        "candidate_id": conversation.candidate_id,
        "candidate_name": conversation.candidate_name,
        "status": status,
        "sentiment": sentiment,
    }
    for dim in DIMENSIONS:
        row[dim] = str(_clamp_score(scores.get(dim)))
    row["summary"] = str(parsed.get("summary", "")).strip()[:500]
    row["strengths"] = _join_list(parsed.get("strengths"))
    row["concerns"] = _join_list(parsed.get("concerns"))
    return row


def _failed_row(conversation: CandidateConversation, reason: str) -> dict[str, str]:
    row = {
        "candidate_id": conversation.candidate_id,
        "candidate_name": conversation.candidate_name,
        "status": "NO_RESP",
        "sentiment": "neutral",
    }
    for dim in DIMENSIONS:
        row[dim] = ""
    row["summary"] = f"Analysis failed, treated as no response: {reason}"[:500]
    row["strengths"] = ""
    row["concerns"] = ""
    return row


def score_conversations_with_llm(
    *,
    conversations: list[CandidateConversation],
    model: str,
    api_key_env: str = "OPENAI_API_KEY",
    base_url: str = "https://api.openai.com/v1",
    max_transcript_chars: int = 12000,
    timeout_sec: int = 60,
) -> tuple[list[dict[str, str]], list[str]]:
    """Score every conversation; returns ``(rows, failed_candidate_ids)``.

    A candidate whose call or reply fails gets a ``NO_RESP`` row and the batch
    carries on. A missing API key still raises before any call is made.
    """
    api_key = _require_api_key(api_key_env)
    rows: list[dict[str, str]] = []
    failed: list[str] = []
    for conversation in conversations:
        try:
            row = _llm_score_single_conversation(
                conversation=conversation,
                model=model,
                api_key=api_key,
                base_url=base_url,
                max_transcript_chars=max_transcript_chars,
                timeout_sec=timeout_sec,
            )
        except (RuntimeError, ValueError) as exc:
            print(f"[AI SCORE FAILED] candidate_id={conversation.candidate_id} reason={exc}")
            row = _failed_row(conversation, str(exc))
            failed.append(conversation.candidate_id)
        rows.append(row)
    return rows, failed


def build_score_summary(rows: list[dict[str, str]]) -> dict[str, object]:
    statuses = Counter(r.get("status", "") for r in rows)
    sentiments = Counter(r.get("sentiment", "") for r in rows)
    averages: dict[str, float] = {}
    for dim in DIMENSIONS:
        values = [int(r[dim]) for r in rows if r.get(dim, "").isdigit()]
        averages[dim] = round(sum(values) / len(values), 1) if values else 0.0
    return {
        "candidates": len(rows),
        "pass": statuses.get("PASS", 0),
        "fail": statuses.get("FAIL", 0),
        "no_response": statuses.get("NO_RESP", 0),
        "sentiment": {k: sentiments.get(k, 0) for k in sorted(ALLOWED_SENTIMENTS)},
        "average_scores": averages,
    }


def write_ai_scores_csv(path: str, rows: list[dict[str, str]]) -> str:
    out = Path(path).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    with out.open("w", encoding="utf-8", newline="") as f:
        writer = csv.DictWriter(f, fieldnames=AI_SCORE_COLUMNS)
        writer.writeheader()
        writer.writerows(rows)
    return str(out)


def build_ai_console_summary(summary: dict[str, object]) -> list[str]:
    lines = [
        "AI scoring summary",
        f"- candidates scored: {summary.get('candidates', 0)}",
        f"- pass: {summary.get('pass', 0)}",
        f"- fail: {summary.get('fail', 0)}",
        f"- no_response: {summary.get('no_response', 0)}",
    ]
    averages = summary.get("average_scores") or {}
    if isinstance(averages, dict):
        for dim, value in averages.items():
            lines.append(f"- avg {dim}: {value}")
    return lines
