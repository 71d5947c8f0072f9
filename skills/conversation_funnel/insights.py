"""Rule-based batch insights over the candidate summary."""

from __future__ import annotations

import math
from typing import Any

from skills.conversation_funnel.candidate_summary import compute_status_distribution

LOW_APPROVAL_RATE = 30.0
LOW_RESPONSE_RATE = 70.0
SHORT_CONVERSATION_MINUTES = 5.0
UNEVEN_DAY_FACTOR = 3
NEGATIVE_APPROVAL_RATE = 20.0


def _insight(
    insight_id: str,
    insight_type: str,
    priority: str,
    title: str,
    description: str,
    impact: str,
    actions: list[str],
    data: dict[str, Any] | None = None,
) -> dict[str, Any]:
    return {
        "id": insight_id,
        "type": insight_type,
        "priority": priority,
        "title": title,
        "description": description,
        "impact": impact,
        "actions": actions,
        "data": data or {},
    }


def _average_minutes(rows: list[dict[str, str]]) -> float:
    durations = [float(r.get("duration_seconds") or 0) for r in rows]
    return sum(durations) / len(durations) / 60 if durations else 0.0


def _daily_insights(daily: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not daily:
        return []
    counts = [int(d.get("count", 0)) for d in daily]
    if max(counts) <= min(counts) * UNEVEN_DAY_FACTOR:
        return []
    return [
        _insight(
            "uneven-distribution",
            "trend",
            "low",
            "Uneven Interview Distribution",
            "Some days have significantly more interviews than others.",
            "May lead to interviewer fatigue and inconsistent evaluations.",
            [
                "Consider load balancing interviews",
                "Set daily interview limits",
                "Automate scheduling distribution",
            ],
            {"peak_day_count": max(counts), "quietest_day_count": min(counts)},
        )
    ]


def _sentiment_insights(rows: list[dict[str, str]], ai_rows: list[dict[str, str]] | None) -> list[dict[str, Any]]:
    sentiment_by_id = {r["candidate_id"]: (r.get("sentiment") or "neutral").lower() for r in (ai_rows or [])}
    total = approved = 0
    for row in rows:
        if sentiment_by_id.get(row["candidate_id"], "neutral") != "negative":
            continue
        total += 1
        if row["status"] == "PASS":
            approved += 1
    if not total or not approved:
        return []
    rate = approved / total * 100
    if rate <= NEGATIVE_APPROVAL_RATE:
        return []
    return [
        _insight(
            "negative-sentiment-approvals",
            "anomaly",
            "high",
            "Negative Sentiment Approvals",
            f"{rate:.1f}% of candidates with negative sentiment are being approved.",
            "May indicate sentiment analysis issues or evaluation criteria mismatch.",
            [
                "Review negative sentiment cases",
                "Calibrate sentiment analysis",
                "Align evaluation criteria",
            ],
            {"negative_total": total, "negative_approved": approved},
        )
    ]


def _weekly_prediction(total: int, approved: int, daily: list[dict[str, Any]]) -> list[dict[str, Any]]:
    if not daily:
        return []
    weekly_average = sum(int(d.get("count", 0)) for d in daily) / math.ceil(len(daily) / 7)
    if weekly_average <= 0:
        return []
    approval_rate = approved / total
    predicted = math.floor(weekly_average * approval_rate + 0.5)
    return [
        _insight(
            "weekly-prediction",
            "prediction",
            "medium",
            "Weekly Hiring Forecast",
            f"Based on current trends, expect approximately {predicted} approved candidates per week.",
            "Helps with resource planning and team preparation.",
            [
                "Prepare onboarding resources",
                "Schedule team availability",
                "Review capacity constraints",
            ],
            {"weekly_average": weekly_average, "approval_rate": approval_rate, "predicted_approvals": predicted},
        )
    ]


def build_insights(
    rows: list[dict[str, str]],
    daily: list[dict[str, Any]],
    ai_rows: list[dict[str, str]] | None = None,
) -> list[dict[str, Any]]:
    """Turn candidate summary rows and daily counts into prioritized insights.

    ``rows`` are candidate summary rows (status already overridden by AI
    scoring when it ran); ``ai_rows`` only contribute sentiment.
    """
    total = len(rows)
    if total == 0:
        return []

    dist = compute_status_distribution(rows)
    insights: list[dict[str, Any]] = []

    approval_rate = dist["approved"] / total * 100
    if approval_rate < LOW_APPROVAL_RATE:
        insights.append(
            _insight(
                "low-approval-rate",
                "anomaly",
                "high",
                "Low Approval Rate Detected",
                f"Only {approval_rate:.1f}% of candidates are being approved, which is below industry average.",
                "This could indicate overly strict criteria or misaligned job requirements.",
                [
                    "Review rejection reasons for patterns",
                    "Consider adjusting screening criteria",
                    "Validate job requirements with hiring team",
                ],
                {"approval_rate": approval_rate},
            )
        )

    response_rate = (dist["approved"] + dist["rejected"]) / total * 100
    if response_rate < LOW_RESPONSE_RATE:
        insights.append(
            _insight(
                "low-response-rate",
                "anomaly",
                "medium",
                "High No-Response Rate",
                f"{100 - response_rate:.1f}% of candidates are not responding to interviews.",
                "Missing potential qualified candidates due to engagement issues.",
                [
                    "Review interview scheduling process",
                    "Send reminder notifications",
                    "Consider alternative communication channels",
                ],
                {"response_rate": response_rate},
            )
        )

    avg_minutes = _average_minutes(rows)
    if avg_minutes < SHORT_CONVERSATION_MINUTES:
        insights.append(
            _insight(
                "short-conversations",
                "trend",
                "medium",
                "Short Interview Durations",
                f"Average conversation duration is under {SHORT_CONVERSATION_MINUTES:g} minutes.",
                "May not be gathering enough information to make informed decisions.",
                [
                    "Review interview questions",
                    "Train AI on follow-up questioning",
                    "Consider adding screening questions",
                ],
                {"average_minutes": avg_minutes},
            )
        )

    insights.extend(_daily_insights(daily))
    insights.extend(_sentiment_insights(rows, ai_rows))
    insights.extend(_weekly_prediction(total, dist["approved"], daily))
    return insights


def build_insights_console_summary(insights: list[dict[str, Any]]) -> list[str]:
    lines = ["Insights"]
    if not insights:
        lines.append("- none")
        return lines
    for insight in insights:
        lines.append(f"- [{insight['priority']}] {insight['title']}: {insight['description']}")
        for action in insight.get("actions") or []:
            lines.append(f"    * {action}")
    return lines
