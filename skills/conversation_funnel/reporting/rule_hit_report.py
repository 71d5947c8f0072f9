"""Rule-hit reporting for per-message stage decisions."""

from __future__ import annotations

from pathlib import Path

from skills.conversation_funnel.classifiers.stages import StageDecisionRow


def _top_items(values: list[str], topk: int, cap: int = 80) -> str:
    counts: dict[str, int] = {}
    for v in values:
        if not v:
            continue
        counts[v] = counts.get(v, 0) + 1
    ranked = sorted(counts.items(), key=lambda x: (-x[1], x[0]))[:topk]
    return ", ".join(f"{k[:cap]} ({v})" for k, v in ranked)


def _md_table(headers: list[str], rows: list[list[str]]) -> str:
    out = ["| " + " | ".join(headers) + " |", "| " + " | ".join(["---"] * len(headers)) + " |"]
    out.extend("| " + " | ".join(r) + " |" for r in rows)
    return "\n".join(out)


def _cell(text: str, cap: int = 80) -> str:
    return text[:cap].replace("|", "/").replace("\n", " ")


def build_rule_hit_report(decisions: list[StageDecisionRow], topk: int, run_meta: dict[str, str] | None = None) -> str:
    total = len(decisions)
    ai_rows = [d for d in decisions if d.role == "AI_AGENT" and not d.synthetic]
    emitted = [d for d in decisions if d.emitted]
    candidates = {d.candidate_id for d in decisions}
    meta = run_meta or {}

    lines: list[str] = ["# Stage Rule-Hit Report", ""]

    # A) Run summary
    lines.extend(
        [
            "## A) Run summary",
            f"- candidates: **{len(candidates)}**",
            f"- decisions (messages + fallbacks): **{total}**",
            f"- ai_messages: **{len(ai_rows)}**",
            f"- events_emitted: **{len(emitted)}**",
            f"- source: **{meta.get('source', '')}**",
            f"- date_range: **{meta.get('date_range', '')}**",
            "",
        ]
    )

    # B) Rule hits
    by_rule: dict[str, list[StageDecisionRow]] = {}
    for d in decisions:
        by_rule.setdefault(d.rule_id or "unknown", []).append(d)

    ranked_rules = sorted(by_rule.items(), key=lambda x: (-len(x[1]), x[0]))
    rows_b: list[list[str]] = []
    for rule_id, group in ranked_rules[:topk]:
        pct = (len(group) / total * 100) if total else 0.0
        rows_b.append(
            [
                rule_id,
                group[0].stage_type or "",
                str(len(group)),
                f"{pct:.1f}%",
                str(len({g.candidate_id for g in group})),
                _top_items([_cell(g.text, 60) for g in group], 3, cap=60),
            ]
        )
    lines.extend(["## B) Rule hits (by rule_id)", _md_table(["rule_id", "stage_type", "count", "pct", "candidates", "top_texts"], rows_b), ""])

    # C) Stage totals
    by_stage: dict[str, list[StageDecisionRow]] = {}
    for d in emitted:
        by_stage.setdefault(d.stage_type or "", []).append(d)

    rows_c: list[list[str]] = []
    for stage_type, group in sorted(by_stage.items(), key=lambda x: (-len(x[1]), x[0])):
        rows_c.append(
            [
                stage_type,
                str(len(group)),
                str(sum(1 for g in group if g.synthetic)),
                str(len({g.candidate_id for g in group})),
                _top_items([g.rule_id for g in group], 5),
            ]
        )
    lines.extend(["## C) Stage totals (emitted events)", _md_table(["stage_type", "events", "synthetic", "candidates", "top_rules"], rows_c), ""])

    # D) Suspicious patterns
    late_hint = [d for d in decisions if d.rule_id == "scheduling:late_next_step"]
    implicit = [d for d in decisions if d.rule_id.startswith("implicit:")]
    capped = [d for d in decisions if d.rule_id == "ignore:question_cap_reached"]
    unmatched = [d for d in ai_rows if d.rule_id == "ignore:no_match"]

    lines.extend(
        [
            "## D) Suspicious patterns",
            f"- scheduling via late next-step hint: **{len(late_hint)}**",
            f"  - top texts: {_top_items([_cell(d.text) for d in late_hint], 5)}",
            f"- synthetic fallback events: **{len(implicit)}**",
            f"  - candidates: {_top_items([d.candidate_id for d in implicit], 5)}",
            f"- questions dropped by the cap: **{len(capped)}**",
            f"  - candidates: {_top_items([d.candidate_id for d in capped], 5)}",
            f"- AI messages with no matching rule: **{len(unmatched)}**",
            f"  - top texts: {_top_items([_cell(d.text) for d in unmatched], 5)}",
            "",
        ]
    )

    # E) Sample lines per top rules
    lines.append(f"## E) Sample lines per rule (top {min(topk, 10)} rules)")
    for rule_id, group in ranked_rules[: min(topk, 10)]:
        lines.append(f"### {rule_id}")
        lines.append("date | candidate_id | position | text")
        lines.append("--- | --- | --- | ---")
        for g in group[:5]:
            lines.append(f"{g.date} | {g.candidate_id} | {g.position} | {_cell(g.text, 120)}")
        lines.append("")

    return "\n".join(lines)


def write_rule_hit_report(path: str, markdown: str) -> str:
    out = Path(path).expanduser().resolve()
    out.parent.mkdir(parents=True, exist_ok=True)
    out.write_text(markdown, encoding="utf-8")
    return str(out)
