"""Markdown report rendering for completed analyses."""

from datetime import date

from futurecast.core.schemas import PhaseResult, Scenario, YearResult

REPORT_FOOTER = "*This report was generated by the Futurecast expert agent system.*"


def _timeframe_label(index: int) -> str:
    if index == 0:
        return "Short-term measures"
    if index == 1:
        return "Medium-term measures"
    return "Long-term measures"


def _year_anchor(year: int) -> str:
    return f"{year}-future-scenario"


def _render_phase(phase: PhaseResult) -> list[str]:
    lines = [f"### Phase {phase.phase}: {phase.title}", "", phase.content, ""]

    if phase.analyses:
        lines += ["#### Expert analyses", ""]
        for analysis in phase.analyses:
            lines += [f"##### {analysis.expert}", "", analysis.content, ""]
            if analysis.recommendations:
                lines.append("**Recommendations:**")
                lines += [f"- {rec}" for rec in analysis.recommendations]
                lines.append("")

    if phase.recommendations:
        lines += ["#### Key recommendations", ""]
        lines += [f"- {rec}" for rec in phase.recommendations]
        lines.append("")

    return lines


def render_markdown_report(
    scenario: Scenario,
    years: list[YearResult],
    generated_on: date | None = None,
) -> str:
    """
    Render compiled per-year results as a markdown report.

    Pure apart from the default date: pass generated_on to get identical output
    for identical input.

    Args:
        scenario: Scenario the results belong to
        years: Compiled results, one entry per target year
        generated_on: Date printed in the header (defaults to today)

    Returns:
        Markdown document
    """
    generated_on = generated_on or date.today()
    target_years = ", ".join(str(y) for y in scenario.target_years)

    lines = [
        "# Futurecast AI Scenario Analysis Report (multi-year)",
        "",
        f"**Generated:** {generated_on.isoformat()}",
        f"**Theme:** {scenario.theme}",
        f"**Current strategy:** {scenario.current_strategy}",
        f"**Target years:** {target_years}",
        "",
        "---",
        "",
        "## Executive summary",
        "",
        "This report collects the multi-year foresight analysis produced by the AI expert agents.",
        f"Future scenarios for {target_years} are analyzed phase by phase.",
        "",
        "---",
        "",
        "## Index by year",
        "",
    ]
    lines += [f"- [{yr.year} analysis](#{_year_anchor(yr.year)})" for yr in years]
    lines += ["", "---", ""]

    for index, year_result in enumerate(years):
        lines += [
            f'<a id="{_year_anchor(year_result.year)}"></a>',
            f"## {year_result.year} future scenario",
            "",
        ]
        for phase in year_result.phases:
            lines += _render_phase(phase)
        if index < len(years) - 1:
            lines += ["---", ""]

    lines += [
        "---",
        "",
        "## Multi-year recommendations",
        "",
        "Based on this analysis, the following staged strategic approach is recommended:",
        "",
    ]
    lines += [
        f"{i + 1}. **{_timeframe_label(i)} ({year} target):** staged rollout and adaptation of the strategy"
        for i, year in enumerate(scenario.target_years)
    ]
    lines += ["", "---", "", REPORT_FOOTER, ""]

    return "\n".join(lines)
