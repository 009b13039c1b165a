"""Tests for markdown report rendering."""

from datetime import date

from futurecast.core.report import render_markdown_report
from futurecast.core.schemas import ExpertAnalysis, PhaseResult, Scenario, YearResult


def _scenario() -> Scenario:
    return Scenario(
        id="s1",
        theme="Carbon neutral logistics",
        current_strategy="Electrify the fleet",
        target_years=[2030, 2040],
    )


def _years() -> list[YearResult]:
    shared = PhaseResult(phase=3, title="Strategy review from the very long term", content="Looking back", recommendations=["Act now"])
    return [
        YearResult(
            year=year,
            phases=[
                PhaseResult(
                    phase=1,
                    title="Expert research by field",
                    content="2 of 2 expert analyses completed.",
                    analyses=[ExpertAnalysis(expert="Economist", content="Costs fall", recommendations=["Hedge fuel"])],
                ),
                PhaseResult(phase=2, title="Scenario generation", content=f"Scenario {year}"),
                shared,
            ],
        )
        for year in (2030, 2040)
    ]


def test_same_input_same_date_renders_identically():
    first = render_markdown_report(_scenario(), _years(), generated_on=date(2030, 1, 2))
    second = render_markdown_report(_scenario(), _years(), generated_on=date(2030, 1, 2))
    assert first == second


def test_report_contains_header_years_and_expert_sections():
    report = render_markdown_report(_scenario(), _years(), generated_on=date(2030, 1, 2))

    assert "**Generated:** 2030-01-02" in report
    assert "**Target years:** 2030, 2040" in report
    assert "## 2030 future scenario" in report
    assert "## 2040 future scenario" in report
    assert "##### Economist" in report
    assert "- Hedge fuel" in report
    assert "#### Key recommendations" in report
    assert "1. **Short-term measures (2030 target):**" in report
    assert "2. **Medium-term measures (2040 target):**" in report


def test_index_links_match_year_anchors():
    report = render_markdown_report(_scenario(), _years(), generated_on=date(2030, 1, 2))
    assert "- [2030 analysis](#2030-future-scenario)" in report
    assert '<a id="2030-future-scenario"></a>' in report
