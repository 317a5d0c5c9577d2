from __future__ import annotations

from datetime import date

import pytest

from laborobo_ai.agent_core.workflows.pm_copilot import (
    build_content_preview,
    build_deliverable_alternatives,
    build_inbox_content,
    build_project_insights,
    build_task_breakdown,
    determine_confidence,
    extract_checklist,
    extract_json,
)

TODAY = date(2026, 10, 17)


class TestExtractJson:
    def test_fenced_block_wins(self) -> None:
        text = 'Sure!\n```json\n{"alternatives": []}\n```\nAnything else?'
        assert extract_json(text) == {"alternatives": []}

    def test_raw_object(self) -> None:
        assert extract_json('  {"insights": [1]} ') == {"insights": [1]}

    @pytest.mark.parametrize("text", ["no json here", "[1, 2, 3]", "```json\n{broken\n```", ""])
    def test_unusable_answers(self, text: str) -> None:
        assert extract_json(text) is None


@pytest.mark.parametrize(
    "description,criteria,playbooks,expected",
    [
        ("desc", ["c"], [{"name": "p"}], "high"),
        ("desc", ["c"], [], "medium"),
        ("desc", [], [{"name": "p"}], "medium"),
        ("desc", [], [], "low"),
        ("", ["c"], [{"name": "p"}], "low"),
    ],
)
def test_determine_confidence(description, criteria, playbooks, expected) -> None:
    assert determine_confidence(description, criteria, playbooks) == expected


class TestDeliverableAlternatives:
    def test_empty_work_order_gets_standard_only(self) -> None:
        (alt,) = build_deliverable_alternatives({}, [])
        assert alt["name"] == "Standard Approach"
        assert alt["deliverables"][0]["title"] == "Primary Deliverable for Untitled Work Order"
        assert alt["deliverables"][0]["confidence"] == "low"

    def test_description_and_playbook_add_alternatives(self) -> None:
        work_order = {"title": "Brand Kit", "description": "Logo and palette", "acceptance_criteria": ["Logo"]}
        playbook = {"name": "Branding", "description": "Brand SOP", "type": "design"}

        alternatives = build_deliverable_alternatives(work_order, [playbook])

        assert [a["alternative_id"] for a in alternatives] == [1, 2, 3]
        phases = alternatives[1]["deliverables"]
        assert [d["title"] for d in phases] == ["Phase 1: Planning for Brand Kit", "Phase 2: Implementation for Brand Kit"]
        assert phases[1]["acceptance_criteria"] == ["Logo"]
        template = alternatives[2]["deliverables"][0]
        assert template["title"] == "Deliverable based on Branding"
        assert template["type"] == "design"
        assert alternatives[0]["deliverables"][0]["confidence"] == "high"


class TestTaskBreakdown:
    def test_three_tasks_per_deliverable_with_chained_dependencies(self) -> None:
        breakdown = build_task_breakdown([{"title": "A"}, {"title": "B"}], [])

        assert [b["deliverable_title"] for b in breakdown] == ["A", "B"]
        second = breakdown[1]["tasks"]
        assert [t["position_in_work_order"] for t in second] == [4, 5, 6]
        assert [t["dependencies"] for t in second] == [[], [4], [5]]
        assert [t["estimated_hours"] for t in second] == [2.0, 8.0, 2.0]
        assert breakdown[1]["total_estimated_hours"] == 12.0

    def test_untitled_deliverable(self) -> None:
        (only,) = build_task_breakdown([{}], [])
        assert only["tasks"][0]["title"] == "Plan: Untitled Deliverable"

    @pytest.mark.parametrize(
        "playbooks,expected",
        [
            ([], ["Complete task requirements", "Verify output quality"]),
            ([{"content": {"checklist": list("abcdefg")}}], list("abcde")),
            ([{"content": "free text"}], ["Follow playbook guidelines", "Complete all requirements", "Verify against criteria"]),
        ],
    )
    def test_checklist_source(self, playbooks, expected) -> None:
        assert extract_checklist(playbooks) == expected


class TestProjectInsights:
    def test_no_signals(self) -> None:
        assert build_project_insights({}, today=TODAY) == []

    def test_overdue_and_blocked(self) -> None:
        context = {
            "pending_tasks": [
                {"id": "t-1", "due_date": "2026-10-16"},
                {"id": "t-2", "due_date": "2026-10-17", "is_blocked": True},
                {"id": "t-3", "due_date": "not a date"},
                {"id": "t-4"},
            ]
        }

        overdue, blocked = build_project_insights(context, today=TODAY)

        assert overdue["type"] == "overdue"
        assert overdue["affected_items"] == ["t-1"]
        assert overdue["severity"] == "high"
        assert blocked["type"] == "bottleneck"
        assert blocked["affected_items"] == ["t-2"]

    @pytest.mark.parametrize(
        "actual,severity",
        [(80, None), (81, "medium"), (99, "medium"), (100, "high"), (150, "high")],
    )
    def test_budget_burn(self, actual, severity) -> None:
        insights = build_project_insights({"budget_hours": 100, "actual_hours": actual}, today=TODAY)
        if severity is None:
            assert insights == []
        else:
            (insight,) = insights
            assert insight["type"] == "scope_creep"
            assert insight["severity"] == severity
            assert f"{actual}%" in insight["description"]

    def test_zero_budget_is_ignored(self) -> None:
        assert build_project_insights({"budget_hours": 0, "actual_hours": 50}, today=TODAY) == []


def test_inbox_content_lists_deliverables_and_tasks() -> None:
    alternatives = build_deliverable_alternatives({"title": "Site"}, [])
    breakdown = build_task_breakdown(alternatives[0]["deliverables"], [])

    content = build_inbox_content(alternatives, breakdown)

    assert "## Alternative 1: Standard Approach (medium confidence)" in content
    assert "- Primary Deliverable for Site (document)" in content
    assert "- Execute: Primary Deliverable for Site: 8.0h" in content
    assert build_content_preview(alternatives, breakdown) == (
        "1 alternative(s) with 1 deliverable(s) and 3 task(s) suggested"
    )
