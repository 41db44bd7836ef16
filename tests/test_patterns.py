"""Tests for the rule-based pattern engine (pure, no AI backend)."""

from __future__ import annotations

from datetime import date

import pytest

from actionlens.analysis_config import ActionItemType, DetectionMethod, Priority
from actionlens.extraction.models import TextPosition
from actionlens.extraction.patterns import (
    PATTERNS,
    detect_patterns,
    extract_assignee,
    extract_context,
    extract_due_date,
    score_confidence,
)

MONDAY = date(2024, 1, 1)


class TestDetectPatterns:
    def test_login_bug_scenario(self) -> None:
        """The canonical offline scenario yields regex-tagged items with assignee and date."""
        text = "need to fix the login bug by Friday, @alice please review"
        items = detect_patterns(text, today=MONDAY)

        assert len(items) >= 1
        assert all(item.detection_method is DetectionMethod.REGEX for item in items)
        contents = {item.content for item in items}
        assert "fix the login bug by Friday" in contents

        fix = next(item for item in items if item.content == "fix the login bug by Friday")
        assert fix.suggested_assignee == "alice"
        assert fix.suggested_due_date == "2024-01-05"

    def test_todo_keyword(self) -> None:
        """A TODO marker is detected as a todo item."""
        items = detect_patterns("TODO: rotate the signing keys.")
        todo = [item for item in items if item.type is ActionItemType.TODO]
        assert len(todo) == 1
        assert todo[0].content == "rotate the signing keys"
        assert todo[0].text_position == TextPosition(0, len("TODO: rotate the signing keys."))

    def test_invariants_hold_for_every_item(self) -> None:
        """Every item has a valid position, confidence and title."""
        text = (
            "URGENT: we must deploy the hotfix today.\n"
            "- [ ] update the changelog\n"
            "1. follow up on the vendor contract\n"
            "I'll send the notes, maybe?\n"
        )
        items = detect_patterns(text)
        assert items
        for item in items:
            assert 0.0 <= item.confidence <= 1.0
            assert item.type in set(ActionItemType)
            assert item.priority in set(Priority)
            assert item.text_position.start <= item.text_position.end <= len(text)
            assert item.id.startswith("detected_")

    def test_results_sorted_and_deduplicated(self) -> None:
        """Results are sorted by confidence with no duplicate content."""
        items = detect_patterns("We need to fix the build. We need to fix the build.")
        confidences = [item.confidence for item in items]
        assert confidences == sorted(confidences, reverse=True)
        normalized = [item.content.lower() for item in items]
        assert len(normalized) == len(set(normalized))

    def test_urgent_keyword_sets_urgent_priority(self) -> None:
        """Urgency words raise the priority to urgent."""
        items = detect_patterns("This is urgent: need to restart the payment worker")
        task = next(item for item in items if item.content.startswith("restart the payment"))
        assert task.priority is Priority.URGENT

    def test_low_priority_keyword(self) -> None:
        """Words like eventually lower the priority."""
        items = detect_patterns("Eventually we should clean up the old docs")
        task = next(item for item in items if item.content == "clean up the old docs")
        assert task.priority is Priority.LOW

    def test_near_deadline_upgrades_priority(self) -> None:
        """A due date within a day upgrades the priority."""
        items = detect_patterns("We should rebuild the search index tomorrow")
        task = next(item for item in items if item.type is ActionItemType.TASK)
        assert task.priority is Priority.HIGH

    def test_plain_prose_yields_nothing(self) -> None:
        """Prose without action language produces no items."""
        assert detect_patterns("The weather was pleasant and the garden looked lovely") == []

    def test_empty_text(self) -> None:
        assert detect_patterns("") == []

    def test_every_rule_compiles_with_a_base_confidence_in_range(self) -> None:
        """Every rule has a base confidence between 0 and 1."""
        for rule in PATTERNS:
            assert 0.0 < rule.confidence_base <= 1.0


class TestExtractContext:
    def test_window_is_clipped_to_text(self) -> None:
        """Context windows never run past the text bounds."""
        text = "abcdefghij"
        assert extract_context(text, TextPosition(4, 6), radius=2) == "cdefgh"
        assert extract_context(text, TextPosition(0, 2), radius=100) == text


class TestScoreConfidence:
    def test_question_and_hedging_lower_confidence(self) -> None:
        """Questions and hedges reduce confidence."""
        rule = PATTERNS[0]
        plain = score_confidence("ship the release notes", "ship the release notes", rule)
        hedged = score_confidence(
            "ship the release notes", "maybe ship the release notes?", rule
        )
        assert hedged < plain

    def test_clamped_to_one(self) -> None:
        """Boosts never push confidence above 1.0."""
        rule = PATTERNS[1]
        content = "implement the critical urgent asap fix for the production database now"
        assert score_confidence(content, content, rule) == 1.0


class TestExtractDueDate:
    @pytest.mark.parametrize(
        ("text", "expected"),
        [
            ("ship it on 2024-03-15", "2024-03-15"),
            ("ship it by 03/15/2024", "2024-03-15"),
            ("ship it by March 5, 2024", "2024-03-05"),
            ("ship it by 5 March 2024", "2024-03-05"),
            ("ship it today", "2024-01-01"),
            ("ship it tomorrow", "2024-01-02"),
            ("ship it next week", "2024-01-15"),
            ("ship it Wednesday", "2024-01-03"),
            ("ship it Monday", "2024-01-08"),
        ],
    )
    def test_formats(self, text: str, expected: str) -> None:
        """Relative and explicit dates resolve to ISO dates."""
        assert extract_due_date(text, "", today=MONDAY) == expected

    def test_no_date(self) -> None:
        assert extract_due_date("ship it", "soon-ish", today=MONDAY) is None


class TestExtractAssignee:
    def test_mention_wins(self) -> None:
        """An @mention takes precedence over other phrasing."""
        assert extract_assignee("review the PR @bob", "") == "bob"

    def test_assignment_phrase(self) -> None:
        """"assigned to" names the assignee."""
        assert extract_assignee("assigned to Carol", "") == "Carol"

    def test_none(self) -> None:
        assert extract_assignee("review the PR", "nobody in particular") is None
