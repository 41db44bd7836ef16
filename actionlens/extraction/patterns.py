"""Rule-based action item detection.

Pure and synchronous: the same text always yields the same candidates (apart
from generated ids, timestamps and dates relative to today). Used directly when
the AI backend is unavailable and as the fallback when it fails.
"""

from __future__ import annotations

import re
import uuid
from dataclasses import dataclass
from datetime import date, datetime, timedelta

from actionlens.analysis_config import ActionItemType, DetectionMethod, Priority
from actionlens.extraction.dedupe import deduplicate_items
from actionlens.extraction.models import ActionItemMetadata, DetectedActionItem, TextPosition

CONTEXT_RADIUS = 100
MIN_CONFIDENCE = 0.3
MIN_CONTENT_LENGTH = 3

# Shared tail: capture lazily up to the end of the clause.
_CLAUSE = r"(.+?)(?:\.|$|,|\n)"


@dataclass(frozen=True)
class DetectionPattern:
    """One detection rule."""

    pattern: re.Pattern[str]
    type: ActionItemType
    priority: Priority
    confidence_base: float
    context_required: bool
    description: str


PATTERNS: list[DetectionPattern] = [
    DetectionPattern(
        re.compile(r"\b(?:need to|needs to|should|must|have to)\s+" + _CLAUSE, re.IGNORECASE),
        ActionItemType.TASK,
        Priority.MEDIUM,
        0.75,
        False,
        "Imperative language indicating required actions",
    ),
    DetectionPattern(
        re.compile(
            r"\b(?:implement|fix|create|add|remove|update|refactor|test)\s+" + _CLAUSE,
            re.IGNORECASE,
        ),
        ActionItemType.DEVELOPMENT,
        Priority.MEDIUM,
        0.8,
        False,
        "Development-specific action verbs",
    ),
    DetectionPattern(
        re.compile(r"\b(?:by|due|deadline|before)\s+(?:on\s+)?" + _CLAUSE, re.IGNORECASE),
        ActionItemType.DEADLINE,
        Priority.HIGH,
        0.85,
        True,
        "Explicit deadline references",
    ),
    DetectionPattern(
        re.compile(
            r"\b(?:today|tomorrow|this week|next week|friday|monday|tuesday|wednesday"
            r"|thursday|saturday|sunday)\b",
            re.IGNORECASE,
        ),
        ActionItemType.DEADLINE,
        Priority.HIGH,
        0.7,
        True,
        "Time-specific references",
    ),
    DetectionPattern(
        re.compile(
            r"(?:\b(?:assign|assigned to|responsible for)|@\w+)\s+" + _CLAUSE, re.IGNORECASE
        ),
        ActionItemType.ASSIGNMENT,
        Priority.MEDIUM,
        0.8,
        False,
        "Assignment and responsibility indicators",
    ),
    DetectionPattern(
        re.compile(r"@(\w+)"),
        ActionItemType.ASSIGNMENT,
        Priority.MEDIUM,
        0.75,
        True,
        "Username mentions",
    ),
    DetectionPattern(
        re.compile(
            r"\b(?:I will|we will|I'll|we'll|promise to|commit to|guarantee)\s+" + _CLAUSE,
            re.IGNORECASE,
        ),
        ActionItemType.COMMITMENT,
        Priority.MEDIUM,
        0.7,
        False,
        "Personal or team commitments",
    ),
    DetectionPattern(
        re.compile(r"\b(?:TODO|FIXME|HACK|NOTE|BUG):\s*" + _CLAUSE, re.IGNORECASE),
        ActionItemType.TODO,
        Priority.MEDIUM,
        0.9,
        False,
        "Explicit task keywords",
    ),
    DetectionPattern(
        re.compile(r"\b(?:ACTION|TASK|REMINDER):\s*" + _CLAUSE, re.IGNORECASE),
        ActionItemType.ACTION,
        Priority.MEDIUM,
        0.85,
        False,
        "Action item keywords",
    ),
    DetectionPattern(
        re.compile(r"^[ \t]*[-*][ \t]*(?:\[[\s\-x]\])?[ \t]*(.+?)$", re.MULTILINE),
        ActionItemType.TASK,
        Priority.MEDIUM,
        0.6,
        True,
        "Bullet point lists with optional checkboxes",
    ),
    DetectionPattern(
        re.compile(r"^[ \t]*\d+\.[ \t]*(.+?)$", re.MULTILINE),
        ActionItemType.TASK,
        Priority.MEDIUM,
        0.65,
        True,
        "Numbered lists",
    ),
    DetectionPattern(
        re.compile(
            r"\b(?:follow up|followup|check back|circle back)\s+(?:on\s+)?" + _CLAUSE,
            re.IGNORECASE,
        ),
        ActionItemType.FOLLOW_UP,
        Priority.MEDIUM,
        0.7,
        False,
        "Follow-up action indicators",
    ),
    DetectionPattern(
        re.compile(r"\b(?:remember to|don't forget to|remind me to)\s+" + _CLAUSE, re.IGNORECASE),
        ActionItemType.REMINDER,
        Priority.MEDIUM,
        0.75,
        False,
        "Reminder phrases",
    ),
]

URGENCY_KEYWORDS: list[str] = [
    "urgent", "asap", "immediately", "critical", "emergency", "priority",
    "important", "crucial", "vital", "essential", "pressing",
]

LOW_PRIORITY_KEYWORDS: list[str] = [
    "later", "sometime", "eventually", "nice to have", "optional",
    "when possible", "if time permits", "low priority",
]

_NEAR_DEADLINE_TERMS = ["today", "tomorrow", "urgent", "asap", "immediately"]

_ACTION_VERBS = ["implement", "create", "fix", "update", "review", "test", "deploy"]

_CONTEXT_KEYWORDS: dict[ActionItemType, list[str]] = {
    ActionItemType.DEVELOPMENT: ["code", "bug", "feature", "api", "database", "frontend", "backend"],
    ActionItemType.DEADLINE: ["due", "deadline", "schedule", "timeline", "urgent"],
}

_STOP_WORDS = frozenset(
    "the and for are but not you all can had her was one our out day get has him his how "
    "its may new now old see two who boy did man men put say she too use".split()
)

_DATE_PATTERNS: list[tuple[re.Pattern[str], tuple[str, ...]]] = [
    (re.compile(r"\b\d{4}-\d{1,2}-\d{1,2}\b"), ("%Y-%m-%d",)),
    (re.compile(r"\b\d{1,2}/\d{1,2}/\d{2,4}\b"), ("%m/%d/%Y", "%m/%d/%y")),
    (
        re.compile(
            r"\b(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*\s+\d{1,2}(?:,\s*\d{4})?\b",
            re.IGNORECASE,
        ),
        ("%B %d, %Y", "%b %d, %Y", "%B %d,%Y", "%b %d,%Y"),
    ),
    (
        re.compile(
            r"\b\d{1,2}\s+(?:jan|feb|mar|apr|may|jun|jul|aug|sep|oct|nov|dec)[a-z]*(?:\s+\d{4})?\b",
            re.IGNORECASE,
        ),
        ("%d %B %Y", "%d %b %Y"),
    ),
]

_RELATIVE_DATES: list[tuple[re.Pattern[str], int]] = [
    (re.compile(r"\btoday\b", re.IGNORECASE), 0),
    (re.compile(r"\btomorrow\b", re.IGNORECASE), 1),
    (re.compile(r"\bthis week\b", re.IGNORECASE), 7),
    (re.compile(r"\bnext week\b", re.IGNORECASE), 14),
]

_WEEKDAYS = ["monday", "tuesday", "wednesday", "thursday", "friday", "saturday", "sunday"]
_WEEKDAY_PATTERN = re.compile(r"\b(" + "|".join(_WEEKDAYS) + r")\b", re.IGNORECASE)

_MENTION = re.compile(r"@(\w+)")
_ASSIGNEE_PHRASE = re.compile(r"(?:assign(?:ed)?\s+to|responsible\s+for)\s+([A-Za-z ]+)", re.IGNORECASE)
_ASSIGNMENT_PHRASES = ["assign to", "assigned to", "responsible for", "owner"]

_TITLE_PREFIX = re.compile(
    r"^(?:need to|should|must|have to|implement|fix|create|add|remove|update)\s+", re.IGNORECASE
)
_TITLE_KEYWORD = re.compile(r"^(?:TODO|FIXME|ACTION|TASK|REMINDER):\s*", re.IGNORECASE)
_CONDITIONAL = re.compile(r"\b(?:if|maybe|perhaps|might|could)\b")
_NEGATION = re.compile(r"\b(?:not|don't|won't|can't|shouldn't)\b")
_LIST_MARKER = re.compile(r"^\s*(?:[-*]|\d+\.)\s")


def detect_patterns(text: str, today: date | None = None) -> list[DetectedActionItem]:
    """Detect action item candidates in *text* using the rule table.

    Args:
        text: Raw text to scan.
        today: Reference date for relative due dates (defaults to today).

    Returns:
        Deduplicated candidates sorted by descending confidence.
    """
    today = today or date.today()
    detected: list[DetectedActionItem] = []
    seen_spans: set[tuple[int, int]] = set()

    for rule in PATTERNS:
        for match in rule.pattern.finditer(text):
            if not match.group(0):
                continue
            content = (match.group(1) if match.lastindex else match.group(0)).strip()
            if len(content) < MIN_CONTENT_LENGTH:
                continue

            span = (match.start(), match.end())
            if span in seen_spans:
                continue
            seen_spans.add(span)

            position = TextPosition(*span)
            context = extract_context(text, position, CONTEXT_RADIUS)
            confidence = score_confidence(content, context, rule)
            if confidence < MIN_CONFIDENCE:
                continue

            detected.append(
                DetectedActionItem(
                    id=f"detected_{uuid.uuid4().hex[:12]}",
                    content=content,
                    type=rule.type,
                    priority=_determine_priority(content, context, rule.priority),
                    confidence=confidence,
                    suggested_title=_generate_title(content),
                    suggested_description=_generate_description(content, context),
                    suggested_due_date=extract_due_date(content, context, today),
                    suggested_assignee=extract_assignee(content, context),
                    text_position=position,
                    context=context,
                    detection_method=DetectionMethod.REGEX,
                    metadata=_extract_metadata(content, context),
                )
            )

    return deduplicate_items(detected)


def extract_context(text: str, position: TextPosition, radius: int) -> str:
    """Return the text window of *radius* characters around *position*."""
    start = max(0, position.start - radius)
    end = min(len(text), position.end + radius)
    return text[start:end]


def score_confidence(content: str, context: str, rule: DetectionPattern) -> float:
    """Combine the rule's base confidence with content and context signals."""
    confidence = rule.confidence_base
    confidence += _content_clarity(content)
    if rule.context_required:
        confidence += _context_relevance(context, rule.type)
    confidence += min(0.2, len(_urgency_indicators(f"{content} {context}")) * 0.1)
    confidence += _structural_cues(content, context)
    confidence -= _ambiguity_penalty(content, context)
    return max(0.0, min(1.0, confidence))


def extract_due_date(content: str, context: str, today: date | None = None) -> str | None:
    """Find a due date in *content* or its *context*, as ISO ``YYYY-MM-DD`` when parseable."""
    today = today or date.today()
    text = f"{content} {context}"

    for pattern, formats in _DATE_PATTERNS:
        match = pattern.search(text)
        if match:
            return _normalize_date(match.group(0), formats)

    for pattern, offset in _RELATIVE_DATES:
        if pattern.search(text):
            return (today + timedelta(days=offset)).isoformat()

    weekday = _WEEKDAY_PATTERN.search(text)
    if weekday:
        target = _WEEKDAYS.index(weekday.group(1).lower())
        days_ahead = (target - today.weekday()) % 7 or 7
        return (today + timedelta(days=days_ahead)).isoformat()

    return None


def extract_assignee(content: str, context: str) -> str | None:
    """Return an ``@mention`` handle or the name after an assignment phrase."""
    text = f"{content} {context}"
    mention = _MENTION.search(text)
    if mention:
        return mention.group(1)
    phrase = _ASSIGNEE_PHRASE.search(text)
    if phrase:
        return phrase.group(1).strip() or None
    return None


def _normalize_date(raw: str, formats: tuple[str, ...]) -> str:
    cleaned = re.sub(r"\s+", " ", raw.strip())
    for fmt in formats:
        try:
            return datetime.strptime(cleaned, fmt).date().isoformat()
        except ValueError:
            continue
    return raw


def _determine_priority(content: str, context: str, base: Priority) -> Priority:
    text = f"{content} {context}".lower()
    if any(keyword in text for keyword in URGENCY_KEYWORDS):
        return Priority.URGENT
    if any(keyword in text for keyword in LOW_PRIORITY_KEYWORDS):
        return Priority.LOW
    if any(term in text for term in _NEAR_DEADLINE_TERMS):
        return base.upgraded()
    return base


def _generate_title(content: str) -> str:
    title = _TITLE_KEYWORD.sub("", _TITLE_PREFIX.sub("", content)).strip()
    title = title[:1].upper() + title[1:]
    if len(title) > 60:
        title = title[:57] + "..."
    return title


def _generate_description(content: str, context: str) -> str | None:
    if len(context) <= len(content) + 20:
        return None
    content_start = context.find(content)
    if content_start <= 0:
        return None
    before = context[max(0, content_start - 50) : content_start].strip()
    after = context[content_start + len(content) : content_start + len(content) + 50].strip()
    if not before and not after:
        return None
    return f"{before} {content} {after}".strip()


def _content_clarity(content: str) -> float:
    score = 0.0
    if len(content) > 20:
        score += 0.1
    if len(content) > 50:
        score += 0.1
    lowered = content.lower()
    if any(verb in lowered for verb in _ACTION_VERBS):
        score += 0.15
    return score


def _context_relevance(context: str, item_type: ActionItemType) -> float:
    lowered = context.lower()
    matching = [k for k in _CONTEXT_KEYWORDS.get(item_type, []) if k in lowered]
    return min(0.2, len(matching) * 0.05)


def _structural_cues(content: str, context: str) -> float:
    score = 0.0
    if _LIST_MARKER.match(context):
        score += 0.1
    if content == content.upper() and len(content) > 3 and any(c.isalpha() for c in content):
        score += 0.05
    return score


def _ambiguity_penalty(content: str, context: str) -> float:
    text = f"{content} {context}"
    lowered = text.lower()
    penalty = 0.0
    if "?" in text:
        penalty += 0.1
    if _CONDITIONAL.search(lowered):
        penalty += 0.15
    if _NEGATION.search(lowered):
        penalty += 0.1
    return penalty


def _urgency_indicators(text: str) -> list[str]:
    lowered = text.lower()
    return [keyword for keyword in URGENCY_KEYWORDS if keyword in lowered]


def _assignment_indicators(text: str) -> list[str]:
    indicators = [f"@{handle}" for handle in _MENTION.findall(text)]
    lowered = text.lower()
    indicators.extend(phrase for phrase in _ASSIGNMENT_PHRASES if phrase in lowered)
    return indicators


def _extract_keywords(content: str) -> list[str]:
    keywords: list[str] = []
    for word in content.lower().split():
        if len(word) > 3 and word not in _STOP_WORDS and word not in keywords:
            keywords.append(word)
    return keywords[:5]


def _extract_metadata(content: str, context: str) -> ActionItemMetadata:
    combined = f"{content} {context}"
    return ActionItemMetadata(
        keywords=tuple(_extract_keywords(content)),
        urgency_indicators=tuple(_urgency_indicators(combined)),
        assignment_indicators=tuple(_assignment_indicators(combined)),
    )
