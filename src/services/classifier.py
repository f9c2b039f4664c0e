"""Grievance classifier: department and priority from complaint text.

Two paths:

1. **Language model** -- the configured departments (name and
   description) and the grievance text are sent to Gemini, which must
   answer with a JSON object naming one of those departments.
2. **Keyword fallback** -- used whenever the first path fails for any
   reason.  It never raises and always yields a concrete department,
   ``"General"`` when no departments are configured at all.

Department descriptions are the only taxonomy input for both paths, so a
well-described new department improves routing without code changes.
"""

from __future__ import annotations

import json
import re
from typing import TYPE_CHECKING, Any, Final

import structlog

from src.models.department import Department
from src.models.enums import ClassificationMethod, Priority
from src.models.grievance import Classification
from src.services.errors import ClassificationError

if TYPE_CHECKING:
    from src.services.llm import LLMService

logger = structlog.get_logger(__name__)

DEFAULT_DEPARTMENT: Final[str] = "General"
FALLBACK_CONFIDENCE: Final[float] = 0.6
FALLBACK_REASON: Final[str] = "Fallback keyword-based classification"
MANUAL_REASON: Final[str] = "Manually selected by user"
_DEFAULT_AI_REASON: Final[str] = "Auto-classified"
_DEFAULT_AI_CONFIDENCE: Final[float] = 0.8

# (word in department description, words in grievance text)
_DESCRIPTION_KEYWORDS: Final[tuple[tuple[str, tuple[str, ...]], ...]] = (
    ("fees", ("fees", "payment")),
    ("account", ("account",)),
    ("cleaning", ("clean", "dirty")),
    ("security", ("security", "lost")),
    ("camera", ("camera",)),
)

_URGENT_WORDS: Final[tuple[str, ...]] = ("urgent", "emergency", "immediately")
_MINOR_WORDS: Final[tuple[str, ...]] = ("minor", "suggestion")

_CODE_FENCE_RE: Final[re.Pattern[str]] = re.compile(r"^```(?:json)?\s*|\s*```$", re.IGNORECASE)

_CLASSIFY_PROMPT: Final[str] = """\
You are an AI classifier for college grievances. Analyze the following \
grievance and classify it.

Title: {title}
Description: {description}

Available Departments:
{department_list}

Classify into:
- department: choose the most appropriate department from [{department_names}]
- priority: one of [High, Medium, Low] based on urgency and severity
- reason: brief explanation of your classification

Return ONLY valid JSON with this exact structure:
{{"department": "...", "priority": "...", "reason": "...", "confidence": 0.95}}\
"""


def manual_classification(department: str) -> Classification:
    """Classification for a submitter-chosen department."""
    return Classification(
        department=department,
        priority=Priority.MEDIUM,
        reason=MANUAL_REASON,
        confidence=1.0,
        method=ClassificationMethod.MANUAL,
    )


def strip_code_fences(text: str) -> str:
    """Remove a surrounding markdown code fence, if any."""
    return _CODE_FENCE_RE.sub("", text.strip()).strip()


def build_prompt(title: str, description: str, departments: list[Department]) -> str:
    return _CLASSIFY_PROMPT.format(
        title=title,
        description=description,
        department_list="\n".join(f"{d.name}: {d.description}" for d in departments),
        department_names=", ".join(d.name for d in departments),
    )


def parse_response(text: str, departments: list[Department]) -> Classification:
    """Validate a model reply against the configured departments.

    Raises :class:`ClassificationError` on anything unusable.
    """
    try:
        parsed: Any = json.loads(strip_code_fences(text))
    except json.JSONDecodeError as exc:
        raise ClassificationError("Model reply is not valid JSON") from exc
    if not isinstance(parsed, dict):
        raise ClassificationError("Model reply is not a JSON object")

    names = {d.name for d in departments}
    department = parsed.get("department")
    if not isinstance(department, str) or department not in names:
        raise ClassificationError(f"Unknown department in model reply: {department!r}")

    try:
        priority = Priority(parsed.get("priority"))
    except ValueError as exc:
        raise ClassificationError(f"Invalid priority in model reply: {parsed.get('priority')!r}") from exc

    # Missing, null or zero confidence all mean "not reported".
    raw_confidence = parsed.get("confidence") or _DEFAULT_AI_CONFIDENCE
    try:
        confidence = float(raw_confidence)
    except (TypeError, ValueError) as exc:
        raise ClassificationError(f"Invalid confidence in model reply: {raw_confidence!r}") from exc
    if not 0.0 <= confidence <= 1.0:
        raise ClassificationError(f"Confidence out of range: {confidence}")

    reason = parsed.get("reason") or _DEFAULT_AI_REASON
    return Classification(
        department=department,
        priority=priority,
        reason=str(reason),
        confidence=confidence,
        method=ClassificationMethod.AI,
    )


def _matches(department: Department, text: str) -> bool:
    if department.name.lower() in text:
        return True
    description = department.description.lower()
    return any(
        marker in description and any(word in text for word in words)
        for marker, words in _DESCRIPTION_KEYWORDS
    )


def fallback_classification(title: str, description: str, departments: list[Department]) -> Classification:
    """Keyword-based classification.  Never raises."""
    text = f"{title} {description}".lower()

    department = departments[0].name if departments else DEFAULT_DEPARTMENT
    for candidate in departments:
        if _matches(candidate, text):
            department = candidate.name
            break

    if any(word in text for word in _URGENT_WORDS):
        priority = Priority.HIGH
    elif any(word in text for word in _MINOR_WORDS):
        priority = Priority.LOW
    else:
        priority = Priority.MEDIUM

    return Classification(
        department=department,
        priority=priority,
        reason=FALLBACK_REASON,
        confidence=FALLBACK_CONFIDENCE,
        method=ClassificationMethod.FALLBACK,
    )


class GrievanceClassifier:
    """Classify grievances with the LLM, degrading to keywords."""

    __slots__ = ("_llm",)

    def __init__(self, llm: LLMService | None = None) -> None:
        self._llm = llm

    async def _classify_with_llm(
        self,
        title: str,
        description: str,
        departments: list[Department],
    ) -> Classification:
        if self._llm is None:
            raise ClassificationError("No language model configured")
        if not departments:
            raise ClassificationError("No departments configured")
        result = await self._llm.generate(build_prompt(title, description, departments))
        return parse_response(result.text, departments)

    async def classify(
        self,
        title: str,
        description: str,
        departments: list[Department],
    ) -> Classification:
        try:
            classification = await self._classify_with_llm(title, description, departments)
        except Exception as exc:
            logger.warning(
                "classifier.fallback_used",
                error=str(exc),
                error_type=type(exc).__name__,
                department_count=len(departments),
            )
            return fallback_classification(title, description, departments)

        logger.info(
            "classifier.ai_classified",
            department=classification.department,
            priority=classification.priority.value,
            confidence=classification.confidence,
        )
        return classification
