"""Goal classification: match a journal entry against a user's goals.

One classification is one model call: a system instruction listing every
candidate goal plus the matching policy, and a user message carrying the
raw journal text. The model answers with a small JSON judgment that is
schema-checked before it is trusted.

Conservatism: anything short of a well-formed judgment at or above the
confidence threshold comes back as no-match. A false positive writes an
incorrect goal link and a bogus progress record; a false negative only
leaves the entry for a later run.
"""

from __future__ import annotations

import json
import logging
import math
from typing import Any, Dict, List, Optional, Sequence, Union

from jsonschema import Draft7Validator

from reflecta.goals import format_goal_candidates
from reflecta.protocols import ModelMessage, ModelProtocol
from reflecta.types import VALID_GOAL_LEVEL_VALUES, ClassificationResult, FlatGoalCandidate

logger = logging.getLogger(__name__)

# Judgments below this confidence are treated as no match at all
CONFIDENCE_THRESHOLD = 0.3

# Sampling settings for the classification call
CLASSIFY_TEMPERATURE = 0.3
CLASSIFY_MAX_TOKENS = 300


# =============================================================================
# Prompt
# =============================================================================

SYSTEM_PROMPT_TEMPLATE = (
    "You are an AI assistant that analyzes diary entries and matches them to user goals.\n"
    "\n"
    "User's Goals:\n"
    "{goals}\n"
    "\n"
    "Analyze the following diary content and determine if it relates to any of the "
    "user's goals. Consider:\n"
    "1. Direct mentions of goal topics\n"
    "2. Related activities or progress\n"
    "3. Emotional connections to goals\n"
    "4. Indirect references to goal themes\n"
    "\n"
    "Return your analysis in this exact JSON format:\n"
    "{{\n"
    '  "relatedGoalId": "goal-id-if-found-or-null",\n'
    '  "relatedGoalType": "main-or-sub-or-sub-sub-or-null",\n'
    '  "confidence": 0.0-1.0,\n'
    '  "reason": "brief explanation"\n'
    "}}\n"
    "\n"
    "Only match if confidence is above {threshold}. Be conservative: "
    "no match is better than a weak match."
)


def build_system_prompt(
    candidates: Sequence[FlatGoalCandidate], threshold: float = CONFIDENCE_THRESHOLD
) -> str:
    """Build the instruction message embedding the candidate list and policy."""
    return SYSTEM_PROMPT_TEMPLATE.format(
        goals=format_goal_candidates(candidates),
        threshold=threshold,
    )


# =============================================================================
# Judgment parsing
# =============================================================================

JUDGMENT_SCHEMA: Dict[str, Any] = {
    "type": "object",
    "properties": {
        "relatedGoalId": {"type": ["string", "null"], "minLength": 1},
        "relatedGoalType": {
            "type": ["string", "null"],
            "enum": sorted(VALID_GOAL_LEVEL_VALUES) + [None],
        },
        "confidence": {"type": "number", "minimum": 0, "maximum": 1},
        "reason": {"type": "string"},
    },
    "required": ["relatedGoalId", "relatedGoalType", "confidence"],
}

_judgment_validator = Draft7Validator(JUDGMENT_SCHEMA)


class JudgmentParseError(ValueError):
    """Structured parse failure for a model judgment.

    Returned (not raised) by parse_judgment so that a malformed model answer
    flows through the pipeline as a value.
    """

    def __init__(self, reason: str, raw: str):
        super().__init__(f"Unusable classification payload: {reason}")
        self.reason = reason
        self.raw = raw


def _strip_code_fence(text: str) -> str:
    """Remove a surrounding Markdown code fence, if any."""
    text = text.strip()
    if text.startswith("```"):
        lines = text.split("\n")
        # Remove first line (```json or ```)
        lines = lines[1:]
        # Remove last line (```)
        if lines and lines[-1].strip() == "```":
            lines = lines[:-1]
        text = "\n".join(lines)
    return text.strip()


def parse_judgment(text: Optional[str]) -> Union[Dict[str, Any], JudgmentParseError]:
    """Parse and schema-check a model judgment. Never raises on bad input."""
    if not text or not text.strip():
        return JudgmentParseError("empty payload", text or "")

    body = _strip_code_fence(text)
    try:
        data = json.loads(body)
    except json.JSONDecodeError as exc:
        return JudgmentParseError(f"invalid JSON ({exc.msg})", text)

    errors = sorted(_judgment_validator.iter_errors(data), key=lambda err: list(err.path))
    if errors:
        first = errors[0]
        path = ".".join(str(part) for part in first.path) or "(root)"
        return JudgmentParseError(f"schema mismatch at {path}: {first.message}", text)

    # NaN decodes as a float and compares false against minimum/maximum
    if not math.isfinite(data["confidence"]):
        return JudgmentParseError("confidence is not a finite number", text)

    return data


# =============================================================================
# Classifier
# =============================================================================


class GoalClassifier:
    """Classifies journal text against a flattened goal list.

    With no model bound (credential missing), every call returns no-match
    without touching the network. Provider errors are not caught here;
    the caller decides how a failed call is accounted.
    """

    def __init__(
        self,
        model: Optional[ModelProtocol],
        *,
        threshold: float = CONFIDENCE_THRESHOLD,
        temperature: float = CLASSIFY_TEMPERATURE,
        max_tokens: int = CLASSIFY_MAX_TOKENS,
    ) -> None:
        self._model = model
        self._threshold = threshold
        self._temperature = temperature
        self._max_tokens = max_tokens

    @property
    def model(self) -> Optional[ModelProtocol]:
        return self._model

    @property
    def threshold(self) -> float:
        return self._threshold

    @property
    def enabled(self) -> bool:
        return self._model is not None

    def build_messages(self, content: str) -> List[ModelMessage]:
        return [ModelMessage(role="user", content=content)]

    def classify(
        self, candidates: Sequence[FlatGoalCandidate], content: str
    ) -> ClassificationResult:
        """Decide which candidate (if any) the journal text relates to."""
        if not candidates:
            return ClassificationResult.no_match("no goal candidates")

        if not self.enabled:
            logger.debug("No classification model configured, skipping goal mapping")
            return ClassificationResult.no_match("classification model not configured")

        response = self._model.generate(
            self.build_messages(content),
            system=build_system_prompt(candidates, self._threshold),
            temperature=self._temperature,
            max_tokens=self._max_tokens,
        )

        parsed = parse_judgment(response.content)
        if isinstance(parsed, JudgmentParseError):
            logger.warning("Discarding classification response: %s", parsed.reason)
            return ClassificationResult.no_match(parsed.reason)

        confidence = float(parsed["confidence"])
        if confidence < self._threshold:
            return ClassificationResult.no_match(parsed.get("reason") or "")

        return ClassificationResult(
            related_goal_id=parsed["relatedGoalId"],
            related_goal_type=parsed.get("relatedGoalType"),
            confidence=confidence,
            reason=parsed.get("reason") or "",
        )
