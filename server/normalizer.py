# =============================================================================
# NutriVision - Model Output Normalizer
# =============================================================================
# Turns the oracle's free-text answer into an AnalysisResult.  The oracle is
# a non-deterministic text generator: its answer may be wrapped in a fenced
# code block, surrounded by commentary, or carry values of the wrong type or
# range.  Every field is coerced here so nothing unvalidated reaches a stored
# record.
# =============================================================================

import json
import logging
import math
import re
from typing import Any, List

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator

from server.errors import UnparsableModelOutput
from shared.schemas import (
    DISH_SUGGESTIONS_CAP,
    HEALTH_SUGGESTIONS_CAP,
    AnalysisResult,
    Nutrition,
)

logger = logging.getLogger(__name__)

_FENCED_BLOCK = re.compile(r"```(?:json)?\s*\n?(.*?)```", re.IGNORECASE | re.DOTALL)

_DEFAULT_CONFIDENCE = 0.5


def _as_number(value: Any):
    """Return ``value`` as a finite number, or None if it is not numeric."""
    if isinstance(value, bool):
        return None
    # JSON integers are unbounded and may not fit in a float
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        number = value
    elif isinstance(value, str):
        try:
            number = float(value.strip())
        except (ValueError, OverflowError):
            return None
    else:
        return None
    if not math.isfinite(number):
        return None
    return number


def _as_amount(value: Any) -> int:
    number = _as_number(value)
    if number is None or number < 0:
        return 0
    return int(round(number))


def _as_strings(value: Any, cap: int) -> List[str]:
    if not isinstance(value, list):
        return []
    return [str(item) for item in value[:cap]]


class _RawNutrition(BaseModel):
    model_config = ConfigDict(extra="ignore")

    calories: int = 0
    protein: int = 0
    carbs: int = 0
    fat: int = 0
    fiber: int = 0
    gi: int = Field(default=0, validation_alias=AliasChoices("GI", "gi", "glycemicIndex"))
    gl: int = Field(default=0, validation_alias=AliasChoices("GL", "gl", "glycemicLoad"))

    @field_validator("*", mode="before")
    @classmethod
    def _coerce_amount(cls, value):
        return _as_amount(value)


class _RawAnalysis(BaseModel):
    """Loose decoding of the JSON object the oracle was asked to produce."""

    model_config = ConfigDict(extra="ignore")

    food_type: str = Field(default="Unknown", validation_alias="foodType")
    confidence: float = Field(default=_DEFAULT_CONFIDENCE)
    nutrition: _RawNutrition
    health_suggestions: List[str] = Field(
        default_factory=list, validation_alias="healthSuggestions"
    )
    dish_suggestions: List[str] = Field(
        default_factory=list, validation_alias="dishSuggestions"
    )

    @field_validator("food_type", mode="before")
    @classmethod
    def _coerce_food_type(cls, value):
        if value is None:
            return "Unknown"
        text = str(value).strip()
        return text or "Unknown"

    @field_validator("confidence", mode="before")
    @classmethod
    def _clamp_confidence(cls, value):
        number = _as_number(value)
        if number is None:
            return _DEFAULT_CONFIDENCE
        return max(0.0, min(1.0, number))

    @field_validator("health_suggestions", mode="before")
    @classmethod
    def _cap_health(cls, value):
        return _as_strings(value, HEALTH_SUGGESTIONS_CAP)

    @field_validator("dish_suggestions", mode="before")
    @classmethod
    def _cap_dishes(cls, value):
        return _as_strings(value, DISH_SUGGESTIONS_CAP)

    def to_result(self) -> AnalysisResult:
        return AnalysisResult(
            food_type=self.food_type,
            confidence=self.confidence,
            nutrition=Nutrition(**self.nutrition.model_dump()),
            health_suggestions=self.health_suggestions,
            dish_suggestions=self.dish_suggestions,
        )


def extract_json_text(raw: str) -> str:
    """
    Isolate the JSON object inside an oracle answer.

    Prefers the body of a fenced code block; otherwise takes the span from
    the first ``{`` to the last ``}``.  Returns the stripped input when
    neither is found.
    """
    text = str(raw or "").strip()
    if "```" in text:
        match = _FENCED_BLOCK.search(text)
        if match and match.group(1).strip():
            return match.group(1).strip()
    start = text.find("{")
    end = text.rfind("}")
    if start != -1 and end > start:
        return text[start:end + 1]
    return text


def normalize_analysis(raw: str) -> AnalysisResult:
    """
    Parse and coerce an oracle answer into an AnalysisResult.

    Args:
        raw: The textual content of the oracle's reply.

    Returns:
        AnalysisResult with every field within its bounds.

    Raises:
        UnparsableModelOutput: If no JSON object can be parsed, or the object
                               has no ``nutrition`` mapping.
    """
    text = extract_json_text(raw)
    try:
        parsed = json.loads(text)
    except ValueError as exc:
        raise UnparsableModelOutput("Oracle returned non-JSON or unparsable output") from exc

    if not isinstance(parsed, dict):
        raise UnparsableModelOutput(
            f"Oracle returned JSON {type(parsed).__name__}, expected an object"
        )
    if not isinstance(parsed.get("nutrition"), dict):
        raise UnparsableModelOutput("Oracle output has no nutrition object")

    # Field-level coercion cannot fail; only the shape checks above can
    result = _RawAnalysis.model_validate(parsed).to_result()
    logger.debug(
        "Normalized oracle output: %s (confidence=%.2f)",
        result.food_type, result.confidence,
    )
    return result
