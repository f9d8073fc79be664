# =============================================================================
# NutriVision - Shared API Schemas
# =============================================================================
# Pydantic models defining the data contracts between the analysis server and
# its clients (the uploading equipment and the polling viewer).
#
# Python attributes are snake_case; the JSON wire format is camelCase
# (``foodType``, ``healthSuggestions``, ``originalName``...) with the glycemic
# fields spelled ``GI`` and ``GL``.  All models are immutable: a record is
# replaced as a whole, never edited in place.
# =============================================================================

from datetime import datetime, timedelta, timezone
from enum import Enum
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

HEALTH_SUGGESTIONS_CAP = 4
DISH_SUGGESTIONS_CAP = 3

FALLBACK_SUGGESTION = "Unable to get detailed analysis; showing fallback values"


def utc_now() -> datetime:
    """Current time as a timezone-aware UTC datetime."""
    return datetime.now(timezone.utc)


class _WireModel(BaseModel):
    model_config = ConfigDict(
        alias_generator=to_camel,
        populate_by_name=True,
        frozen=True,
    )


class AnalysisStatus(str, Enum):
    """Lifecycle state of an UploadRecord."""

    PROCESSING = "processing"
    COMPLETE = "complete"
    FAILED_FALLBACK = "failed_fallback"

    @property
    def is_terminal(self) -> bool:
        return self is not AnalysisStatus.PROCESSING


class Nutrition(_WireModel):
    """
    Nutrition estimate for the submitted weight.

    Attributes:
        calories: kcal for the provided weight.
        protein:  grams.
        carbs:    grams.
        fat:      grams.
        fiber:    grams.
        gi:       glycemic index (``GI`` on the wire).
        gl:       glycemic load (``GL`` on the wire).
    """

    calories: int = Field(default=0, ge=0)
    protein: int = Field(default=0, ge=0)
    carbs: int = Field(default=0, ge=0)
    fat: int = Field(default=0, ge=0)
    fiber: int = Field(default=0, ge=0)
    gi: int = Field(default=0, ge=0, alias="GI")
    gl: int = Field(default=0, ge=0, alias="GL")


class AnalysisResult(_WireModel):
    """
    Structured nutrition analysis of one food photo.

    Attributes:
        food_type:          Name of the primary food item.
        confidence:         Model confidence in [0, 1].
        nutrition:          Nutrition values, all non-negative integers.
        health_suggestions: Up to four short suggestions.
        dish_suggestions:   Up to three dish ideas.
    """

    food_type: str
    confidence: float = Field(ge=0.0, le=1.0)
    nutrition: Nutrition = Field(default_factory=Nutrition)
    health_suggestions: List[str] = Field(
        default_factory=list, max_length=HEALTH_SUGGESTIONS_CAP
    )
    dish_suggestions: List[str] = Field(
        default_factory=list, max_length=DISH_SUGGESTIONS_CAP
    )

    @classmethod
    def placeholder(cls) -> "AnalysisResult":
        """Zeroed analysis carried by a record while it is processing."""
        return cls(food_type="Processing", confidence=0.0)

    @classmethod
    def fallback(cls, suggestion: str = FALLBACK_SUGGESTION) -> "AnalysisResult":
        """Conservative analysis used when the oracle could not be used."""
        return cls(
            food_type="Unknown",
            confidence=0.5,
            health_suggestions=[suggestion],
        )


class ImageMetadata(_WireModel):
    """
    Stored image belonging to an upload.

    Attributes:
        filename:      Generated storage name inside the uploads directory.
        original_name: File name as sent by the client.
        size_bytes:    Size of the stored bytes.
        relative_path: Public URL of the stored image.
        content_type:  Declared MIME type of the upload.
    """

    filename: str
    original_name: str
    size_bytes: int = Field(ge=0)
    relative_path: str
    content_type: str = "application/octet-stream"


class UploadRecord(_WireModel):
    """
    One full upload-through-analysis cycle.

    Created ``processing`` at intake and finished exactly once, by the
    background analysis, into ``complete`` or ``failed_fallback``.
    """

    id: int
    image: ImageMetadata
    weight: float = Field(gt=0)
    status: AnalysisStatus = AnalysisStatus.PROCESSING
    analysis: AnalysisResult = Field(default_factory=AnalysisResult.placeholder)
    timestamp: datetime = Field(default_factory=utc_now)

    def finish(self, status: AnalysisStatus, analysis: AnalysisResult) -> "UploadRecord":
        """
        Return the terminal successor of this record.

        The successor keeps id, image and weight, and carries a fresh
        timestamp.

        Raises:
            ValueError: If this record is already terminal or ``status`` is
                        not a terminal status.
        """
        if self.status.is_terminal:
            raise ValueError(f"Record {self.id} is already {self.status.value}")
        if not status.is_terminal:
            raise ValueError(f"Cannot finish record {self.id} as {status.value}")
        # Strictly later than the previous timestamp so pollers see a change
        timestamp = max(utc_now(), self.timestamp + timedelta(microseconds=1))
        return self.model_copy(
            update={"status": status, "analysis": analysis, "timestamp": timestamp}
        )


class AnalysisEnvelope(BaseModel):
    """Response envelope of the analysis endpoints."""

    success: bool
    data: Optional[UploadRecord] = None
    error: Optional[str] = None


class HealthResponse(BaseModel):
    status: str
    timestamp: str
