# =============================================================================
# NutriVision - Terminal Display
# =============================================================================
# Renders viewer status lines and analysis records as plain text.
# =============================================================================

import sys
from datetime import datetime
from typing import TextIO

from shared.schemas import UploadRecord

STATUS_WAITING = "System Ready - Waiting for Equipment"
STATUS_CONNECTION_ERROR = "Connection Error - Check Server"
STATUS_ANALYZING = "Analyzing..."
STATUS_COMPLETE = "Analysis Complete"


def local_time(moment: datetime) -> str:
    """Format a timestamp in the viewer's local time zone."""
    return moment.astimezone().strftime("%Y-%m-%d %H:%M:%S")


class ConsoleRenderer:
    """
    Writes viewer output to a text stream.

    Args:
        stream: Destination stream (defaults to stdout).
    """

    def __init__(self, stream: TextIO = None):
        self._stream = stream or sys.stdout

    def _write(self, text: str = "") -> None:
        print(text, file=self._stream, flush=True)

    def show_status(self, status: str, detail: str = "") -> None:
        self._write(f"[{status}] {detail}".rstrip())

    def show_processing(self, record: UploadRecord) -> None:
        """Render a record whose analysis has not finished yet."""
        self.show_status(STATUS_ANALYZING, "Started: " + local_time(record.timestamp))
        self._write(f"  Image     : {record.image.original_name} ({record.image.relative_path})")
        self._write(f"  Weight    : {record.weight:g}g")
        self._write("  Food Type : Processing")

    def show_result(self, record: UploadRecord) -> None:
        """Render a finished record with its full nutrition breakdown."""
        analysis = record.analysis
        nutrition = analysis.nutrition

        self.show_status(STATUS_COMPLETE, "Last analysis: " + local_time(record.timestamp))
        self._write("=" * 60)
        self._write(f"  Image      : {record.image.original_name} ({record.image.relative_path})")
        self._write(f"  Weight     : {record.weight:g}g")
        self._write(f"  Food Type  : {analysis.food_type}")
        self._write(f"  Confidence : {analysis.confidence * 100:.1f}%")
        self._write("-" * 60)
        self._write(f"  Nutritional Information (per {record.weight:g}g)")
        self._write(f"    Calories : {nutrition.calories}")
        self._write(f"    Protein  : {nutrition.protein}g")
        self._write(f"    Carbs    : {nutrition.carbs}g")
        self._write(f"    Fat      : {nutrition.fat}g")
        self._write(f"    Fiber    : {nutrition.fiber}g")
        self._write(f"    GI       : {nutrition.gi}")
        self._write(f"    GL       : {nutrition.gl}")
        self._write("-" * 60)
        self._write("  Health Suggestions")
        for suggestion in analysis.health_suggestions:
            self._write(f"    - {suggestion}")
        self._write("  Dish Suggestions")
        for suggestion in analysis.dish_suggestions:
            self._write(f"    - {suggestion}")
        self._write("=" * 60)
