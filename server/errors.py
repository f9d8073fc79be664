# =============================================================================
# NutriVision - Error Taxonomy
# =============================================================================
# Validation errors reject an upload before any record exists and surface as
# HTTP 400.  Upstream and parse errors happen after the upload was accepted;
# the dispatcher recovers from them into a fallback record and they never
# reach the HTTP layer.
# =============================================================================


class NutriVisionError(Exception):
    """Base class for all NutriVision errors."""


# ---------------------------------------------------------------------------
# Upload validation (HTTP 400)
# ---------------------------------------------------------------------------
class ValidationError(NutriVisionError):
    """An upload was rejected before a record was created."""

    message = "Invalid upload"

    def __init__(self, message: str = None):
        super().__init__(message or self.message)
        self.message = message or self.message


class MissingFile(ValidationError):
    message = "No image file uploaded"


class InvalidMimeType(ValidationError):
    message = "Only image files are allowed."


class FileTooLarge(ValidationError):
    message = "File too large. Maximum size is 5MB."


class InvalidWeight(ValidationError):
    message = "Valid weight is required"


# ---------------------------------------------------------------------------
# Oracle call failures (recovered into a fallback record)
# ---------------------------------------------------------------------------
class UpstreamError(NutriVisionError):
    """The oracle call itself failed."""


class OracleTimeoutError(UpstreamError):
    """The oracle did not answer within the configured timeout."""


class OracleUnavailableError(UpstreamError):
    """The oracle could not be reached."""


class OracleResponseError(UpstreamError):
    """The oracle answered with a non-success status or a malformed envelope."""


# ---------------------------------------------------------------------------
# Model output decoding (recovered into a fallback record)
# ---------------------------------------------------------------------------
class UnparsableModelOutput(NutriVisionError):
    """The oracle's text did not contain a usable JSON analysis."""
