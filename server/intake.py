# =============================================================================
# NutriVision - Upload Intake
# =============================================================================
# Validates an incoming food photo upload, stores the image bytes under a
# collision-resistant name and builds the initial processing record.
# Validation fails fast: a rejected upload leaves nothing on disk and never
# creates a record.
# =============================================================================

import logging
import math
import os
import uuid
from dataclasses import dataclass
from typing import BinaryIO, Optional

from server.errors import FileTooLarge, InvalidMimeType, InvalidWeight, MissingFile
from server.store import RecordIdAllocator, ResultStore
from shared.schemas import ImageMetadata, UploadRecord

logger = logging.getLogger(__name__)

UPLOAD_FIELD_NAME = "foodImage"
PUBLIC_UPLOADS_PATH = "/uploads"


@dataclass
class AcceptedUpload:
    """A validated upload: the processing record and where its image lives."""

    record: UploadRecord
    image_path: str


def parse_weight(raw: Optional[str]) -> float:
    """
    Parse the submitted weight in grams.

    Raises:
        InvalidWeight: If the value is missing, non-numeric, non-finite or
                       not strictly positive.
    """
    if raw is None or not str(raw).strip():
        raise InvalidWeight()
    try:
        weight = float(str(raw).strip())
    except ValueError:
        raise InvalidWeight()
    if not math.isfinite(weight) or weight <= 0:
        raise InvalidWeight()
    return weight


def check_content_type(content_type: Optional[str]) -> str:
    """Reject anything whose declared type is not in the ``image/`` category."""
    if not content_type or not content_type.lower().startswith("image/"):
        raise InvalidMimeType()
    return content_type


def read_limited(stream: BinaryIO, max_bytes: int) -> bytes:
    """
    Read an upload stream, refusing to buffer more than ``max_bytes``.

    Raises:
        FileTooLarge: If the stream holds more than ``max_bytes`` bytes.
    """
    data = stream.read(max_bytes + 1)
    if len(data) > max_bytes:
        megabytes = max_bytes / (1024 * 1024)
        raise FileTooLarge(f"File too large. Maximum size is {megabytes:g}MB.")
    return data


def storage_name(original_name: str) -> str:
    """Generate a unique storage file name keeping the original extension."""
    extension = os.path.splitext(original_name or "")[1].lower()
    return f"{UPLOAD_FIELD_NAME}-{uuid.uuid4().hex}{extension}"


class UploadIntake:
    """
    Turns a multipart upload into a stored image and a processing record.

    Args:
        uploads_dir: Directory the image bytes are written to.
        store:       ResultStore the processing record is published to.
        ids:         Allocator for record identifiers.
        max_bytes:   Size ceiling for one image.
    """

    def __init__(
        self,
        uploads_dir: str,
        store: ResultStore,
        ids: RecordIdAllocator,
        max_bytes: int,
    ):
        self._store = store
        self._uploads_dir = uploads_dir
        self._ids = ids
        self._max_bytes = max_bytes
        os.makedirs(uploads_dir, exist_ok=True)

    def accept(
        self,
        filename: Optional[str],
        content_type: Optional[str],
        stream: Optional[BinaryIO],
        weight: Optional[str],
    ) -> AcceptedUpload:
        """
        Validate and store one upload, then publish its processing record.

        Checks run in order: file present, image type, size, weight.

        Returns:
            AcceptedUpload with the new processing record.

        Raises:
            MissingFile, InvalidMimeType, FileTooLarge, InvalidWeight
        """
        if stream is None or not filename:
            raise MissingFile()
        content_type = check_content_type(content_type)
        data = read_limited(stream, self._max_bytes)
        grams = parse_weight(weight)

        stored_name = storage_name(filename)
        image_path = os.path.join(self._uploads_dir, stored_name)
        with open(image_path, "wb") as handle:
            handle.write(data)

        record = UploadRecord(
            id=self._ids.next_id(),
            image=ImageMetadata(
                filename=stored_name,
                original_name=filename,
                size_bytes=len(data),
                relative_path=f"{PUBLIC_UPLOADS_PATH}/{stored_name}",
                content_type=content_type,
            ),
            weight=grams,
        )
        self._store.write(record)
        logger.info(
            "Accepted upload %s as record %d (%d bytes, %gg)",
            filename, record.id, len(data), grams,
        )
        return AcceptedUpload(record=record, image_path=image_path)
