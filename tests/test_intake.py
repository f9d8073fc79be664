import io
import os
import re

import pytest

from server.errors import FileTooLarge, InvalidMimeType, InvalidWeight, MissingFile
from server.intake import (
    UploadIntake,
    check_content_type,
    parse_weight,
    read_limited,
)
from server.store import RecordIdAllocator, ResultStore
from shared.schemas import AnalysisStatus


@pytest.fixture
def store() -> ResultStore:
    return ResultStore()


@pytest.fixture
def intake(tmp_path, store) -> UploadIntake:
    return UploadIntake(
        uploads_dir=str(tmp_path / "uploads"),
        store=store,
        ids=RecordIdAllocator(start=100),
        max_bytes=1024,
    )


@pytest.mark.parametrize("raw, expected", [("250", 250.0), (" 12.5 ", 12.5), ("1e2", 100.0)])
def test_parse_weight_accepts_positive_numbers(raw, expected) -> None:
    assert parse_weight(raw) == expected


@pytest.mark.parametrize("raw", [None, "", "   ", "abc", "0", "-3", "nan", "inf"])
def test_parse_weight_rejects_invalid_values(raw) -> None:
    with pytest.raises(InvalidWeight):
        parse_weight(raw)


@pytest.mark.parametrize("content_type", [None, "", "text/plain", "application/pdf", "video/mp4"])
def test_non_image_types_are_rejected(content_type) -> None:
    with pytest.raises(InvalidMimeType):
        check_content_type(content_type)


def test_image_types_are_accepted() -> None:
    assert check_content_type("image/jpeg") == "image/jpeg"
    assert check_content_type("IMAGE/PNG") == "IMAGE/PNG"


def test_read_limited_enforces_ceiling() -> None:
    assert read_limited(io.BytesIO(b"x" * 10), 10) == b"x" * 10
    with pytest.raises(FileTooLarge):
        read_limited(io.BytesIO(b"x" * 11), 10)


def test_accept_stores_image_and_publishes_processing_record(intake, store, tmp_path, jpeg_bytes) -> None:
    jpeg = jpeg_bytes[:1024]
    accepted = intake.accept("Apple.JPG", "image/jpeg", io.BytesIO(jpeg), "250")
    record = accepted.record

    assert record.id == 100
    assert record.status is AnalysisStatus.PROCESSING
    assert record.weight == 250.0
    assert re.fullmatch(r"foodImage-[0-9a-f]{32}\.jpg", record.image.filename)
    assert record.image.original_name == "Apple.JPG"
    assert record.image.size_bytes == len(jpeg)
    assert record.image.relative_path == f"/uploads/{record.image.filename}"
    assert record.image.content_type == "image/jpeg"
    assert accepted.image_path == os.path.join(str(tmp_path / "uploads"), record.image.filename)
    with open(accepted.image_path, "rb") as handle:
        assert handle.read() == jpeg
    assert store.read() is record


def test_each_upload_gets_new_id_and_file(intake) -> None:
    first = intake.accept("a.png", "image/png", io.BytesIO(b"one"), "10")
    second = intake.accept("a.png", "image/png", io.BytesIO(b"two"), "20")

    assert first.record.id != second.record.id
    assert first.image_path != second.image_path


@pytest.mark.parametrize(
    "filename, content_type, body, weight, error",
    [
        (None, "image/jpeg", b"data", "100", MissingFile),
        ("", "image/jpeg", b"data", "100", MissingFile),
        ("notes.txt", "text/plain", b"data", "100", InvalidMimeType),
        ("big.jpg", "image/jpeg", b"x" * 1025, "100", FileTooLarge),
        ("food.jpg", "image/jpeg", b"data", "zero", InvalidWeight),
        ("food.jpg", "image/jpeg", b"data", None, InvalidWeight),
    ],
)
def test_rejected_upload_creates_nothing(intake, store, tmp_path, filename, content_type, body, weight, error) -> None:
    with pytest.raises(error):
        intake.accept(filename, content_type, io.BytesIO(body), weight)

    assert store.read() is None
    assert os.listdir(tmp_path / "uploads") == []


def test_missing_stream_is_missing_file(intake) -> None:
    with pytest.raises(MissingFile):
        intake.accept("food.jpg", "image/jpeg", None, "100")


def test_file_too_large_message_names_ceiling(tmp_path) -> None:
    intake = UploadIntake(str(tmp_path), ResultStore(), RecordIdAllocator(), 5 * 1024 * 1024)
    with pytest.raises(FileTooLarge) as excinfo:
        intake.accept("big.jpg", "image/jpeg", io.BytesIO(b"x" * (5 * 1024 * 1024 + 1)), "100")
    assert excinfo.value.message == "File too large. Maximum size is 5MB."
