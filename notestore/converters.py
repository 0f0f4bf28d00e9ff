"""Conversion between VoiceNote objects and voice_notes rows."""

import json
from datetime import datetime, timedelta, timezone

from pydantic import ValidationError

from notestore.errors import IntegrityError
from notestore.models import NOT_NULL_COLUMNS, VoiceNote

EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)
_ONE_MS = timedelta(milliseconds=1)


def datetime_to_millis(value: datetime | None) -> int | None:
    if value is None:
        return None
    if value.tzinfo is None:
        value = value.replace(tzinfo=timezone.utc)
    return (value - EPOCH) // _ONE_MS


def millis_to_datetime(value: int) -> datetime:
    if isinstance(value, bool) or not isinstance(value, int):
        raise IntegrityError(f"createdAt is not an integer epoch millis value: {value!r}")
    try:
        return EPOCH + timedelta(milliseconds=value)
    except OverflowError as e:
        raise IntegrityError(f"createdAt is out of range: {value!r}") from e


def encode_key_points(points: list[str] | None) -> str | None:
    """Serialize key points as a JSON array.

    A JSON array keeps order, tells ``[]`` apart from ``[""]`` and is safe for
    items containing commas, quotes or newlines. ``None`` is passed through so
    the NOT NULL constraint rejects it.
    """
    if points is None:
        return None
    return json.dumps(list(points), ensure_ascii=False)


def decode_key_points(raw: str) -> list[str]:
    try:
        points = json.loads(raw)
    except (TypeError, ValueError) as e:
        raise IntegrityError(f"keyPoints is not a JSON array: {raw!r}") from e
    if not isinstance(points, list) or not all(isinstance(p, str) for p in points):
        raise IntegrityError(f"keyPoints is not a list of strings: {raw!r}")
    return points


def note_to_params(note: VoiceNote) -> dict:
    """Column values for a note, keyed by column name."""
    return {
        "id": note.id,
        "title": note.title,
        "filePath": note.file_path,
        "duration": note.duration,
        "fileSize": note.file_size,
        "createdAt": datetime_to_millis(note.created_at),
        "transcript": note.transcript,
        "summary": note.summary,
        "keyPoints": encode_key_points(note.key_points),
        "isProcessing": None if note.is_processing is None else int(note.is_processing),
    }


def row_to_note(row) -> VoiceNote:
    """Build a VoiceNote from a row mapping.

    Raises IntegrityError instead of defaulting anything the schema
    declares as required.
    """
    data = dict(row)
    missing = [col for col in NOT_NULL_COLUMNS if data.get(col) is None]
    if missing:
        raise IntegrityError(
            f"voice_notes row {data.get('id')}: null in non-nullable column(s) {', '.join(missing)}"
        )

    data["createdAt"] = millis_to_datetime(data["createdAt"])
    data["keyPoints"] = decode_key_points(data["keyPoints"])
    if data["isProcessing"] not in (0, 1):
        raise IntegrityError(f"voice_notes row {data['id']}: isProcessing is not 0 or 1: {data['isProcessing']!r}")
    data["isProcessing"] = data["isProcessing"] == 1
    try:
        return VoiceNote.model_validate(data)
    except ValidationError as e:
        raise IntegrityError(f"voice_notes row {data['id']} is invalid: {e}") from e
