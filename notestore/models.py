from datetime import datetime, timezone

from pydantic import BaseModel, ConfigDict, Field, field_validator
from pydantic.alias_generators import to_camel

SCHEMA_VERSION = 1

TABLE_NAME = "voice_notes"

SCHEMA_SQL = """
CREATE TABLE IF NOT EXISTS voice_notes (
    id            INTEGER PRIMARY KEY AUTOINCREMENT NOT NULL,
    title         TEXT    NOT NULL,
    filePath      TEXT    NOT NULL,
    duration      INTEGER NOT NULL,
    fileSize      INTEGER NOT NULL,
    createdAt     INTEGER NOT NULL,
    transcript    TEXT,
    summary       TEXT,
    keyPoints     TEXT    NOT NULL,
    isProcessing  INTEGER NOT NULL
);
"""

# (name, declared type, notnull, pk) as reported by PRAGMA table_info
EXPECTED_COLUMNS = (
    ("id", "INTEGER", 1, 1),
    ("title", "TEXT", 1, 0),
    ("filePath", "TEXT", 1, 0),
    ("duration", "INTEGER", 1, 0),
    ("fileSize", "INTEGER", 1, 0),
    ("createdAt", "INTEGER", 1, 0),
    ("transcript", "TEXT", 0, 0),
    ("summary", "TEXT", 0, 0),
    ("keyPoints", "TEXT", 1, 0),
    ("isProcessing", "INTEGER", 1, 0),
)

NOT_NULL_COLUMNS = tuple(name for name, _, notnull, _ in EXPECTED_COLUMNS if notnull)


class VoiceNote(BaseModel):
    """A recorded voice note and whatever the processing pipeline has produced for it.

    Fields accept either their Python names or the column names
    (``filePath``, ``createdAt``...). ``id`` stays ``None`` until the note
    has been inserted.
    """

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    id: int | None = None
    title: str
    file_path: str
    duration: int = Field(ge=0)
    file_size: int = Field(ge=0)
    created_at: datetime
    transcript: str | None = None
    summary: str | None = None
    key_points: list[str] = Field(default_factory=list)
    is_processing: bool = False

    @field_validator("created_at")
    @classmethod
    def _millisecond_utc(cls, value: datetime) -> datetime:
        # Stored as epoch millis: keep only what survives the column.
        if value.tzinfo is None:
            value = value.replace(tzinfo=timezone.utc)
        else:
            value = value.astimezone(timezone.utc)
        return value.replace(microsecond=value.microsecond // 1000 * 1000)
