from datetime import datetime, timedelta, timezone

import pytest

from notestore.database import NoteStore
from notestore.models import VoiceNote

T0 = datetime(2024, 3, 1, 9, 30, tzinfo=timezone.utc)


@pytest.fixture
def db_path(tmp_path):
    """A fresh database file for each test."""
    return tmp_path / "voicenotes.db"


@pytest.fixture
def store(db_path):
    store = NoteStore(db_path, timeout=2.0)
    yield store
    store.close()


@pytest.fixture
def make_note():
    def _make_note(title="Meeting", minutes_after=0, **overrides):
        fields = {
            "title": title,
            "file_path": f"/audio/{title.lower().replace(' ', '_')}.m4a",
            "duration": 120,
            "file_size": 48000,
            "created_at": T0 + timedelta(minutes=minutes_after),
            "is_processing": True,
        }
        fields.update(overrides)
        return VoiceNote(**fields)

    return _make_note
