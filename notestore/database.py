import itertools
import logging
import sqlite3
import threading
import weakref
from contextlib import contextmanager
from pathlib import Path
from typing import Callable

import config
from notestore.converters import note_to_params, row_to_note
from notestore.errors import (
    ConstraintViolation,
    NoteStoreError,
    SchemaError,
    StoreClosedError,
    StoreIOError,
)
from notestore.live import ObserverRegistry, Subscription
from notestore.models import EXPECTED_COLUMNS, SCHEMA_SQL, SCHEMA_VERSION, TABLE_NAME, VoiceNote

logger = logging.getLogger(__name__)

_INSERT_SQL = """
INSERT INTO voice_notes
    (title, filePath, duration, fileSize, createdAt, transcript, summary, keyPoints, isProcessing)
VALUES
    (:title, :filePath, :duration, :fileSize, :createdAt, :transcript, :summary, :keyPoints, :isProcessing)
"""

_UPDATE_SQL = """
UPDATE voice_notes SET
    title = :title, filePath = :filePath, duration = :duration, fileSize = :fileSize,
    createdAt = :createdAt, transcript = :transcript, summary = :summary,
    keyPoints = :keyPoints, isProcessing = :isProcessing
WHERE id = :id
"""

_LIST_SQL = "SELECT * FROM voice_notes ORDER BY createdAt DESC, id DESC"


class _ConnectionOwner:
    """Per-thread token, collected together with its thread's locals."""


def _release_connection(connections: dict, lock, key: int):
    with lock:
        conn = connections.pop(key, None)
    if conn is not None:
        conn.close()


@contextmanager
def _translate_errors():
    try:
        yield
    except sqlite3.IntegrityError as e:
        raise ConstraintViolation(str(e)) from e
    except sqlite3.DatabaseError as e:
        raise StoreIOError(str(e)) from e


class NoteStore:
    """Voice notes persisted in a single SQLite table.

    Each thread gets its own connection to the same file. The database runs
    in WAL mode, so readers are not held up by a writer while SQLite
    serializes the writers themselves. Every write is one transaction and,
    once committed, re-publishes the ordered listing to the observers
    registered through ``observe_all``.
    """

    def __init__(self, db_path: Path, timeout: float = config.DB_TIMEOUT):
        self.db_path = Path(db_path)
        self.timeout = timeout
        self.db_path.parent.mkdir(parents=True, exist_ok=True)
        self._local = threading.local()
        self._connections: dict[int, sqlite3.Connection] = {}
        self._conn_keys = itertools.count()
        self._conn_lock = threading.RLock()
        self._closed = False
        self._observers = ObserverRegistry(TABLE_NAME)
        try:
            with _translate_errors():
                self._init_schema()
        except NoteStoreError:
            self.close()
            raise
        logger.info("Note store opened at %s", self.db_path)

    # -- Connections --

    def _get_conn(self) -> sqlite3.Connection:
        if self._closed:
            raise StoreClosedError(f"Note store at {self.db_path} is closed")
        conn = getattr(self._local, "conn", None)
        if conn is None:
            # check_same_thread is off only so close() can reach every connection.
            conn = sqlite3.connect(str(self.db_path), timeout=self.timeout, check_same_thread=False)
            key = next(self._conn_keys)
            with self._conn_lock:
                self._connections[key] = conn
            self._local.conn = conn
            # The owner dies with the thread's locals, taking the connection with it.
            self._local.owner = owner = _ConnectionOwner()
            weakref.finalize(owner, _release_connection, self._connections, self._conn_lock, key)
            conn.row_factory = sqlite3.Row
            conn.execute("PRAGMA journal_mode=WAL")
        return conn

    def _init_schema(self):
        conn = self._get_conn()
        version = conn.execute("PRAGMA user_version").fetchone()[0]
        if version > SCHEMA_VERSION:
            raise SchemaError(
                f"Database schema version {version} is newer than supported by code ({SCHEMA_VERSION})"
            )

        conn.executescript(SCHEMA_SQL)

        found = tuple(
            (row["name"], row["type"].upper(), row["notnull"], row["pk"])
            for row in conn.execute(f"PRAGMA table_info({TABLE_NAME})")
        )
        if found != EXPECTED_COLUMNS:
            raise SchemaError(
                f"{TABLE_NAME} table does not match the expected schema.\n"
                f" Expected: {EXPECTED_COLUMNS}\n Found: {found}"
            )

        if version == 0:
            conn.execute(f"PRAGMA user_version = {SCHEMA_VERSION}")
            logger.info("Created voice_notes schema v%d in %s", SCHEMA_VERSION, self.db_path)

    def close(self):
        """Close every connection this store opened and drop all observers."""
        if self._closed:
            return
        self._closed = True
        self._observers.clear()
        with self._conn_lock:
            for conn in self._connections.values():
                conn.close()
            self._connections.clear()
        logger.info("Note store at %s closed", self.db_path)

    @property
    def closed(self) -> bool:
        return self._closed

    # -- Low level helpers --

    def fetchone(self, sql: str, params: tuple | dict = ()) -> sqlite3.Row | None:
        with _translate_errors():
            return self._get_conn().execute(sql, params).fetchone()

    def fetchall(self, sql: str, params: tuple | dict = ()) -> list[sqlite3.Row]:
        with _translate_errors():
            return self._get_conn().execute(sql, params).fetchall()

    def _write(self, sql: str, params: tuple | dict = ()) -> sqlite3.Cursor:
        """Run one statement in its own transaction and notify observers if rows changed."""
        with _translate_errors():
            conn = self._get_conn()
            with conn:
                cursor = conn.execute(sql, params)
        if cursor.rowcount > 0:
            self._publish()
        return cursor

    # -- Notes --

    def insert(self, note: VoiceNote) -> int:
        """Persist a new note and return the id assigned to it. ``note.id`` is ignored."""
        cursor = self._write(_INSERT_SQL, note_to_params(note))
        return cursor.lastrowid

    def update(self, note: VoiceNote) -> bool:
        """Replace the stored note with the same id. Returns False when there is none."""
        if note.id is None:
            return False
        return self._write(_UPDATE_SQL, note_to_params(note)).rowcount > 0

    def delete(self, note: VoiceNote) -> bool:
        if note.id is None:
            return False
        return self.delete_by_id(note.id)

    def delete_by_id(self, note_id: int) -> bool:
        return self._write("DELETE FROM voice_notes WHERE id = ?", (note_id,)).rowcount > 0

    def clear_all(self) -> int:
        """Delete every note. Ids are not handed out again afterwards."""
        return self._write("DELETE FROM voice_notes").rowcount

    def get_by_id(self, note_id: int) -> VoiceNote | None:
        row = self.fetchone("SELECT * FROM voice_notes WHERE id = ?", (note_id,))
        return row_to_note(row) if row else None

    def count(self) -> int:
        return self.fetchone("SELECT COUNT(*) FROM voice_notes")[0]

    def list_all(self) -> list[VoiceNote]:
        """All notes, most recent ``created_at`` first; ties go to the newer id."""
        return [row_to_note(row) for row in self.fetchall(_LIST_SQL)]

    # -- Live listing --

    def observe_all(self, callback: Callable[[list[VoiceNote]], None]) -> Subscription:
        """Deliver ``list_all()`` to ``callback`` now and again after every change.

        Deliveries happen on the thread that committed the write. Call
        ``cancel()`` on the returned subscription to stop them.
        """
        with self._observers.lock:
            sub = self._observers.add(callback)
            try:
                snapshot = self.list_all()
            except NoteStoreError:
                sub.cancel()
                raise
            self._observers.deliver(sub, snapshot)
        return sub

    def _publish(self):
        if not len(self._observers):
            return
        with self._observers.lock:
            # The write is already committed; a listing failure must not surface as a write failure.
            try:
                snapshot = self.list_all()
            except NoteStoreError:
                logger.exception("Could not refresh %s observers", TABLE_NAME)
                return
            self._observers.publish(snapshot)


_store: NoteStore | None = None
_store_lock = threading.Lock()


def get_store(db_path: Path | None = None, timeout: float | None = None) -> NoteStore:
    """Process-wide store, opened on first use."""
    global _store
    store = _store
    if store is None or store.closed:
        with _store_lock:
            if _store is None or _store.closed:
                _store = NoteStore(
                    db_path or config.DB_PATH,
                    timeout=config.DB_TIMEOUT if timeout is None else timeout,
                )
            store = _store
    return store


def close_store():
    global _store
    with _store_lock:
        if _store is not None:
            _store.close()
            _store = None
