"""Awaitable access to a NoteStore for code running on an event loop.

Every call runs in a worker thread through ``asyncio.to_thread`` so the
loop is never blocked on SQLite. Cancelling the awaiting task only stops
the result from being delivered; the statement already running in the
worker thread finishes normally.
"""

import asyncio
from typing import AsyncIterator

from notestore.database import NoteStore
from notestore.models import VoiceNote


class AsyncNoteStore:
    def __init__(self, store: NoteStore):
        self.store = store

    async def insert(self, note: VoiceNote) -> int:
        return await asyncio.to_thread(self.store.insert, note)

    async def update(self, note: VoiceNote) -> bool:
        return await asyncio.to_thread(self.store.update, note)

    async def delete(self, note: VoiceNote) -> bool:
        return await asyncio.to_thread(self.store.delete, note)

    async def delete_by_id(self, note_id: int) -> bool:
        return await asyncio.to_thread(self.store.delete_by_id, note_id)

    async def get_by_id(self, note_id: int) -> VoiceNote | None:
        return await asyncio.to_thread(self.store.get_by_id, note_id)

    async def count(self) -> int:
        return await asyncio.to_thread(self.store.count)

    async def list_all(self) -> list[VoiceNote]:
        return await asyncio.to_thread(self.store.list_all)

    async def watch_all(self) -> AsyncIterator[list[VoiceNote]]:
        """Yield the ordered listing now and after every change to it.

        A consumer that falls behind only sees the latest listing. The
        subscription is cancelled when the consumer stops iterating.
        """
        loop = asyncio.get_running_loop()
        queue: asyncio.Queue[list[VoiceNote]] = asyncio.Queue(maxsize=1)

        def _replace_latest(notes: list[VoiceNote]):
            if queue.full():
                queue.get_nowait()
            queue.put_nowait(notes)

        def _on_change(notes: list[VoiceNote]):
            loop.call_soon_threadsafe(_replace_latest, notes)

        sub = await asyncio.to_thread(self.store.observe_all, _on_change)
        try:
            while True:
                yield await queue.get()
        finally:
            sub.cancel()
