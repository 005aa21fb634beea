"""
In-process implementations of the external collaborators.

Used when the server runs without a remote backend and throughout the
tests. They follow the same push semantics as a realtime database:
subscribers get the current value immediately and again after every write,
the writer included.
"""

import copy
import logging
import uuid
from typing import Callable, Optional

from .sync import DocumentKey

logger = logging.getLogger(__name__)


class LocalIdentityProvider:
    """Hands out one stable anonymous user id per instance."""

    def __init__(self, user_id: Optional[str] = None):
        self._user_id = user_id

    async def get_or_create_user_id(self) -> str:
        if self._user_id is None:
            self._user_id = uuid.uuid4().hex
        return self._user_id


class InMemoryDocumentStore:
    """Realtime document store keyed by DocumentKey."""

    def __init__(self):
        self._documents: dict[DocumentKey, dict] = {}
        self._subscribers: dict[DocumentKey, list[Callable[[Optional[dict]], None]]] = {}

    def get(self, key: DocumentKey) -> Optional[dict]:
        value = self._documents.get(key)
        return copy.deepcopy(value) if value is not None else None

    def subscribe(self, key: DocumentKey, on_change: Callable[[Optional[dict]], None]) -> Callable[[], None]:
        self._subscribers.setdefault(key, []).append(on_change)
        on_change(self.get(key))

        def unsubscribe():
            callbacks = self._subscribers.get(key, [])
            if on_change in callbacks:
                callbacks.remove(on_change)

        return unsubscribe

    async def write(self, key: DocumentKey, value: dict, merge: bool = False) -> None:
        if merge and key in self._documents:
            self._documents[key].update(copy.deepcopy(value))
        else:
            self._documents[key] = copy.deepcopy(value)
        self._publish(key)

    def _publish(self, key: DocumentKey):
        for callback in list(self._subscribers.get(key, [])):
            try:
                callback(self.get(key))
            except Exception:
                logger.exception("Document subscriber failed for %s", key)


class InMemoryJobStore:
    """Job collection store, one collection per user."""

    def __init__(self):
        self._jobs: dict[str, dict[str, dict]] = {}
        self._subscribers: dict[str, list[Callable[[list[dict]], None]]] = {}

    def list_jobs(self, user_id: str) -> list[dict]:
        jobs = [copy.deepcopy(j) for j in self._jobs.get(user_id, {}).values()]
        return sorted(jobs, key=lambda j: str(j.get("requested_at", "")), reverse=True)

    def subscribe(self, user_id: str, on_snapshot_list: Callable[[list[dict]], None]) -> Callable[[], None]:
        self._subscribers.setdefault(user_id, []).append(on_snapshot_list)
        on_snapshot_list(self.list_jobs(user_id))

        def unsubscribe():
            callbacks = self._subscribers.get(user_id, [])
            if on_snapshot_list in callbacks:
                callbacks.remove(on_snapshot_list)

        return unsubscribe

    async def insert(self, user_id: str, job: dict) -> None:
        self._jobs.setdefault(user_id, {})[job["id"]] = copy.deepcopy(job)
        self._publish(user_id)

    async def update(self, user_id: str, job_id: str, fields: dict) -> None:
        job = self._jobs.get(user_id, {}).get(job_id)
        if job is None:
            raise KeyError(f"Job not found: {job_id}")
        job.update(copy.deepcopy(fields))
        self._publish(user_id)

    def _publish(self, user_id: str):
        jobs = self.list_jobs(user_id)
        for callback in list(self._subscribers.get(user_id, [])):
            try:
                callback(jobs)
            except Exception:
                logger.exception("Job subscriber failed for %s", user_id)
