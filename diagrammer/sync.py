"""
Synchronization layer - reconciles the local document with a realtime store.

Semantics are last-writer-wins with no merge: whatever the subscription
delivers overwrites the local document on receipt, including echoes of our
own writes. There is no revision check.

If the identity bootstrap fails (or no store is configured) the editor keeps
working purely in memory; every save attempt then posts one "not saved"
notice instead of writing.
"""

import asyncio
import logging
from dataclasses import dataclass
from typing import Callable, Optional, Protocol

from pydantic import ValidationError

from .models import ArchitectureDocument, MigrationJob
from .notices import NoticeBoard
from .store import DiagramStore

logger = logging.getLogger(__name__)

DIAGRAMS_KIND = "diagrams"
MIGRATIONS_KIND = "migrations"

NOT_SAVED_MESSAGE = "Working offline: diagram changes were not saved."


@dataclass(frozen=True)
class DocumentKey:
    """Address of a document in the realtime store."""
    user_id: str
    kind: str
    document_id: str

    def path(self, app_id: str) -> str:
        return f"artifacts/{app_id}/users/{self.user_id}/{self.kind}/{self.document_id}"


# --- Collaborator Contracts ---

class IdentityProvider(Protocol):
    async def get_or_create_user_id(self) -> str: ...


class RealtimeDocumentStore(Protocol):
    def subscribe(self, key: DocumentKey, on_change: Callable[[Optional[dict]], None]) -> Callable[[], None]:
        """Deliver the full document (None if absent) on every change; returns unsubscribe."""
        ...

    async def write(self, key: DocumentKey, value: dict, merge: bool = False) -> None: ...


class JobCollectionStore(Protocol):
    def subscribe(self, user_id: str, on_snapshot_list: Callable[[list[dict]], None]) -> Callable[[], None]:
        """Deliver the full job list on every change; returns unsubscribe."""
        ...

    async def insert(self, user_id: str, job: dict) -> None: ...

    async def update(self, user_id: str, job_id: str, fields: dict) -> None: ...


# --- Document Sync ---

class DocumentSync:
    """Keeps a DiagramStore and a remote document in step."""

    def __init__(
        self,
        store: DiagramStore,
        identity: IdentityProvider,
        documents: Optional[RealtimeDocumentStore],
        notices: NoticeBoard,
        document_id: str = "current_diagram",
        debounce_seconds: float = 0.5
    ):
        self._store = store
        self._identity = identity
        self._documents = documents
        self._notices = notices
        self._document_id = document_id
        self._debounce = debounce_seconds

        self._user_id: Optional[str] = None
        self._ready = False
        self._local_only = False
        self._closed = False
        self._pending_save = False
        self._applying_remote = False
        self._save_task: Optional[asyncio.Task] = None
        self._unsubscribe: Optional[Callable[[], None]] = None

        store.on_change(self.request_save)

    # --- Properties ---

    @property
    def user_id(self) -> Optional[str]:
        return self._user_id

    @property
    def is_ready(self) -> bool:
        """True once the identity bootstrap finished, successfully or not."""
        return self._ready

    @property
    def local_only(self) -> bool:
        return self._local_only

    @property
    def key(self) -> Optional[DocumentKey]:
        if self._user_id is None:
            return None
        return DocumentKey(self._user_id, DIAGRAMS_KIND, self._document_id)

    # --- Lifecycle ---

    async def start(self) -> bool:
        """
        Bootstrap identity and subscribe to the remote document.

        Returns False when the editor ends up local-only.
        """
        try:
            self._user_id = await self._identity.get_or_create_user_id()
        except Exception:
            logger.exception("Identity bootstrap failed, continuing in local mode")
            self._go_local("Sign-in failed. Working locally; changes will not be saved.")
            return False

        if self._documents is None:
            self._go_local("No document store configured. Working locally; changes will not be saved.")
            return False

        try:
            self._unsubscribe = self._documents.subscribe(self.key, self._on_remote_change)
        except Exception:
            logger.exception("Subscribing to %s failed", self.key)
            self._go_local("Failed to load diagram data. Working locally; changes will not be saved.")
            return False

        self._ready = True
        if self._pending_save:
            self._pending_save = False
            await self.save()
        return True

    def _go_local(self, message: str):
        self._local_only = True
        self._ready = True
        self._pending_save = False
        self._notices.error(message)

    async def close(self):
        """Cancel any pending save and stop listening."""
        self._closed = True
        if self._save_task is not None and not self._save_task.done():
            self._save_task.cancel()
            try:
                await self._save_task
            except asyncio.CancelledError:
                pass
        self._save_task = None
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None

    # --- Inbound ---

    def _on_remote_change(self, value: Optional[dict]):
        if self._closed:
            return
        if value is None:
            # Nothing stored yet; the next local save creates it
            return
        try:
            document = ArchitectureDocument.from_json_dict(value)
        except ValidationError:
            logger.warning("Ignoring malformed remote document for %s", self.key, exc_info=True)
            self._notices.warning("Received a diagram update that could not be read.")
            return

        self._applying_remote = True
        try:
            self._store.replace_document(document)
        finally:
            self._applying_remote = False

    # --- Outbound ---

    def request_save(self):
        """Store change callback: schedule a save of the current document."""
        if self._applying_remote or self._closed:
            return
        if self._local_only:
            self._skip_save()
            return
        if not self._ready:
            self._pending_save = True
            return

        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            # Called outside the event loop; flushed by the next save
            self._pending_save = True
            return

        if self._save_task is not None and not self._save_task.done():
            self._save_task.cancel()
        self._save_task = loop.create_task(self._debounced_save())

    async def _debounced_save(self):
        if self._debounce > 0:
            await asyncio.sleep(self._debounce)
        await self.save()

    def _skip_save(self):
        logger.debug("Save skipped, editor is local-only")
        self._notices.warning(NOT_SAVED_MESSAGE)

    async def save(self) -> bool:
        """Write the current document; returns whether it was written."""
        if self._local_only:
            self._skip_save()
            return False
        if not self._ready:
            self._pending_save = True
            return False

        self._pending_save = False
        try:
            await self._documents.write(self.key, self._store.document.to_json_dict(), merge=False)
        except Exception:
            logger.exception("Saving %s failed", self.key)
            self._notices.error("Failed to save diagram changes.")
            return False
        return True


# --- Job Sync ---

class JobSync:
    """
    Mirrors migration jobs into the job collection store.

    Implements the orchestrator's persistence hook; failures are logged and
    surfaced as notices but never raised.
    """

    def __init__(self, jobs: Optional[JobCollectionStore], notices: NoticeBoard):
        self._jobs = jobs
        self._notices = notices
        self._user_id: Optional[str] = None
        self._display: list[dict] = []
        self._unsubscribe: Optional[Callable[[], None]] = None
        self._on_list_callbacks: list[Callable[[list[dict]], None]] = []

    @property
    def display_jobs(self) -> list[dict]:
        """Latest job list from the store, newest request first."""
        return list(self._display)

    def on_list(self, callback: Callable[[list[dict]], None]):
        self._on_list_callbacks.append(callback)

    def bind(self, user_id: Optional[str]):
        """Attach to a user's collection once the identity is known."""
        self._user_id = user_id
        if self._jobs is None or user_id is None:
            return
        try:
            self._unsubscribe = self._jobs.subscribe(user_id, self._on_snapshot_list)
        except Exception:
            logger.exception("Subscribing to migration jobs failed")
            self._notices.error("Failed to load migration jobs.")

    def _on_snapshot_list(self, jobs: list[dict]):
        self._display = sorted(jobs, key=lambda j: str(j.get("requested_at", "")), reverse=True)
        for callback in self._on_list_callbacks:
            callback(self.display_jobs)

    async def insert(self, job: MigrationJob) -> None:
        if self._jobs is None or self._user_id is None:
            return
        try:
            await self._jobs.insert(self._user_id, job.to_json_dict())
        except Exception:
            logger.exception("Recording migration job %s failed", job.id)
            self._notices.error(f"Migration job for {job.source_component_name} was not saved.")

    async def update(self, job_id: str, fields: dict) -> None:
        if self._jobs is None or self._user_id is None:
            return
        try:
            await self._jobs.update(self._user_id, job_id, fields)
        except Exception:
            logger.exception("Updating migration job %s failed", job_id)
            self._notices.error("Migration status update was not saved.")

    def close(self):
        if self._unsubscribe is not None:
            self._unsubscribe()
            self._unsubscribe = None
        self._on_list_callbacks.clear()
