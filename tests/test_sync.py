"""Tests for document and job synchronization."""
import asyncio
from datetime import datetime, timedelta, timezone

from diagrammer.memory import InMemoryDocumentStore, InMemoryJobStore, LocalIdentityProvider
from diagrammer.models import ArchitectureDocument, MigrationJob, Node, Phase
from diagrammer.notices import NoticeBoard, NoticeLevel
from diagrammer.placement import CanvasRect, DropPoint
from diagrammer.store import DiagramStore
from diagrammer.sync import DIAGRAMS_KIND, NOT_SAVED_MESSAGE, DocumentKey, DocumentSync, JobSync

CANVAS = CanvasRect(left=0, top=0, width=1000, height=500)


class FailingIdentity:
    async def get_or_create_user_id(self) -> str:
        raise ConnectionError("auth backend unreachable")


class FailingDocumentStore(InMemoryDocumentStore):
    async def write(self, key, value, merge=False):
        raise ConnectionError("write refused")


def make_sync(documents=None, identity=None, debounce=0.0):
    store = DiagramStore()
    notices = NoticeBoard()
    sync = DocumentSync(
        store,
        identity or LocalIdentityProvider("user-1"),
        documents,
        notices,
        debounce_seconds=debounce,
    )
    return store, notices, sync


def place(store, phase=Phase.SOURCE):
    return store.place_node("server_vm", phase, DropPoint(100, 100), CANVAS)


def not_saved(notices):
    return [n for n in notices.notices if n.message == NOT_SAVED_MESSAGE]


async def settle():
    await asyncio.sleep(0.01)


class TestDocumentKey:
    def test_path(self):
        key = DocumentKey("user-1", DIAGRAMS_KIND, "current_diagram")
        assert key.path("app") == "artifacts/app/users/user-1/diagrams/current_diagram"


class TestLocalOnly:
    """Test the editor keeps working when the bootstrap fails."""

    def test_identity_failure(self):
        documents = InMemoryDocumentStore()
        store, notices, sync = make_sync(documents, FailingIdentity())

        async def scenario():
            online = await sync.start()
            place(store)
            place(store)
            return online

        assert asyncio.run(scenario()) is False
        assert sync.local_only
        assert sync.is_ready
        assert len(store.document.nodes) == 2
        assert len(not_saved(notices)) == 2
        assert notices.notices[0].level == NoticeLevel.ERROR

    def test_no_store_configured(self):
        store, notices, sync = make_sync(documents=None)

        async def scenario():
            await sync.start()
            return await sync.save()

        assert asyncio.run(scenario()) is False
        assert sync.local_only
        assert len(not_saved(notices)) == 1


class TestDocumentSync:
    """Test the online save and receive paths."""

    def test_save_writes_document(self):
        documents = InMemoryDocumentStore()
        store, notices, sync = make_sync(documents)

        async def scenario():
            await sync.start()
            place(store)
            await settle()
            await sync.close()

        asyncio.run(scenario())
        stored = documents.get(sync.key)
        assert stored is not None
        assert [n["id"] for n in stored["nodes"]] == ["n1"]
        assert notices.notices == []

    def test_remote_write_overwrites_local(self):
        """Test last writer wins: a remote document replaces local state."""
        documents = InMemoryDocumentStore()
        store, _, sync = make_sync(documents)

        remote = ArchitectureDocument(
            id="remote",
            nodes=[Node(id="n7", component_type="internet", name="Internet / Users-7", is_detailed=True)],
            next_node_id=8,
        )

        async def scenario():
            await sync.start()
            place(store)
            await settle()
            await documents.write(sync.key, remote.to_json_dict())
            await sync.close()

        asyncio.run(scenario())
        assert store.document.id == "remote"
        assert [n.id for n in store.document.nodes] == ["n7"]
        # Applying the remote document must not echo it back as a new save
        assert documents.get(sync.key)["id"] == "remote"

    def test_existing_document_loaded_on_start(self):
        documents = InMemoryDocumentStore()
        key = DocumentKey("user-1", DIAGRAMS_KIND, "current_diagram")
        saved = ArchitectureDocument(id="saved", next_node_id=5)
        asyncio.run(documents.write(key, saved.to_json_dict()))

        store, _, sync = make_sync(documents)
        asyncio.run(sync.start())

        assert store.document.id == "saved"
        assert store.document.next_node_id == 5

    def test_pending_save_flushed_after_start(self):
        documents = InMemoryDocumentStore()
        store, _, sync = make_sync(documents)

        place(store)
        assert not sync.is_ready

        asyncio.run(sync.start())
        assert documents.get(sync.key)["nodes"][0]["id"] == "n1"

    def test_malformed_remote_ignored(self):
        documents = InMemoryDocumentStore()
        store, notices, sync = make_sync(documents)

        async def scenario():
            await sync.start()
            place(store)
            await settle()
            await documents.write(sync.key, {"nodes": "not a list"})
            await sync.close()

        asyncio.run(scenario())
        assert [n.id for n in store.document.nodes] == ["n1"]
        assert [n.level for n in notices.notices] == [NoticeLevel.WARNING]

    def test_close_cancels_debounced_save(self):
        documents = InMemoryDocumentStore()
        store, _, sync = make_sync(documents, debounce=10)

        async def scenario():
            await sync.start()
            place(store)
            await sync.close()

        asyncio.run(scenario())
        assert documents.get(sync.key) is None

    def test_debounce_coalesces_saves(self):
        documents = InMemoryDocumentStore()
        store, _, sync = make_sync(documents, debounce=0.05)
        received = []

        async def scenario():
            await sync.start()
            documents.subscribe(sync.key, received.append)
            for _ in range(3):
                place(store)
            await asyncio.sleep(0.2)
            await sync.close()

        asyncio.run(scenario())
        # initial snapshot plus a single coalesced write
        assert received[0] is None
        assert len(received) == 2
        assert len(received[1]["nodes"]) == 3

    def test_write_failure_posts_notice(self):
        store, notices, sync = make_sync(FailingDocumentStore())

        async def scenario():
            await sync.start()
            place(store)
            return await sync.save()

        assert asyncio.run(scenario()) is False
        assert notices.notices[-1].message == "Failed to save diagram changes."
        assert notices.notices[-1].level == NoticeLevel.ERROR


class TestJobSync:
    """Test mirroring jobs into the job collection."""

    def _job(self, minutes_ago: int) -> MigrationJob:
        requested = datetime.now(timezone.utc) - timedelta(minutes=minutes_ago)
        return MigrationJob(
            source_component_id="n1",
            source_component_name="On-Prem Server (VM)-1",
            target_component_name="Cloud Compute Instance-2",
            requested_at=requested,
            updated_at=requested,
        )

    def test_newest_first(self):
        jobs = InMemoryJobStore()
        job_sync = JobSync(jobs, NoticeBoard())
        job_sync.bind("user-1")
        older, newer = self._job(10), self._job(1)

        async def scenario():
            await job_sync.insert(older)
            await job_sync.insert(newer)
            await job_sync.update(older.id, {"status": "Replicating"})

        asyncio.run(scenario())
        assert [j["id"] for j in job_sync.display_jobs] == [newer.id, older.id]
        assert job_sync.display_jobs[1]["status"] == "Replicating"

    def test_unbound_is_noop(self):
        jobs = InMemoryJobStore()
        job_sync = JobSync(jobs, NoticeBoard())

        asyncio.run(job_sync.insert(self._job(0)))
        assert jobs.list_jobs("user-1") == []

    def test_update_failure_posts_notice(self):
        notices = NoticeBoard()
        job_sync = JobSync(InMemoryJobStore(), notices)
        job_sync.bind("user-1")

        asyncio.run(job_sync.update("job-missing", {"status": "Completed"}))
        assert notices.notices[-1].level == NoticeLevel.ERROR
