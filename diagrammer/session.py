"""
Editor session - one user's editor with everything wired together.

Composes the DiagramStore, the MigrationOrchestrator and both sync objects,
turns rejections into notices, applies the phase policy, and tears
everything down in one place so no timer or save fires after close.
"""

import logging
import random
from typing import Any, Optional, Union

from .config import PhasePolicy, Settings
from .models import JOB_TO_NODE_STATUS, ArchitectureDocument, Connection, MigrationJob, Node, Phase
from .migration import MigrationOrchestrator
from .notices import NoticeBoard
from .placement import CanvasRect, ClickOutcome, DropPoint, PhaseChange, Rejection, RejectionReason
from .store import DiagramStore
from .sync import DocumentSync, IdentityProvider, JobCollectionStore, JobSync, RealtimeDocumentStore
from .validation import TopologyReport

logger = logging.getLogger(__name__)


class EditorSession:
    """Entry point for every user action on a diagram."""

    def __init__(
        self,
        settings: Settings,
        identity: IdentityProvider,
        documents: Optional[RealtimeDocumentStore] = None,
        jobs: Optional[JobCollectionStore] = None,
        rng: Optional[random.Random] = None
    ):
        self.settings = settings
        self.notices = NoticeBoard()
        self.store = DiagramStore(
            policy=settings.phase_policy,
            node_width_pct=settings.node_width_pct,
            node_height_pct=settings.node_height_pct,
        )
        self.job_sync = JobSync(jobs, self.notices)
        self.orchestrator = MigrationOrchestrator(
            persistence=self.job_sync,
            rng=rng,
            tick_interval=settings.tick_interval_seconds,
            failure_probability=settings.failure_probability,
        )
        self.document_sync = DocumentSync(
            self.store,
            identity,
            documents,
            self.notices,
            document_id=settings.document_id,
            debounce_seconds=settings.save_debounce_seconds,
        )
        self.orchestrator.on_change(self._mirror_job_status)
        # Jobs requested before the last reset or new document no longer drive node status
        self._detached_job_ids: set[str] = set()
        self._started = False
        self._closed = False

    # --- Lifecycle ---

    @property
    def is_ready(self) -> bool:
        return self.document_sync.is_ready and not self._closed

    async def start(self) -> bool:
        """Run the identity bootstrap; persistence is enabled afterwards."""
        if self._started:
            return not self.document_sync.local_only
        self._started = True
        online = await self.document_sync.start()
        if online:
            self.job_sync.bind(self.document_sync.user_id)
        logger.info("Editor session started (%s)", "online" if online else "local only")
        return online

    async def close(self):
        """Cancel the tick loop and pending saves, drop subscriptions."""
        if self._closed:
            return
        self._closed = True
        await self.orchestrator.shutdown()
        await self.document_sync.close()
        self.job_sync.close()

    # --- Helpers ---

    @property
    def document(self) -> ArchitectureDocument:
        return self.store.document

    def _reject(self, rejection: Rejection) -> Rejection:
        self.notices.warning(rejection.message)
        return rejection

    def _detach_jobs(self):
        self._detached_job_ids.update(j.id for j in self.orchestrator.jobs)

    def _mirror_job_status(self, job: MigrationJob):
        if job.id in self._detached_job_ids:
            return
        self.store.set_migration_status(job.source_component_id, JOB_TO_NODE_STATUS[job.status])

    # --- User Actions ---

    def place_node(
        self,
        component_type: str,
        phase: Phase,
        drop_point: DropPoint,
        canvas: CanvasRect
    ) -> Union[Node, Rejection]:
        result = self.store.place_node(component_type, phase, drop_point, canvas)
        if isinstance(result, Rejection):
            return self._reject(result)
        return result

    async def move_node(
        self,
        node_id: str,
        phase: Phase,
        drop_point: DropPoint,
        canvas: CanvasRect
    ) -> Union[PhaseChange, Rejection, None]:
        if self._closed:
            return self._reject(Rejection(RejectionReason.NOT_READY, "Editor session is closed"))
        result = self.store.move_node(node_id, phase, drop_point, canvas)
        if isinstance(result, Rejection):
            return self._reject(result)

        if isinstance(result, PhaseChange):
            node = self.store.require_node(node_id)
            self.notices.info(f"{node.name} moved to the {result.to_phase.value} canvas")
            if result.is_migration and self.store.policy == PhasePolicy.AUTO_KICKOFF:
                await self.orchestrator.start_single(self.document, node_id)
        return result

    def save_details(self, node_id: str, details: dict[str, Any]) -> Union[Node, Rejection]:
        result = self.store.save_details(node_id, details)
        if isinstance(result, Rejection):
            return self._reject(result)
        return result

    def connect(self, node_a_id: str, node_b_id: str) -> Union[Connection, Rejection]:
        result = self.store.connect(node_a_id, node_b_id)
        if isinstance(result, Rejection):
            return self._reject(result)
        return result

    def click_node(self, node_id: str) -> ClickOutcome:
        outcome = self.store.click_node(node_id)
        if outcome.rejection is not None:
            self._reject(outcome.rejection)
        return outcome

    def validate(self, phase: Phase) -> TopologyReport:
        return self.store.validate(phase)

    def confirm_source(self) -> Union[TopologyReport, Rejection]:
        result = self.store.confirm_source()
        if isinstance(result, Rejection):
            return self._reject(result)
        self.notices.info("Source architecture confirmed")
        return result

    async def kickoff(self) -> Union[list[MigrationJob], Rejection]:
        if self._closed:
            return self._reject(Rejection(RejectionReason.NOT_READY, "Editor session is closed"))
        if not self.is_ready:
            return self._reject(Rejection(RejectionReason.NOT_READY, "Still connecting, try again in a moment"))
        result = await self.orchestrator.kickoff(self.document, self.store.policy)
        if isinstance(result, Rejection):
            return self._reject(result)
        self.notices.info(f"Started {len(result)} migration job(s)")
        return result

    def reset(self) -> ArchitectureDocument:
        """Send everything back to Source; running jobs stop updating the nodes."""
        self._detach_jobs()
        return self.store.reset()

    def new_document(self) -> ArchitectureDocument:
        self._detach_jobs()
        return self.store.new_document()

    def get_state(self) -> dict:
        """Full editor state for API responses."""
        state = self.store.get_state()
        state.update({
            "ready": self.is_ready,
            "local_only": self.document_sync.local_only,
            "user_id": self.document_sync.user_id,
            "jobs": [j.to_json_dict() for j in self.orchestrator.jobs],
        })
        return state
