"""
Migration orchestration - kickoff and the simulated job lifecycle.

States:
    Initiating -> Replicating -> CutoverPending -> Completed | Failed

Completed and Failed are terminal. Each tick moves every non-terminal job
exactly one state forward; the CutoverPending step draws the outcome from the
injected random source so tests can seed it.
"""

import asyncio
import logging
import random
from datetime import datetime
from typing import Callable, Optional, Protocol, Union

from .catalog import get_component_type
from .config import PhasePolicy
from .errors import UnknownJobError, UnknownNodeError
from .models import ArchitectureDocument, JobStatus, MigrationJob, Node, Phase, utcnow
from .placement import Rejection, RejectionReason
from .validation import validate_phase

logger = logging.getLogger(__name__)

PLACEHOLDER_TARGET = "Unassigned target"

NEXT_STATUS = {
    JobStatus.INITIATING: JobStatus.REPLICATING,
    JobStatus.REPLICATING: JobStatus.CUTOVER_PENDING,
}


def advance(
    job: MigrationJob,
    rng: random.Random,
    failure_probability: float = 0.1,
    now: Optional[datetime] = None
) -> MigrationJob:
    """
    Return the job one state further along.

    Terminal jobs come back unchanged. The input job is never mutated.
    """
    if job.is_terminal:
        return job

    if job.status == JobStatus.CUTOVER_PENDING:
        status = JobStatus.FAILED if rng.random() < failure_probability else JobStatus.COMPLETED
    else:
        status = NEXT_STATUS[job.status]

    return job.model_copy(update={"status": status, "updated_at": now or utcnow()})


def pick_target_name(document: ArchitectureDocument) -> str:
    """Name of the first detailed Target compute node, or a placeholder."""
    for node in document.nodes_in_phase(Phase.TARGET):
        if node.is_detailed and get_component_type(node.component_type).is_compute:
            return node.name
    return PLACEHOLDER_TARGET


def job_for_node(node: Node, target_name: str, now: Optional[datetime] = None) -> MigrationJob:
    now = now or utcnow()
    return MigrationJob(
        source_component_id=node.id,
        source_component_name=node.name,
        source_details=node.details,
        target_component_name=target_name,
        requested_at=now,
        updated_at=now,
    )


def check_kickoff(document: ArchitectureDocument, policy: PhasePolicy) -> Optional[Rejection]:
    """Return the reason kickoff is not allowed, or None."""
    if policy == PhasePolicy.CONFIRM_FIRST and not document.source_confirmed:
        return Rejection(RejectionReason.SOURCE_NOT_CONFIRMED, "Confirm the Source architecture before kickoff")

    for phase in (Phase.SOURCE, Phase.TARGET):
        report = validate_phase(document, phase)
        if not report.is_complete:
            return Rejection(
                RejectionReason.KICKOFF_PRECONDITION,
                f"{phase.value} architecture is incomplete: "
                f"{report.errors} error(s), {report.warnings} warning(s)",
                report
            )

    if not any(n.is_detailed for n in document.nodes_in_phase(Phase.SOURCE)):
        return Rejection(RejectionReason.KICKOFF_PRECONDITION, "No detailed Source components to migrate")

    return None


def plan_kickoff(
    document: ArchitectureDocument,
    policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST,
    now: Optional[datetime] = None
) -> Union[list[MigrationJob], Rejection]:
    """Create one Initiating job per detailed Source node, or reject."""
    rejection = check_kickoff(document, policy)
    if rejection:
        return rejection

    target_name = pick_target_name(document)
    now = now or utcnow()
    return [
        job_for_node(node, target_name, now)
        for node in document.nodes_in_phase(Phase.SOURCE)
        if node.is_detailed
    ]


class JobPersistence(Protocol):
    """Where the orchestrator mirrors its jobs. Implementations must not raise."""

    async def insert(self, job: MigrationJob) -> None: ...

    async def update(self, job_id: str, fields: dict) -> None: ...


class MigrationOrchestrator:
    """
    Owns migration jobs and the periodic tick advancing them.

    The tick runs as an asyncio task that exits on its own once every job is
    terminal and is restarted by the next kickoff. `shutdown()` cancels it.
    """

    def __init__(
        self,
        persistence: Optional[JobPersistence] = None,
        rng: Optional[random.Random] = None,
        tick_interval: float = 3.0,
        failure_probability: float = 0.1
    ):
        self._persistence = persistence
        self._rng = rng or random.Random()
        self._tick_interval = tick_interval
        self._failure_probability = failure_probability
        self._jobs: dict[str, MigrationJob] = {}
        self._task: Optional[asyncio.Task] = None
        self._closed = False
        self._on_change_callbacks: list[Callable[[MigrationJob], None]] = []

    # --- Properties ---

    @property
    def jobs(self) -> list[MigrationJob]:
        """All jobs, newest request first."""
        return sorted(self._jobs.values(), key=lambda j: j.requested_at, reverse=True)

    @property
    def active_jobs(self) -> list[MigrationJob]:
        return [j for j in self._jobs.values() if not j.is_terminal]

    @property
    def is_ticking(self) -> bool:
        return self._task is not None and not self._task.done()

    def get_job(self, job_id: str) -> Optional[MigrationJob]:
        return self._jobs.get(job_id)

    def require_job(self, job_id: str) -> MigrationJob:
        job = self._jobs.get(job_id)
        if job is None:
            raise UnknownJobError(job_id)
        return job

    # --- Change Callbacks ---

    def on_change(self, callback: Callable[[MigrationJob], None]):
        """Register a callback receiving every created or advanced job."""
        self._on_change_callbacks.append(callback)

    def _notify_change(self, job: MigrationJob):
        for callback in self._on_change_callbacks:
            callback(job)

    # --- Kickoff ---

    async def kickoff(
        self,
        document: ArchitectureDocument,
        policy: PhasePolicy = PhasePolicy.CONFIRM_FIRST
    ) -> Union[list[MigrationJob], Rejection]:
        """Freeze the validated Source topology into jobs and start ticking."""
        planned = plan_kickoff(document, policy)
        if isinstance(planned, Rejection):
            logger.info("Kickoff rejected: %s", planned.message)
            return planned

        await self._add_jobs(planned)
        logger.info("Kickoff created %d migration job(s)", len(planned))
        return planned

    async def start_single(self, document: ArchitectureDocument, node_id: str) -> MigrationJob:
        """Start a job for one node right away (auto-kickoff on phase move)."""
        node = document.get_node(node_id)
        if node is None:
            raise UnknownNodeError(node_id)

        job = job_for_node(node, pick_target_name(document))
        await self._add_jobs([job])
        logger.info("Started migration job %s for %s", job.id, node.name)
        return job

    async def _add_jobs(self, jobs: list[MigrationJob]):
        if self._closed:
            raise RuntimeError("Migration orchestrator has been shut down")

        for job in jobs:
            self._jobs[job.id] = job
            self._notify_change(job)
        if self._persistence is not None:
            for job in jobs:
                await self._persistence.insert(job)
        self._ensure_ticking()

    # --- Ticking ---

    async def tick(self) -> list[MigrationJob]:
        """Advance every non-terminal job by one state."""
        advanced = []
        for job in self.active_jobs:
            updated = advance(job, self._rng, self._failure_probability)
            self._jobs[updated.id] = updated
            advanced.append(updated)
            self._notify_change(updated)

        if self._persistence is not None:
            for job in advanced:
                await self._persistence.update(job.id, {
                    "status": job.status.value,
                    "updated_at": job.updated_at.isoformat(),
                })
        return advanced

    def _ensure_ticking(self):
        if self.is_ticking or not self.active_jobs:
            return
        self._task = asyncio.create_task(self._run())

    async def _run(self):
        while self.active_jobs:
            await asyncio.sleep(self._tick_interval)
            await self.tick()
        logger.debug("No active migration jobs, tick loop stopped")

    async def shutdown(self):
        """Cancel the tick loop; no callback fires afterwards."""
        self._closed = True
        self._on_change_callbacks.clear()
        if self._task is None:
            return
        self._task.cancel()
        try:
            await self._task
        except asyncio.CancelledError:
            pass
        self._task = None
