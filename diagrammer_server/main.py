"""
Migration Diagrammer Backend - FastAPI Application

This is the main entry point for the diagrammer backend.
It provides:
- REST API for every editor operation (placement, moves, checklists,
  connections, validation, confirmation, kickoff, reset)
- WebSocket endpoint for real-time updates
- CORS configuration for local frontend development

One EditorSession is created per process in the lifespan handler and torn
down on shutdown, which cancels the migration tick and any pending save.
"""
import asyncio
import logging
from contextlib import asynccontextmanager

from fastapi import Depends, FastAPI, Request, WebSocket, WebSocketDisconnect
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from diagrammer.catalog import get_component_type, list_component_types
from diagrammer.checklist import missing_attributes
from diagrammer.config import settings
from diagrammer.errors import DiagramError, UnknownJobError, UnknownNodeError
from diagrammer.memory import InMemoryDocumentStore, InMemoryJobStore, LocalIdentityProvider
from diagrammer.models import MigrationJob, Phase
from diagrammer.notices import Notice
from diagrammer.placement import PhaseChange, Rejection
from diagrammer.session import EditorSession

from .schemas import ClickNodeRequest, ConnectRequest, MoveNodeRequest, PlaceNodeRequest, SaveDetailsRequest
from .websocket_manager import ws_manager

logger = logging.getLogger(__name__)


def build_session() -> EditorSession:
    """Default session: anonymous local identity and in-process stores."""
    return EditorSession(
        settings,
        LocalIdentityProvider(),
        documents=InMemoryDocumentStore(),
        jobs=InMemoryJobStore(),
    )


# --- Async change notification ---
# Bridge between sync store/orchestrator callbacks and async WebSocket broadcasts

class ChangeBridge:
    """Collects change signals until the broadcaster picks them up."""

    def __init__(self):
        self.event = asyncio.Event()
        self.document_changed = False
        self.jobs_changed = False
        self.notices: list[Notice] = []

    def on_document_change(self):
        self.document_changed = True
        self.event.set()

    def on_job_change(self, job: MigrationJob):
        self.jobs_changed = True
        self.event.set()

    def on_notice(self, notice: Notice):
        self.notices.append(notice)
        self.event.set()


async def change_broadcaster(session: EditorSession, bridge: ChangeBridge):
    """Background task that broadcasts changes to WebSocket clients."""
    while True:
        await bridge.event.wait()
        bridge.event.clear()

        if bridge.document_changed:
            bridge.document_changed = False
            await ws_manager.notify_document_updated(session.document.id)
        if bridge.jobs_changed:
            bridge.jobs_changed = False
            await ws_manager.notify_jobs_updated(len(session.orchestrator.active_jobs))
        notices, bridge.notices = bridge.notices, []
        for notice in notices:
            await ws_manager.notify_notice(notice.to_dict())


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Lifespan handler for startup/shutdown tasks."""
    session = app.state.session_factory()
    app.state.session = session

    bridge = ChangeBridge()
    session.store.on_change(bridge.on_document_change)
    session.orchestrator.on_change(bridge.on_job_change)
    session.notices.on_notice(bridge.on_notice)

    broadcaster_task = asyncio.create_task(change_broadcaster(session, bridge))
    await session.start()

    yield

    # Cleanup
    broadcaster_task.cancel()
    try:
        await broadcaster_task
    except asyncio.CancelledError:
        pass
    await session.close()


# --- FastAPI App ---

app = FastAPI(
    title="Migration Diagrammer API",
    description="Backend API for the source/target migration diagrammer",
    version="1.0.0",
    lifespan=lifespan
)
app.state.session_factory = build_session

# CORS for local development
app.add_middleware(
    CORSMiddleware,
    allow_origins=settings.cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def get_session(request: Request) -> EditorSession:
    return request.app.state.session


@app.exception_handler(DiagramError)
async def diagram_error_handler(request: Request, exc: DiagramError):
    """Invariant violations surface as client errors, never as silent no-ops."""
    status_code = 404 if isinstance(exc, (UnknownNodeError, UnknownJobError)) else 400
    logger.warning("Request %s %s failed: %s", request.method, request.url.path, exc)
    return JSONResponse(status_code=status_code, content={"detail": str(exc)})


def _rejected(rejection: Rejection) -> dict:
    return {"success": False, "rejection": rejection.to_dict()}


# --- Health Check ---

@app.get("/api/health")
async def health_check(session: EditorSession = Depends(get_session)):
    """Health check endpoint."""
    return {
        "status": "ok",
        "ready": session.is_ready,
        "local_only": session.document_sync.local_only,
        "connections": ws_manager.connection_count,
    }


# --- Catalog ---

@app.get("/api/catalog")
async def get_catalog():
    """List the component types that can be placed."""
    return {"component_types": [t.to_dict() for t in list_component_types()]}


@app.get("/api/catalog/{type_key}")
async def get_catalog_entry(type_key: str):
    return {"component_type": get_component_type(type_key).to_dict()}


# --- Diagram State ---

@app.get("/api/diagram")
async def get_diagram(session: EditorSession = Depends(get_session)):
    """Get the current editor state."""
    return session.get_state()


@app.post("/api/diagram/new")
async def new_diagram(session: EditorSession = Depends(get_session)):
    """Start over with an empty document."""
    document = session.new_document()
    return {"success": True, "document": document.to_json_dict()}


@app.post("/api/diagram/reset")
async def reset_diagram(session: EditorSession = Depends(get_session)):
    """Move every component back to the Source canvas."""
    document = session.reset()
    return {"success": True, "document": document.to_json_dict()}


# --- Node Operations ---

@app.post("/api/nodes")
async def place_node(request: PlaceNodeRequest, session: EditorSession = Depends(get_session)):
    """Drop a new component onto a canvas."""
    result = session.place_node(
        request.component_type,
        request.phase,
        request.drop_point(),
        request.canvas.to_rect()
    )
    if isinstance(result, Rejection):
        return _rejected(result)
    return {"success": True, "node": result.model_dump(mode="json"), "open_editor": True}


@app.get("/api/nodes/{node_id}")
async def get_node(node_id: str, session: EditorSession = Depends(get_session)):
    """Get a specific node with its outstanding checklist entries."""
    node = session.store.require_node(node_id)
    return {
        "success": True,
        "node": node.model_dump(mode="json"),
        "missing_attributes": missing_attributes(node),
    }


@app.patch("/api/nodes/{node_id}/position")
async def move_node(node_id: str, request: MoveNodeRequest, session: EditorSession = Depends(get_session)):
    """Move a node, possibly onto the other canvas."""
    result = await session.move_node(
        node_id,
        request.phase,
        request.drop_point(),
        request.canvas.to_rect()
    )
    if isinstance(result, Rejection):
        return _rejected(result)
    return {
        "success": True,
        "node": session.store.require_node(node_id).model_dump(mode="json"),
        "phase_change": result.to_dict() if isinstance(result, PhaseChange) else None,
    }


@app.put("/api/nodes/{node_id}/details")
async def save_details(node_id: str, request: SaveDetailsRequest, session: EditorSession = Depends(get_session)):
    """Save the checklist form of a node."""
    result = session.save_details(node_id, request.details)
    if isinstance(result, Rejection):
        return _rejected(result)
    node = result
    return {
        "success": True,
        "node": node.model_dump(mode="json"),
        "missing_attributes": missing_attributes(node),
    }


# --- Connection Operations ---

@app.post("/api/connections")
async def create_connection(request: ConnectRequest, session: EditorSession = Depends(get_session)):
    """Connect two nodes on the same canvas."""
    result = session.connect(request.source_id, request.target_id)
    if isinstance(result, Rejection):
        return _rejected(result)
    return {"success": True, "connection": result.model_dump(mode="json")}


@app.post("/api/connections/click")
async def click_node(request: ClickNodeRequest, session: EditorSession = Depends(get_session)):
    """Feed a node click into the two-click connection protocol."""
    outcome = session.click_node(request.node_id)
    return {"success": outcome.rejection is None, "outcome": outcome.to_dict()}


# --- Validation ---

@app.get("/api/validation/{phase}")
async def validate_phase(phase: Phase, session: EditorSession = Depends(get_session)):
    """Validate one canvas."""
    report = session.validate(phase)
    return {"success": True, "report": report.to_dict(), "summary": report.summary()}


@app.post("/api/source/confirm")
async def confirm_source(session: EditorSession = Depends(get_session)):
    """Lock in the Source architecture so Target work can start."""
    result = session.confirm_source()
    if isinstance(result, Rejection):
        return _rejected(result)
    return {"success": True, "report": result.to_dict()}


# --- Migrations ---

@app.post("/api/migrations/kickoff")
async def kickoff(session: EditorSession = Depends(get_session)):
    """Create migration jobs for every detailed Source component."""
    result = await session.kickoff()
    if isinstance(result, Rejection):
        return _rejected(result)
    return {"success": True, "jobs": [j.to_json_dict() for j in result]}


@app.get("/api/migrations")
async def list_migrations(session: EditorSession = Depends(get_session)):
    """Jobs newest first, plus the list last received from the job store."""
    return {
        "success": True,
        "jobs": [j.to_json_dict() for j in session.orchestrator.jobs],
        "stored": session.job_sync.display_jobs,
    }


@app.get("/api/migrations/{job_id}")
async def get_migration(job_id: str, session: EditorSession = Depends(get_session)):
    return {"success": True, "job": session.orchestrator.require_job(job_id).to_json_dict()}


# --- Notices ---

@app.get("/api/notices")
async def list_notices(session: EditorSession = Depends(get_session)):
    return {"notices": [n.to_dict() for n in session.notices.notices]}


# --- WebSocket ---

@app.websocket("/ws")
async def websocket_endpoint(websocket: WebSocket):
    """
    WebSocket endpoint for real-time updates.

    Clients connect here to receive document, job and notice events.
    """
    await ws_manager.connect(websocket)

    try:
        while True:
            data = await websocket.receive_text()
            if data == "ping":
                await websocket.send_text('{"type": "pong"}')
    except WebSocketDisconnect:
        await ws_manager.disconnect(websocket)
    except Exception:
        logger.exception("WebSocket connection failed")
        await ws_manager.disconnect(websocket)


# --- Run with uvicorn ---

def run():
    import uvicorn
    logging.basicConfig(
        level=settings.log_level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s"
    )
    uvicorn.run(app, host=settings.host, port=settings.port)


if __name__ == "__main__":
    run()
