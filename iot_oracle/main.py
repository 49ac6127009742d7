"""FastAPI application entry point."""

from contextlib import asynccontextmanager
from typing import AsyncGenerator
from uuid import UUID

from fastapi import FastAPI, Request, WebSocket, status
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from iot_oracle.api.routes import router
from iot_oracle.api.websocket import handle_websocket_conversation
from iot_oracle.config import get_settings
from iot_oracle.exceptions import (
    InvariantViolationError,
    ItemInUseError,
    LedgerError,
    PersistenceError,
    QuantityViolationError,
    ReferenceNotFoundError,
)
from iot_oracle.state.manager import get_state_manager
from iot_oracle.state.workspace import get_workspace
from iot_oracle.utils.logging import get_logger, setup_logging

# Setup logging first
setup_logging()
logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI) -> AsyncGenerator[None, None]:
    """Application lifespan manager."""
    logger.info("application_starting")

    state_manager = await get_state_manager()
    workspace = await get_workspace()
    logger.info(
        "workspace_loaded",
        items=len(workspace.ledger.items),
        projects=len(workspace.ledger.projects),
    )

    yield

    logger.info("application_shutting_down")
    if workspace.repository.pending:
        await workspace.sync()
    await state_manager.disconnect()


app = FastAPI(
    title="IoT Oracle",
    description="Inventory and project manager with an action-taking assistant",
    version="0.1.0",
    lifespan=lifespan,
)

settings = get_settings()
app.add_middleware(
    CORSMiddleware,
    allow_origins=["*"],
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


def _ledger_status(error: LedgerError) -> int:
    if isinstance(error, ReferenceNotFoundError):
        return status.HTTP_404_NOT_FOUND
    if isinstance(error, (QuantityViolationError, ItemInUseError, InvariantViolationError)):
        return status.HTTP_409_CONFLICT
    return status.HTTP_400_BAD_REQUEST


@app.exception_handler(LedgerError)
async def ledger_error_handler(request: Request, exc: LedgerError) -> JSONResponse:
    """Turn rejected ledger operations into client errors."""
    code = _ledger_status(exc)
    logger.info("ledger_request_rejected", path=request.url.path, status=code, error=str(exc))
    return JSONResponse(status_code=code, content={"detail": str(exc)})


@app.exception_handler(PersistenceError)
async def persistence_error_handler(request: Request, exc: PersistenceError) -> JSONResponse:
    logger.error("persistence_request_failed", path=request.url.path, error=str(exc))
    return JSONResponse(status_code=status.HTTP_503_SERVICE_UNAVAILABLE, content={"detail": str(exc)})


@app.get("/health")
async def health_check() -> dict[str, str]:
    """Health check endpoint."""
    return {"status": "healthy", "service": "iot-oracle"}


@app.get("/")
async def root() -> dict[str, str]:
    """Root endpoint."""
    return {
        "message": "IoT Oracle API",
        "docs": "/docs",
        "health": "/health",
    }


app.include_router(router, prefix="/api/v1", tags=["api"])


@app.websocket("/ws/{conversation_id}")
async def websocket_endpoint(websocket: WebSocket, conversation_id: str) -> None:
    """WebSocket endpoint for streamed conversations."""
    try:
        conv_uuid = UUID(conversation_id)
    except ValueError:
        await websocket.close(code=1003, reason="Invalid conversation ID")
        return
    await handle_websocket_conversation(websocket, conv_uuid)


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "iot_oracle.main:app",
        host=settings.api_host,
        port=settings.api_port,
        reload=settings.environment == "development",
    )
