"""
FastAPI Service - Translation Orchestrator API
Submit documents for asynchronous translation and track them to a located result
"""

from fastapi import FastAPI, HTTPException, Depends, Query, Request
from fastapi.responses import JSONResponse, StreamingResponse
from fastapi.middleware.cors import CORSMiddleware
from pydantic import BaseModel, Field
from typing import Optional, List, Dict, Any
from datetime import datetime, timezone
import logging

from .. import __version__
from ..core import SessionManager, SessionSnapshot, get_settings
from ..core.exceptions import OrchestrationError, StorageError
from ..core.languages import SUPPORTED_LANGUAGES
from ..core.session_manager import (
    ResultNotReadyError, SessionNotFoundError, SharedFileNotFoundError
)

logger = logging.getLogger(__name__)


# Pydantic models
class TranslateRequestModel(BaseModel):
    """Start-translation request"""
    input_key: str = Field(..., min_length=1, description="Object key of the uploaded document")
    target_lang: str = Field(..., min_length=2, max_length=10, description="Target language code")

class UploadRequestModel(BaseModel):
    """Upload slot request"""
    filename: str = Field(..., min_length=1, description="Name of the file to upload")

class SessionCreatedModel(BaseModel):
    session_id: str
    phase: str

class UploadSlotModel(BaseModel):
    key: str
    upload_url: str
    content_type: Optional[str]
    expires_in: int

class DownloadModel(BaseModel):
    url: str
    output_key: str
    display_name: str
    expires_in: int
    share_link: str

class HealthCheck(BaseModel):
    """Health check response"""
    status: str
    version: str
    services: Dict[str, bool]
    timestamp: datetime


def get_manager(request: Request) -> SessionManager:
    manager = request.app.state.manager
    if manager is None:
        raise HTTPException(status_code=503, detail="Service is starting")
    return manager


def create_app(manager: Optional[SessionManager] = None) -> FastAPI:
    """
    Build the API application.

    Args:
        manager: Session manager to serve; built from the environment at startup if omitted
    """
    app = FastAPI(
        title="Translation Orchestrator API",
        description="Asynchronous document translation with verified result lookup",
        version=__version__
    )
    app.state.manager = manager

    # CORS configuration
    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    # API Endpoints

    @app.get("/", response_model=Dict[str, str])
    async def root():
        """Root endpoint"""
        return {
            "service": "Translation Orchestrator",
            "version": __version__,
            "status": "operational"
        }

    @app.get("/health", response_model=HealthCheck)
    async def health_check(manager: SessionManager = Depends(get_manager)):
        """Health check endpoint"""

        services = {"api": True, "sessions": True}
        service_check = getattr(manager.job_service, "health_check", None)
        if service_check:
            services["translation_service"] = await service_check()

        return HealthCheck(
            status="healthy" if all(services.values()) else "degraded",
            version=__version__,
            services=services,
            timestamp=datetime.now(timezone.utc)
        )

    @app.get("/languages")
    async def get_supported_languages():
        """Get list of supported target languages"""
        return {"target_languages": SUPPORTED_LANGUAGES}

    @app.post("/uploads", response_model=UploadSlotModel)
    async def create_upload_slot(request: UploadRequestModel,
                                 manager: SessionManager = Depends(get_manager)):
        """
        Reserve an input key and a presigned upload URL.

        - **filename**: Name of the file the user selected
        """
        try:
            return await manager.upload_slot(request.filename)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except StorageError as e:
            raise HTTPException(status_code=502, detail=e.message)

    @app.post("/sessions", response_model=SessionCreatedModel, status_code=201)
    async def create_session(manager: SessionManager = Depends(get_manager)):
        """Create a new idle session"""
        session = manager.create_session()
        return SessionCreatedModel(session_id=session.session_id, phase=session.phase.value)

    @app.get("/sessions", response_model=List[SessionSnapshot])
    async def list_sessions(manager: SessionManager = Depends(get_manager)):
        """List all sessions"""
        return manager.list_sessions()

    @app.post("/sessions/{session_id}/translate", response_model=SessionSnapshot, status_code=202)
    async def start_translation(session_id: str, request: TranslateRequestModel,
                                manager: SessionManager = Depends(get_manager)):
        """
        Start translating an uploaded document.

        - **input_key**: Object key the document was uploaded to
        - **target_lang**: Target language code

        Any translation already running in the session is cancelled.
        """
        try:
            return await manager.start(session_id, request.input_key, request.target_lang)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))

    @app.get("/sessions/{session_id}", response_model=SessionSnapshot)
    async def get_session_status(session_id: str, manager: SessionManager = Depends(get_manager)):
        """
        Get the current state of a session.

        - **session_id**: Session identifier
        """
        try:
            return manager.get_session(session_id).snapshot()
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")

    @app.get("/sessions/{session_id}/events")
    async def stream_session_events(session_id: str, manager: SessionManager = Depends(get_manager)):
        """
        Stream session snapshots as newline-delimited JSON until the workflow ends.

        - **session_id**: Session identifier
        """
        try:
            session = manager.get_session(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")

        async def events():
            async for snapshot in session.observe():
                yield snapshot.model_dump_json() + "\n"

        return StreamingResponse(events(), media_type="application/x-ndjson")

    @app.get("/sessions/{session_id}/download", response_model=DownloadModel)
    async def download_result(session_id: str, manager: SessionManager = Depends(get_manager)):
        """
        Get a time-limited download link for the translated document.

        - **session_id**: Session identifier
        """
        try:
            return await manager.download_url(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")
        except ResultNotReadyError as e:
            raise HTTPException(status_code=409, detail=str(e))
        except StorageError as e:
            raise HTTPException(status_code=502, detail=e.message)

    @app.get("/downloads", response_model=DownloadModel)
    async def shared_download(file: str = Query(..., min_length=1,
                                                description="Document name under the output prefix"),
                              manager: SessionManager = Depends(get_manager)):
        """
        Get a time-limited download link from a shared link, without a session.

        - **file**: Translated document name, as carried by `share_link`
        """
        try:
            return await manager.share_url(file)
        except ValueError as e:
            raise HTTPException(status_code=400, detail=str(e))
        except SharedFileNotFoundError as e:
            raise HTTPException(status_code=404, detail=str(e))
        except StorageError as e:
            raise HTTPException(status_code=502, detail=e.message)

    @app.delete("/sessions/{session_id}", response_model=SessionSnapshot)
    async def cancel_session(session_id: str, manager: SessionManager = Depends(get_manager)):
        """
        Cancel the running translation and reset the session to idle.

        - **session_id**: Session identifier
        """
        try:
            return await manager.cancel(session_id)
        except SessionNotFoundError:
            raise HTTPException(status_code=404, detail="Session not found")

    # Exception handlers

    @app.exception_handler(HTTPException)
    async def http_exception_handler(request, exc):
        return JSONResponse(
            status_code=exc.status_code,
            content={"error": exc.detail}
        )

    @app.exception_handler(OrchestrationError)
    async def orchestration_exception_handler(request, exc):
        logger.error(f"Unhandled {exc.stage} error: {exc.message}")
        return JSONResponse(
            status_code=500,
            content={"error": exc.message, "stage": exc.stage}
        )

    @app.exception_handler(Exception)
    async def general_exception_handler(request, exc):
        logger.exception("Unhandled error")
        return JSONResponse(
            status_code=500,
            content={"error": "Internal server error"}
        )

    # Startup and shutdown events

    @app.on_event("startup")
    async def startup_event():
        """Initialize services on startup"""
        if app.state.manager is None:
            settings = get_settings()
            logging.basicConfig(level=settings.log_level)
            app.state.manager = SessionManager.from_settings(settings)
        logger.info("Translation Orchestrator API starting...")

    @app.on_event("shutdown")
    async def shutdown_event():
        """Cancel running workflows on shutdown"""
        if app.state.manager is not None:
            await app.state.manager.shutdown()
        logger.info("Translation Orchestrator API shutting down...")

    return app


app = create_app()


def run():
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)


if __name__ == "__main__":
    run()
