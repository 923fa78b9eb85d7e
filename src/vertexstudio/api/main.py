"""Vertex Studio — FastAPI Application.

This module defines the FastAPI application factory, all REST API routes,
and the ``main()`` CLI function that launches the uvicorn server.

Architecture
------------
- **Configuration** comes from :data:`~vertexstudio.core.config.config`
  (environment variables and ``.env``).
- **Generation** is delegated to the Vertex AI Imagen and Veo APIs through
  :class:`~vertexstudio.core.vertex_client.VertexClient`.
- **Persistence** is a flat outputs directory of ``result-*`` artifacts plus
  a single ``metadata.json`` prompt ledger — no database required.
- **Orchestration** of each endpoint lives in
  :class:`~vertexstudio.api.orchestrator.GenerationOrchestrator`; the route
  handlers here only deal with HTTP.
- **Errors** are raised as :class:`~vertexstudio.core.errors.StudioError`
  subclasses and rendered as ``{"error", "details"}`` JSON by the exception
  handlers registered in :func:`create_app`.

Endpoints
---------
========  ===========================  =====================================
Method    Path                         Purpose
========  ===========================  =====================================
GET       ``/``                        Serve the frontend page
GET       ``/api/config``              Model names, limits and defaults
POST      ``/api/generate-image``      Create a generation from a prompt
POST      ``/api/edit-image``          Edit an image of a generation
POST      ``/api/generate-video``      Animate an image of a generation
GET       ``/api/results``             All generations, newest first
GET       ``/outputs/{filename}``      Generated artifacts (never cached)
========  ===========================  =====================================

Usage
-----
CLI (installed entry point)::

    vertex-studio

Direct invocation::

    python -m vertexstudio.api.main
"""

from __future__ import annotations

import logging
from collections.abc import AsyncIterator
from contextlib import asynccontextmanager

from fastapi import APIRouter, Depends, FastAPI, HTTPException, Request
from fastapi.exceptions import RequestValidationError
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import HTMLResponse, JSONResponse
from fastapi.staticfiles import StaticFiles

from vertexstudio import __version__
from vertexstudio.api.models import EditImageRequest, GenerateImageRequest, GenerateVideoRequest
from vertexstudio.api.orchestrator import GenerationOrchestrator
from vertexstudio.core.artifact_store import PUBLIC_PREFIX, ArtifactStore
from vertexstudio.core.auth import ServiceAccountTokenProvider
from vertexstudio.core.config import StudioConfig, config
from vertexstudio.core.errors import ConfigurationError, StudioError
from vertexstudio.core.ledger import MetadataLedger
from vertexstudio.core.vertex_client import (
    DEFAULT_ASPECT_RATIO,
    DEFAULT_PERSON_GENERATION,
    DEFAULT_SAFETY_SETTING,
    DEFAULT_VIDEO_ASPECT_RATIO,
    DEFAULT_VIDEO_DURATION,
    MAX_SAMPLE_COUNT,
    MIN_SAMPLE_COUNT,
    VertexClient,
)

logger = logging.getLogger(__name__)

NO_CACHE_HEADERS = {
    "Cache-Control": "no-cache, no-store, must-revalidate",
    "Pragma": "no-cache",
    "Expires": "0",
}


class NoCacheStaticFiles(StaticFiles):
    """Static files that browsers must revalidate on every request.

    Edits overwrite images in place under the same URL, so a cached copy
    would show the pre-edit image.
    """

    def file_response(self, *args, **kwargs):
        response = super().file_response(*args, **kwargs)
        response.headers.update(NO_CACHE_HEADERS)
        return response


# ---------------------------------------------------------------------------
# Routes.
# ---------------------------------------------------------------------------

router = APIRouter()


def get_orchestrator(request: Request) -> GenerationOrchestrator:
    return request.app.state.orchestrator


@router.get("/", response_class=HTMLResponse)
async def index(request: Request) -> HTMLResponse:
    """Serve the bundled frontend page.

    Raises:
        HTTPException: 404 if ``index.html`` is not found.
    """
    index_path = request.app.state.config.static_dir / "index.html"
    if index_path.exists():
        return HTMLResponse(content=index_path.read_text(encoding="utf-8"))
    raise HTTPException(status_code=404, detail="index.html not found")


@router.get("/api/config")
async def get_config(request: Request) -> dict:
    """Return model names, limits and defaults for the frontend."""
    cfg: StudioConfig = request.app.state.config
    return {
        "version": __version__,
        "models": {
            "image": cfg.imagen_model,
            "edit": cfg.imagen_edit_model,
            "video": cfg.veo_model,
        },
        "sampleCount": {"min": MIN_SAMPLE_COUNT, "max": MAX_SAMPLE_COUNT},
        "defaults": {
            "aspectRatio": DEFAULT_ASPECT_RATIO,
            "safetySetting": DEFAULT_SAFETY_SETTING,
            "personGeneration": DEFAULT_PERSON_GENERATION,
            "videoAspectRatio": DEFAULT_VIDEO_ASPECT_RATIO,
            "videoDuration": DEFAULT_VIDEO_DURATION,
        },
    }


@router.post("/api/generate-image")
async def generate_image(
    req: GenerateImageRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Generate 1–4 images from a prompt under a new generation id."""
    return await orchestrator.generate_image(req)


@router.post("/api/edit-image")
async def edit_image(
    req: EditImageRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Edit an existing image; 400 for a foreign path, 404 if missing."""
    return await orchestrator.edit_image(req)


@router.post("/api/generate-video")
async def generate_video(
    req: GenerateVideoRequest,
    orchestrator: GenerationOrchestrator = Depends(get_orchestrator),
) -> dict:
    """Animate an existing image.  May take up to the polling ceiling."""
    return await orchestrator.generate_video(req)


@router.get("/api/results")
async def get_results(orchestrator: GenerationOrchestrator = Depends(get_orchestrator)) -> dict:
    """List every generation with at least one image, newest first."""
    return orchestrator.list_results()


# ---------------------------------------------------------------------------
# Exception handlers.
# ---------------------------------------------------------------------------


async def studio_error_handler(request: Request, exc: StudioError) -> JSONResponse:
    if exc.status_code >= 500:
        logger.error(f"Error handling {request.url.path}: {exc}", exc_info=exc)
    else:
        logger.warning(f"Rejected {request.url.path}: {exc}")
    return JSONResponse(status_code=exc.status_code, content=exc.to_dict())


async def request_validation_handler(request: Request, exc: RequestValidationError) -> JSONResponse:
    errors = exc.errors()
    messages = [
        f"{'.'.join(str(part) for part in err.get('loc', ()))}: {err.get('msg', '')}"
        for err in errors
    ]
    first = errors[0].get("msg", "Invalid request") if errors else "Invalid request"
    message = first.removeprefix("Value error, ")
    logger.warning(f"Rejected {request.url.path}: {message}")
    return JSONResponse(status_code=400, content={"error": message, "details": messages})


async def unhandled_error_handler(request: Request, exc: Exception) -> JSONResponse:
    logger.error(f"Unexpected error handling {request.url.path}: {exc}", exc_info=exc)
    return JSONResponse(
        status_code=500,
        content={
            "error": str(exc) or "Internal server error",
            "details": f"{type(exc).__name__}: {exc}",
        },
    )


# ---------------------------------------------------------------------------
# Application factory.
# ---------------------------------------------------------------------------


def create_app(
    settings: StudioConfig | None = None,
    client: VertexClient | None = None,
) -> FastAPI:
    """Build the FastAPI application.

    Args:
        settings: Configuration to use.  Defaults to the global ``config``.
        client: Pre-built remote client.  When omitted, one is created on
            startup from the resolved credential file; startup fails if no
            credential file can be found.

    Returns:
        The configured application.
    """
    settings = settings or config

    @asynccontextmanager
    async def lifespan(app: FastAPI) -> AsyncIterator[None]:
        """Create the remote client and orchestrator; close the client on shutdown."""
        owned_client = None
        vertex_client = client
        if vertex_client is None:
            credentials_file = settings.resolve_credentials_file()
            owned_client = vertex_client = VertexClient(
                settings, ServiceAccountTokenProvider(credentials_file)
            )

        app.state.orchestrator = GenerationOrchestrator(
            vertex_client,
            ArtifactStore(settings.outputs_dir),
            MetadataLedger(settings.metadata_path),
        )
        logger.info(f"Outputs directory: {settings.outputs_dir.resolve()}")

        yield

        if owned_client is not None:
            await owned_client.aclose()
            logger.info("Vertex client closed on shutdown.")

    app = FastAPI(
        title="Vertex Studio",
        description="Image generation, editing and animation with Vertex AI Imagen and Veo.",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.config = settings

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.add_exception_handler(StudioError, studio_error_handler)
    app.add_exception_handler(RequestValidationError, request_validation_handler)
    app.add_exception_handler(Exception, unhandled_error_handler)

    app.include_router(router)
    app.mount(
        PUBLIC_PREFIX,
        NoCacheStaticFiles(directory=str(settings.outputs_dir)),
        name="outputs",
    )
    return app


app = create_app()


# ---------------------------------------------------------------------------
# CLI entry point.
# ---------------------------------------------------------------------------


def main() -> None:
    """Launch the uvicorn ASGI server.

    Reads host, port and log level from
    :data:`~vertexstudio.core.config.config`.  Refuses to start when no
    credential file can be resolved.

    This function is registered as the ``vertex-studio`` console script in
    ``pyproject.toml``.
    """
    import uvicorn

    logging.basicConfig(
        level=config.log_level.upper(),
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
    )

    try:
        credentials_file = config.resolve_credentials_file()
    except ConfigurationError as e:
        logger.error(str(e))
        raise SystemExit(1) from e

    logger.info(f"Using credentials from {credentials_file}")
    logger.info(f"Using Imagen model: {config.imagen_model}")
    logger.info(f"Using Imagen Edit model: {config.imagen_edit_model}")
    logger.info(f"Using Veo model: {config.veo_model}")

    uvicorn.run(app, host=config.host, port=config.port)


if __name__ == "__main__":
    main()
