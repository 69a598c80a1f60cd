"""Main FastAPI application."""

from contextlib import asynccontextmanager

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from codechat import __version__
from codechat.api.endpoints import router
from codechat.api.files import router as files_router
from codechat.config import Settings
from codechat.container import ServiceContainer, build_container
from codechat.utils.logging import get_logger, setup_logging

logger = get_logger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Build the service container on startup and close it on shutdown."""
    setup_logging()
    if app.state.container is None:
        app.state.container = build_container(Settings.from_env())
    logger.info("Application startup complete")

    yield

    await app.state.container.aclose()
    logger.info("Application shutdown complete")


def create_app(container: ServiceContainer | None = None) -> FastAPI:
    """Create the FastAPI application.

    Args:
        container: Prebuilt services; built from the environment on startup when omitted
    """
    app = FastAPI(
        title="Codechat",
        description="A streaming AI assistant for programming help with code-aware tools.",
        version=__version__,
        docs_url="/docs",
        redoc_url="/redoc",
        lifespan=lifespan,
        openapi_tags=[
            {
                "name": "Chat",
                "description": "Stream chat turns and manage the caller's conversations.",
            },
            {"name": "Files", "description": "Upload attachments for chat messages."},
            {"name": "Auth", "description": "Issue session tokens."},
            {"name": "Health", "description": "Service health monitoring and status checks."},
        ],
    )
    app.state.container = container

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],  # Configure appropriately for production
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(router)
    app.include_router(files_router)
    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run("codechat.main:app", host="0.0.0.0", port=8000, reload=True, log_level="info")
