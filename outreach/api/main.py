"""Outreach Agents API.

Serves profile upload, job deploy, job status polling and the internal
stage-invoke endpoints that chain the four pipeline stages.
"""

import logging
from contextlib import asynccontextmanager
from typing import Optional

from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from outreach import __version__
from outreach.api.routes import agents, jobs, profiles
from outreach.collaborators import Collaborators, build_default_collaborators
from outreach.config import Settings
from outreach.executor.db import Database
from outreach.executor.dispatch import (
    Dispatcher,
    HttpDispatcher,
    InlineDispatcher,
    ThreadPoolDispatcher,
)
from outreach.executor.orchestrator import Orchestrator

# Configure logging
logging.basicConfig(
    level=logging.INFO,
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
)
logger = logging.getLogger(__name__)


def build_dispatcher(settings: Settings) -> Dispatcher:
    if settings.dispatch_mode == "http":
        return HttpDispatcher(settings.base_url, max_workers=settings.dispatch_workers)
    if settings.dispatch_mode == "inline":
        return InlineDispatcher()
    return ThreadPoolDispatcher(max_workers=settings.dispatch_workers)


def build_orchestrator(
    settings: Settings,
    collaborators: Optional[Collaborators] = None,
) -> Orchestrator:
    """Wire database, collaborators and dispatcher into an orchestrator."""
    db = Database(
        url=settings.database_url,
        sqlite_path=settings.sqlite_path,
        min_connections=settings.pool_min_connections,
        max_connections=settings.pool_max_connections,
    )
    db.init_schema()
    return Orchestrator(
        db=db,
        collaborators=collaborators or build_default_collaborators(settings),
        dispatcher=build_dispatcher(settings),
    )


def create_app(
    settings: Optional[Settings] = None,
    orchestrator: Optional[Orchestrator] = None,
) -> FastAPI:
    """Build the FastAPI app.

    Settings are read from the environment at startup unless given. An
    injected orchestrator is used as-is and shut down with the app.
    """

    @asynccontextmanager
    async def lifespan(app: FastAPI):
        nonlocal settings
        if orchestrator is not None:
            app.state.orchestrator = orchestrator
        else:
            settings = settings or Settings.from_env()
            logger.info(f"Starting orchestrator (dispatch mode: {settings.dispatch_mode})")
            app.state.orchestrator = build_orchestrator(settings)
        logger.info(
            f"Outreach Agents API ready ({app.state.orchestrator.db.backend_name}, "
            f"dispatch={app.state.orchestrator.dispatcher.mode})"
        )
        yield
        # Shutdown
        logger.info("Shutting down Outreach Agents API")
        app.state.orchestrator.shutdown()

    app = FastAPI(
        title="Outreach Agents API",
        description="""
## Academic outreach job orchestration

Runs a four-stage pipeline per job: CV analysis, prospect discovery,
publication verification, email drafting.

### Key Endpoints

- `POST /v1/profiles` - Upload a CV and create a profile
- `POST /v1/jobs/deploy` - Start a job for a profile and target field
- `GET /v1/jobs/{job_id}` - Poll job status and artifacts
- `GET /v1/jobs` - List recent jobs
""",
        version=__version__,
        lifespan=lifespan,
    )

    app.add_middleware(
        CORSMiddleware,
        allow_origins=["*"],
        allow_credentials=True,
        allow_methods=["*"],
        allow_headers=["*"],
    )

    app.include_router(profiles.router, prefix="/v1")
    app.include_router(jobs.router, prefix="/v1")
    app.include_router(agents.router, prefix="/v1")

    @app.get("/")
    async def root():
        return {
            "service": "Outreach Agents API",
            "version": __version__,
            "docs": "/docs",
            "endpoints": {
                "profiles": "/v1/profiles",
                "deploy": "/v1/jobs/deploy",
                "jobs": "/v1/jobs",
                "stages": "/v1/agents/stage/{stage_number}",
            },
        }

    @app.get("/health")
    def health():
        orch = app.state.orchestrator
        db_ok = orch.db.ping()
        return {
            "status": "healthy" if db_ok else "degraded",
            "database": orch.db.backend_name if db_ok else "unreachable",
            "dispatch_mode": orch.dispatcher.mode,
            "dispatch_failures": len(orch.dispatcher.failures()),
        }

    return app


app = create_app()


if __name__ == "__main__":
    import uvicorn

    uvicorn.run(
        "outreach.api.main:app",
        host="0.0.0.0",
        port=8001,
        reload=True,
    )
