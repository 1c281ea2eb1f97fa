import logging
import os
import subprocess
from datetime import datetime

from fastapi import FastAPI, Request
from fastapi.middleware.cors import CORSMiddleware
from fastapi.responses import JSONResponse

from hockey import __version__, settings
from hockey.database import init_db
from hockey.exceptions import HockeyError
from hockey.routes import bracket, events, matches, registrations, standings, teams, tournaments
from hockey.services.background import start_background_tasks, stop_background_tasks

logging.basicConfig(
    level=getattr(logging, settings.LOG_LEVEL, logging.INFO),
    format="%(asctime)s %(levelname)s %(name)s: %(message)s",
)
logger = logging.getLogger(__name__)

app = FastAPI(title="Hockey League API", version=__version__)


# Get build info
def get_build_info():
    """Get git commit hash or build timestamp"""
    try:
        result = subprocess.run(
            ["git", "rev-parse", "--short", "HEAD"],
            cwd=os.path.dirname(os.path.dirname(__file__)),
            capture_output=True,
            text=True,
            timeout=2,
        )
        if result.returncode == 0:
            return result.stdout.strip()
    except (OSError, subprocess.SubprocessError):
        pass

    # Fallback to build timestamp
    return datetime.now().strftime("%Y%m%d-%H%M%S")


BUILD_HASH = get_build_info()

_cors_origins = [
    "http://localhost:8081",  # Expo dev server
    "http://127.0.0.1:8081",
]
_cors_origins.extend(settings.CORS_ORIGINS)

app.add_middleware(
    CORSMiddleware,
    allow_origins=_cors_origins,
    allow_credentials=True,
    allow_methods=["*"],
    allow_headers=["*"],
)


@app.exception_handler(HockeyError)
async def hockey_error_handler(request: Request, exc: HockeyError):
    logger.info(f"{request.method} {request.url.path} -> {exc.status_code} {exc.code}: {exc.message}")
    return JSONResponse(status_code=exc.status_code, content={"detail": exc.message, "code": exc.code})


# Include routers
app.include_router(tournaments.router, prefix="/api", tags=["tournaments"])
app.include_router(teams.router, prefix="/api", tags=["teams"])
app.include_router(bracket.router, prefix="/api", tags=["bracket"])
app.include_router(matches.router, prefix="/api", tags=["matches"])
app.include_router(standings.router, prefix="/api", tags=["standings"])
app.include_router(events.router, prefix="/api", tags=["events"])

# Registrations and waitlists for both events and tournaments
app.include_router(registrations.router, prefix="/api", tags=["registrations"])


@app.on_event("startup")
async def on_startup():
    init_db()  # Use centralized init_db() which imports models and creates tables
    app.state.background_tasks = []
    if settings.BACKGROUND_TASKS_ENABLED:
        app.state.background_tasks = start_background_tasks()
    logger.info(f"Hockey League API {__version__} started (build {BUILD_HASH})")


@app.on_event("shutdown")
async def on_shutdown():
    await stop_background_tasks(getattr(app.state, "background_tasks", []))


@app.get("/api/health")
def health_check():
    """Diagnostic endpoint to verify which code is running"""
    return {"app_name": "Hockey League API", "version": __version__, "build_hash": BUILD_HASH, "status": "healthy"}
