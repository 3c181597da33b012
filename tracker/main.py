"""
Task Workflow Tracker - FastAPI Application

Request layer over the workflow core:
- Application administration (admin only)
- Plans (any authenticated principal)
- Task creation, transitions and edits (group-gated per application)
- Kanban board and per-task available actions
"""

import logging
from datetime import datetime, timezone

from fastapi import FastAPI

from . import SERVICE_NAME, __version__
from .config import get_settings
from .router import router

# -----------------------------------------------------------------------------
# Logging Configuration
# -----------------------------------------------------------------------------
logging.basicConfig(
    level=getattr(logging, get_settings().log_level, logging.INFO),
    format="%(asctime)s - %(name)s - %(levelname)s - %(message)s"
)
logger = logging.getLogger("tracker")

# -----------------------------------------------------------------------------
# Application
# -----------------------------------------------------------------------------
app = FastAPI(
    title=SERVICE_NAME,
    description="Multi-tenant task workflow tracker",
    version=__version__,
)
app.include_router(router)


@app.get("/")
async def root():
    """Service info."""
    return {
        "service": SERVICE_NAME,
        "status": "running",
        "version": __version__,
    }


@app.get("/health")
async def health():
    """Health check with capability list."""
    return {
        "status": "healthy",
        "timestamp": datetime.now(timezone.utc).isoformat(),
        "version": __version__,
        "capabilities": [
            "applications",
            "plans",
            "task_workflow",
            "audit_notes",
            "board",
        ],
    }


if __name__ == "__main__":
    import uvicorn
    uvicorn.run(app, host="0.0.0.0", port=8000)
