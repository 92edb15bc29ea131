"""
REST API module for the NHC Cyclone Tracker.

Read-only view over the persisted run state:
- Active cyclones from the last successful poll
- Tracked ATCF ids
- Digest schedule and run health
"""

import logging
import os
from contextlib import asynccontextmanager
from datetime import datetime, timedelta, timezone
from typing import List, Optional

from fastapi import FastAPI, HTTPException
from pydantic import BaseModel

from .fetcher import cone_image_link
from .store import RunState, StateStore

logger = logging.getLogger(__name__)

# A run that has not saved state for this long is reported as stale
STALE_RUN_AFTER = timedelta(hours=1)


# =============================================================================
# Pydantic Models
# =============================================================================

class CycloneModel(BaseModel):
    atcf: str
    name: str
    type: str
    hurricane_category: int
    wind: str
    headline: str
    cone_image_url: str
    advisory_published_at: Optional[datetime]


class HealthResponse(BaseModel):
    status: str
    timestamp: str
    last_run_at: Optional[datetime]
    risks: List[str]


class TrackerStatus(BaseModel):
    active_cyclones: int
    tracked_ids: List[str]
    broadcast_message_ids: List[str]
    digest_message_id: Optional[str]
    digest_next_due_at: datetime
    last_run_at: Optional[datetime]


# =============================================================================
# Global State
# =============================================================================

store: Optional[StateStore] = None


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Application lifespan manager."""
    global store

    store = StateStore(os.getenv("STATE_PATH") or None)
    logger.info(f"Serving tracker state from {store.path}")

    yield

    logger.info("Shutdown complete")


app = FastAPI(
    title="NHC Cyclone Tracker API",
    description="Tropical cyclone tracking state relayed from the National Hurricane Center",
    version="1.0.0",
    lifespan=lifespan
)


# =============================================================================
# Utility Functions
# =============================================================================

def _load_state() -> RunState:
    if not store:
        raise HTTPException(status_code=503, detail="State store not available")
    return store.load()


def detect_risks(state: RunState, now: datetime) -> List[str]:
    """Detect tracker risks from the persisted state."""
    risks = []

    if state.last_run_at is None:
        risks.append("No successful run recorded")
    elif now - state.last_run_at > STALE_RUN_AFTER:
        risks.append(f"Last successful run at {state.last_run_at.isoformat()}")

    if now - state.digest_next_due_at > STALE_RUN_AFTER:
        risks.append("Digest report overdue")

    return risks


# =============================================================================
# API Endpoints
# =============================================================================

@app.get("/", tags=["Info"])
async def root():
    """API information."""
    return {
        "name": "NHC Cyclone Tracker API",
        "version": "1.0.0",
        "description": "Active tropical cyclones and Discord report state",
    }


@app.get("/health", response_model=HealthResponse, tags=["Health"])
async def health_check():
    """Health check endpoint."""
    state = _load_state()
    now = datetime.now(timezone.utc)
    risks = detect_risks(state, now)

    return HealthResponse(
        status="healthy" if not risks else "degraded",
        timestamp=now.isoformat(),
        last_run_at=state.last_run_at,
        risks=risks
    )


@app.get("/cyclones", response_model=List[CycloneModel], tags=["Cyclones"])
async def get_cyclones():
    """Active cyclones from the last successful poll."""
    state = _load_state()
    return [
        CycloneModel(
            atcf=c.atcf,
            name=c.name,
            type=c.type,
            hurricane_category=c.hurricane_category,
            wind=c.wind,
            headline=c.headline,
            cone_image_url=cone_image_link(c.season_wallet, c.atcf),
            advisory_published_at=c.advisory_published_at,
        )
        for c in state.cyclones
    ]


@app.get("/tracked", tags=["Cyclones"])
async def get_tracked():
    """ATCF ids currently broadcast to the guild."""
    state = _load_state()
    return {
        "tracked_ids": state.tracked_ids,
        "count": len(state.tracked_ids)
    }


@app.get("/status", response_model=TrackerStatus, tags=["Status"])
async def get_status():
    """Report bookkeeping from the last successful run."""
    state = _load_state()
    return TrackerStatus(
        active_cyclones=len(state.cyclones),
        tracked_ids=state.tracked_ids,
        broadcast_message_ids=state.broadcast_message_ids,
        digest_message_id=state.digest_message_id,
        digest_next_due_at=state.digest_next_due_at,
        last_run_at=state.last_run_at,
    )
