"""Shared test fixtures."""

from __future__ import annotations

import asyncio
from typing import Any, Dict, List

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient

from backend.app.alerts.lifecycle import AlertLifecycleManager
from backend.app.alerts.store import AlertStore
from backend.app.core.database import Database
from backend.app.core.security import Actor, Role, issue_token
from backend.app.main import create_app
from backend.app.realtime.bus import FanOutBus
from backend.app.realtime.events import AlertEvent

MEMORY_DB = "sqlite+aiosqlite:///:memory:"

# Miami, FL
MIAMI_LON = -80.19
MIAMI_LAT = 25.76


def alert_payload(**overrides: Any) -> Dict[str, Any]:
    """A valid alert create payload (Miami flood warning)."""
    payload: Dict[str, Any] = {
        "title": "Flood Warning",
        "description": "Storm surge expected along Biscayne Bay.",
        "type": "Flood",
        "severity": "High",
        "location": {
            "type": "Point",
            "coordinates": [MIAMI_LON, MIAMI_LAT],
            "address": "Miami, FL",
        },
    }
    payload.update(overrides)
    return payload


def bearer(user_id: str, role: Role = Role.USER) -> Dict[str, str]:
    return {"Authorization": f"Bearer {issue_token(user_id, role)}"}


class EventRecorder:
    """Bus observer that keeps every delivered event."""

    def __init__(self) -> None:
        self.events: List[AlertEvent] = []

    async def __call__(self, event: AlertEvent) -> None:
        self.events.append(event)

    @property
    def kinds(self) -> List[str]:
        return [e.kind.value for e in self.events]


# ═══════════════════════════════════════════════════════════════════════════
# Actors
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def owner() -> Actor:
    return Actor("user-owner", Role.USER)


@pytest.fixture
def stranger() -> Actor:
    return Actor("user-stranger", Role.USER)


@pytest.fixture
def responder() -> Actor:
    return Actor("user-responder", Role.RESPONDER)


@pytest.fixture
def admin() -> Actor:
    return Actor("user-admin", Role.ADMIN)


# ═══════════════════════════════════════════════════════════════════════════
# Store, bus, manager
# ═══════════════════════════════════════════════════════════════════════════

@pytest_asyncio.fixture
async def database():
    """Fresh in-memory SQLite database with all tables."""
    db = Database(MEMORY_DB)
    await db.create_all()
    yield db
    await db.dispose()


@pytest_asyncio.fixture
async def bus():
    b = FanOutBus(queue_size=16)
    await b.start()
    yield b
    await b.stop()


@pytest_asyncio.fixture
async def alert_store(database) -> AlertStore:
    return AlertStore(database)


@pytest_asyncio.fixture
async def manager(alert_store, bus) -> AlertLifecycleManager:
    return AlertLifecycleManager(alert_store, bus)


@pytest_asyncio.fixture
async def recorder(bus) -> EventRecorder:
    rec = EventRecorder()
    bus.subscribe(rec, label="recorder")
    # let the pump task start
    await asyncio.sleep(0)
    return rec


# ═══════════════════════════════════════════════════════════════════════════
# HTTP / WebSocket
# ═══════════════════════════════════════════════════════════════════════════

@pytest.fixture
def client():
    """TestClient with the lifespan running (one event loop for app + bus)."""
    app = create_app(MEMORY_DB)
    with TestClient(app) as c:
        yield c
