"""Pytest configuration and fixtures."""

import os
import tempfile

# The engine is built at import time, so point it at a scratch database first.
_DB_DIR = tempfile.mkdtemp(prefix="shieldlink-tests-")
DB_PATH = os.path.join(_DB_DIR, "shield.db")
os.environ["DATABASE_URL"] = f"sqlite+aiosqlite:///{DB_PATH}"
os.environ["ANALYTICS_URL"] = ""
os.environ["SHIELD_LATCH_BACKEND"] = "memory"
os.environ["SECRET_KEY"] = "test-secret"
os.environ["FRONTEND_URL"] = "http://frontend.test"

import json
from typing import List, Optional, Tuple

import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import Session

from shieldlink import database, models
from shieldlink.shield.codec import PayloadCodec
from shieldlink.shield.config import ProtectionConfig
from shieldlink.shield.errors import RecorderDeliveryError
from shieldlink.shield.latch import MemoryLatch
from shieldlink.shield.navigation import FixedStrategyPicker, NavigationStrategy
from shieldlink.shield.orchestrator import RedirectOrchestrator, SessionUpdate
from shieldlink.shield.recorder import ActionRecorder, ClickActionRecord
from shieldlink.shield.session import ProtectedLink, VisitSession

HUMAN_PROBE = {
    "has_graphics": True,
    "has_webrtc": True,
    "has_media_devices": True,
    "screen_valid": True,
    "viewport_valid": True,
    "has_plugins": True,
    "pixel_ratio_valid": True,
    "has_permissions": True,
    "has_languages": True,
    "webdriver": False,
    "automation_markers": False,
}


class FakeNavigator:
    def __init__(self):
        self.calls: List[Tuple[NavigationStrategy, str]] = []

    def execute(self, strategy, url):
        self.calls.append((strategy, url))


class MemorySink:
    def __init__(self):
        self.records: List[ClickActionRecord] = []

    async def deliver(self, record):
        self.records.append(record)


class FailingSink:
    async def deliver(self, record):
        raise RecorderDeliveryError("analytics is down")


class ManualClock:
    """Monotonic clock that only moves when a test advances it."""

    def __init__(self, start: float = 100.0):
        self.now = start

    def __call__(self) -> float:
        return self.now

    def advance(self, seconds: float) -> None:
        self.now += seconds


def make_link(**overrides) -> ProtectedLink:
    fields = {
        "id": 7,
        "slug": "promo",
        "title": "Spring promo",
        "destination": "example.com/x",
        "shield_enabled": True,
        "config": ProtectionConfig(level=2, timer_ms=0),
    }
    fields.update(overrides)
    return ProtectedLink(**fields)


class Harness:
    """One orchestrator wired to in-memory collaborators."""

    def __init__(self, codec, link, *, payload=None, clock=None, picker=None, grace_ms=0, confirm_delay_ms=0, tick_ms=1):
        self.codec = codec
        self.link = link
        self.navigator = FakeNavigator()
        self.sink = MemorySink()
        self.recorder = ActionRecorder(self.sink)
        self.latch = MemoryLatch()
        self.updates: List[SessionUpdate] = []
        if payload is None:
            payload = codec.encode(link.destination, link.id)
        self.session = VisitSession(link=link.redacted(), payload=payload)
        kwargs = {"clock": clock} if clock is not None else {}
        self.orchestrator = RedirectOrchestrator(
            self.session,
            codec=codec,
            recorder=self.recorder,
            navigator=self.navigator,
            latch=self.latch,
            picker=picker or FixedStrategyPicker(),
            listener=self.updates.append,
            context={"user_agent": "Mozilla/5.0", "referer": None, "country": "ET"},
            tick_ms=tick_ms,
            grace_ms=grace_ms,
            confirm_delay_ms=confirm_delay_ms,
            **kwargs,
        )

    @property
    def ticks(self) -> List[int]:
        return [u.remaining_seconds for u in self.updates if u.kind == "tick"]

    @property
    def states(self) -> List[str]:
        return [u.state.value for u in self.updates if u.kind == "state"]


@pytest.fixture
def codec():
    return PayloadCodec("test-secret")


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def harness(codec):
    def build(link: Optional[ProtectedLink] = None, **kwargs) -> Harness:
        return Harness(codec, link or make_link(), **kwargs)

    return build


# -- web fixtures -------------------------------------------------------------

SEED_LINKS = [
    {"slug": "plain", "title": "Plain", "destination": "example.com/x"},
    {
        "slug": "gate",
        "title": "Gate",
        "destination": "https://example.com/landing",
        "shield_enabled": True,
        "shield_config": json.dumps({"level": 2, "timer": 0}),
    },
    {
        "slug": "manual",
        "title": "Manual",
        "destination": "https://example.com/manual",
        "shield_enabled": True,
        "shield_config": json.dumps({"level": 1, "timer": 0}),
    },
    {
        "slug": "ultra",
        "title": "Ultra",
        "destination": "https://secret.example.com/offer",
        "shield_enabled": True,
        "is_ultra_link": True,
        "shield_config": json.dumps({"level": 2, "timer": 0, "features": ["ai-detection", "bogus"]}),
        "meta_title": "Weekly digest",
    },
    {
        "slug": "locked",
        "title": "Locked",
        "destination": "https://example.com/locked",
        "shield_enabled": True,
        "password": "hashed",
    },
]


@pytest.fixture(scope="session")
def sync_engine():
    engine = create_engine(f"sqlite:///{DB_PATH}")
    database.Base.metadata.create_all(engine)
    yield engine
    engine.dispose()


@pytest.fixture(scope="session")
def link_ids(sync_engine):
    ids = {}
    with Session(sync_engine) as db:
        for data in SEED_LINKS:
            link = models.Link(**data)
            db.add(link)
            db.flush()
            ids[link.slug] = link.id
        db.commit()
    return ids


@pytest.fixture(scope="session")
def client(link_ids):
    from fastapi.testclient import TestClient
    from shieldlink import main

    main.shield.grace_ms = 0
    main.shield.confirm_delay_ms = 0
    with TestClient(main.app) as client:
        yield client


@pytest.fixture
def fetch_link(sync_engine):
    def fetch(slug):
        with Session(sync_engine) as db:
            return db.query(models.Link).filter(models.Link.slug == slug).one()

    return fetch
