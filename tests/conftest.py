"""Pytest configuration."""

import asyncio
import os
from datetime import date

# Ensure test environment
os.environ.setdefault("SL_DATABASE_URL", "sqlite+aiosqlite:///test.db")
os.environ.setdefault("SL_DEBUG", "true")
os.environ.setdefault("SL_AUTO_CREATE_TABLES", "true")
os.environ.setdefault("SL_DISPLAY_TIMEZONE", "UTC")
os.environ.setdefault("SL_BASE_URL", "https://links.test")
os.environ.setdefault("SL_HOME_URL", "https://home.test")

import pytest

from smartlink.core.audit import AuditSink
from smartlink.core.errors import StoreUnavailable
from smartlink.core.resolver import RedirectResolver
from smartlink.models.database import Database
from smartlink.models.store import CampaignStore, LinkTarget
from smartlink.models.tables import GroupStatus


class InMemoryCampaignStore:
    """The resolver-facing half of CampaignStore, kept in dicts.

    Every call yields to the event loop first, so concurrent resolves
    interleave the way real handlers do around I/O. increment_click then
    bumps the counter in one step, the in-memory twin of
    UPDATE ... SET clicks = clicks + 1.
    """

    def __init__(self):
        self.targets: dict[str, LinkTarget] = {}
        self.clicks: dict[str, int] = {}
        self.audit: list = []
        self.fail_lookup = False
        self.fail_increment = False
        self.fail_audit = False

    def add_link(
        self,
        short_code: str,
        *,
        published: bool = True,
        expires_at: date = date(2099, 1, 1),
        target_url: str = "https://example.com/landing",
    ) -> LinkTarget:
        target = LinkTarget(
            link_id=f"link-{short_code}",
            short_code=short_code,
            target_url=target_url,
            expires_at=expires_at,
            group_id="group-1",
            group_status=(GroupStatus.PUBLISHED if published else GroupStatus.UNPUBLISHED).value,
        )
        self.targets[short_code] = target
        self.clicks[target.link_id] = 0
        return target

    async def find_link_target(self, short_code: str) -> LinkTarget | None:
        await asyncio.sleep(0)
        if self.fail_lookup:
            raise StoreUnavailable("connection refused")
        return self.targets.get(short_code)

    async def increment_click(self, link_id: str) -> None:
        await asyncio.sleep(0)
        if self.fail_increment:
            raise StoreUnavailable("pool timeout")
        self.clicks[link_id] += 1

    async def append_audit(self, entry) -> None:
        await asyncio.sleep(0)
        if self.fail_audit:
            raise RuntimeError("audit table is gone")
        self.audit.append(entry)

    def actions(self) -> list[str]:
        return [e.action for e in self.audit]


@pytest.fixture
def fake_store():
    return InMemoryCampaignStore()


@pytest.fixture
async def audit_sink(fake_store):
    sink = AuditSink(fake_store.append_audit)
    await sink.start()
    yield sink
    await sink.stop()


@pytest.fixture
def resolver(fake_store, audit_sink):
    return RedirectResolver(fake_store, audit_sink)


@pytest.fixture
async def sql_store(tmp_path):
    """CampaignStore over a throwaway SQLite file."""
    db = Database(f"sqlite+aiosqlite:///{tmp_path / 'smartlink.db'}")
    await db.create_all()
    yield CampaignStore(db)
    await db.dispose()


@pytest.fixture
def client(tmp_path):
    """TestClient over the real app, backed by a throwaway SQLite file."""
    from fastapi.testclient import TestClient
    from smartlink.main import create_app

    app = create_app(database=Database(f"sqlite+aiosqlite:///{tmp_path / 'api.db'}"))
    with TestClient(app) as c:
        yield c
