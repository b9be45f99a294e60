# tests/conftest.py

import asyncio
import textwrap
from pathlib import Path

import pytest

from testmgr.catalog import CatalogStore
from testmgr.config import HistoryConfig, RunnerConfig, TestmgrConfig, WatchConfig
from testmgr.discovery.models import EntityKind, TestEntity

USERS_TESTS = textwrap.dedent(
    """\
    from django.test import TestCase


    class TestUserViews(TestCase):
        def setUp(self):
            self.user = make_user()

        def test_login(self):
            self.assertTrue(self.client.login())

        def test_logout(self):
            self.client.logout()


    class UserHelpers:
        def test_not_collected(self):
            pass
    """
)

ORDERS_TESTS = textwrap.dedent(
    """\
    import unittest


    class OrderTests(unittest.TestCase):
        def test_total(self):
            self.assertEqual(1 + 1, 2)
    """
)


@pytest.fixture
def catalog() -> CatalogStore:
    return CatalogStore(notify_interval=0.01)


@pytest.fixture
def django_project(tmp_path: Path) -> Path:
    """A minimal project tree with two apps holding tests."""
    root = tmp_path / "project"
    (root / "users").mkdir(parents=True)
    (root / "orders").mkdir()
    (root / "manage.py").write_text("print('manage')\n")
    (root / "users" / "__init__.py").write_text("")
    (root / "users" / "views.py").write_text("def login():\n    pass\n")
    (root / "users" / "test_views.py").write_text(USERS_TESTS)
    (root / "orders" / "__init__.py").write_text("")
    (root / "orders" / "tests.py").write_text(ORDERS_TESTS)
    return root.resolve()


@pytest.fixture
def history_config() -> HistoryConfig:
    return HistoryConfig(max_sessions=5, max_tests_per_session=100)


@pytest.fixture
def project_config(tmp_path: Path) -> TestmgrConfig:
    return TestmgrConfig(
        runner=RunnerConfig(channel="pipe", tick_interval_ms=10, notify_interval_ms=10),
        watch=WatchConfig(debounce_ms=50),
        history=HistoryConfig(storage_path=tmp_path / "history.json"),
    )


@pytest.fixture
def make_group():
    """Factory building a group entity with one case per name."""

    def build(group_id: str, *case_names: str) -> TestEntity:
        return TestEntity(
            name=group_id.rsplit(".", 1)[-1],
            kind=EntityKind.GROUP,
            canonical_id=group_id,
            children=[
                TestEntity(name=name, kind=EntityKind.CASE, canonical_id=f"{group_id}.{name}") for name in case_names
            ],
        )

    return build


class FakeChannel:
    """
    Process channel stand-in: replays ``output`` while waiting and exits with
    ``exit_code``. With ``hold`` set, the process keeps running until cancelled.
    """

    def __init__(self) -> None:
        self.output = ""
        self.exit_code = 0
        self.spawn_error: Exception | None = None
        self.hold = False
        self.invocations = []
        self.cancel_calls = 0
        self.closed = False
        self._busy = False
        self._on_data = None
        self._released: asyncio.Event | None = None

    @property
    def is_busy(self) -> bool:
        return self._busy

    async def start(self, invocation, on_data, on_exit=None) -> None:
        if self.spawn_error is not None:
            raise self.spawn_error
        self.invocations.append(invocation)
        self._on_data = on_data
        self._released = asyncio.Event()
        self._busy = True

    async def wait(self) -> int:
        try:
            if self.output:
                self._on_data(self.output)
            if self.hold:
                await self._released.wait()
                return -2
            return self.exit_code
        finally:
            self._busy = False

    async def run(self, invocation, on_data, on_exit=None) -> int:
        await self.start(invocation, on_data, on_exit)
        return await self.wait()

    def cancel(self) -> None:
        self.cancel_calls += 1
        if self._released is not None:
            self._released.set()

    def close(self) -> None:
        self.closed = True


@pytest.fixture
def fake_channel() -> FakeChannel:
    return FakeChannel()
