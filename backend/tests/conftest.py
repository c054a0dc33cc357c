"""Shared test fixtures for agentic_browser.

Nothing here talks to a real browser, model, Redis or MinIO:
  db_session:     in-memory SQLite (aiosqlite) with the jobs table created
  FakePage:       scripted page, selectors map to the markup shown after clicking
  launcher:       fake Playwright launcher that records launches
  clock:          virtual clock whose sleep() advances instantly
  scripted_model: stand-in for chat_completion_with_tools
"""
from __future__ import annotations

import asyncio
import json
from typing import Any, Callable, Dict, List, Optional, Tuple

import pytest
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.pool import StaticPool

import agentic_browser.models  # noqa: F401  (registers the jobs table)
from agentic_browser.core.config import settings
from agentic_browser.core.database import Base
from agentic_browser.schemas.agent import ToolCall
from agentic_browser.services.browser_session_manager import BrowserSessionRegistry


# ---------------------------------------------------------------------------
# Settings isolation
# ---------------------------------------------------------------------------

@pytest.fixture(autouse=True)
def _isolated_settings(monkeypatch):
    """No Redis, no screenshots, small timeouts for every test."""
    monkeypatch.setattr(settings, "RATE_LIMIT_ENABLED", False)
    monkeypatch.setattr(settings, "SCREENSHOT_ENABLED", False)
    monkeypatch.setattr(settings, "RESPONSE_JSON_WRAPPED", False)


# ---------------------------------------------------------------------------
# Database
# ---------------------------------------------------------------------------

@pytest.fixture
async def db_session():
    engine = create_async_engine(
        "sqlite+aiosqlite:///:memory:",
        poolclass=StaticPool,
        connect_args={"check_same_thread": False},
    )
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    factory = async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)
    async with factory() as session:
        yield session
    await engine.dispose()


# ---------------------------------------------------------------------------
# Browser fakes
# ---------------------------------------------------------------------------

class FakePage:
    """Page whose DOM is a string; ``targets`` maps selector -> markup after a click
    (None keeps the current markup). Selectors not in ``targets`` behave like
    Playwright's locator timeout."""

    def __init__(self, sites: Dict[str, str], targets: Optional[Dict[str, Optional[str]]] = None):
        self.sites = sites
        self.targets = targets or {}
        self.html = ""
        self.url = "about:blank"
        self.actions: List[Tuple[str, ...]] = []
        self.closed = False
        self.fail_evaluate = False

    async def goto(self, url: str, timeout: Optional[int] = None):
        if url not in self.sites:
            raise Exception(f"net::ERR_NAME_NOT_RESOLVED at {url}")
        self.url = url
        self.html = self.sites[url]
        self.actions.append(("goto", url))

    async def evaluate(self, script: str):
        if self.fail_evaluate:
            raise Exception("Execution context was destroyed")
        return self.html

    def _require(self, selector: str) -> None:
        if selector not in self.targets:
            raise Exception(
                f"Timeout 10000ms exceeded.\nCall log:\n  - waiting for locator(\"{selector}\")"
            )

    async def click(self, selector: str, timeout: Optional[int] = None):
        self._require(selector)
        self.actions.append(("click", selector))
        if self.targets[selector] is not None:
            self.html = self.targets[selector]

    async def type(self, selector: str, value: str, timeout: Optional[int] = None):
        self._require(selector)
        self.actions.append(("type", selector, value))

    async def select_option(self, selector: str, value: str, timeout: Optional[int] = None):
        self._require(selector)
        self.actions.append(("select", selector, value))

    async def wait_for_load_state(self, state: str = "load", timeout: Optional[int] = None):
        self.actions.append(("wait", state))

    async def screenshot(self, type: str = "png", **kwargs):
        return b"\xff\xd8fake-jpeg"

    async def close(self):
        self.closed = True


class FakeBrowser:
    def __init__(self, page_factory: Callable[[], FakePage]):
        self.page_factory = page_factory
        self.pages: List[FakePage] = []
        self.connected = True
        self.closed = False

    def is_connected(self) -> bool:
        return self.connected

    async def new_page(self, viewport: Optional[dict] = None):
        page = self.page_factory()
        page.viewport = viewport
        self.pages.append(page)
        return page

    async def close(self):
        self.closed = True
        self.connected = False


class FakePlaywright:
    def __init__(self):
        self.stopped = False

    async def stop(self):
        self.stopped = True


class FakeLauncher:
    """Records every launch; ``fail`` makes the next launches raise."""

    def __init__(self, page_factory: Callable[[], FakePage]):
        self.page_factory = page_factory
        self.browsers: List[FakeBrowser] = []
        self.fail = False

    async def __call__(self):
        if self.fail:
            raise RuntimeError("Executable doesn't exist at /ms-playwright/chromium")
        browser = FakeBrowser(self.page_factory)
        self.browsers.append(browser)
        return FakePlaywright(), browser

    @property
    def launches(self) -> int:
        return len(self.browsers)


@pytest.fixture
async def sessions(launcher):
    """保活任务挂起不触发，测试结束时统一关闭。"""
    never = asyncio.Event()

    async def idle(seconds):
        await never.wait()

    registry = BrowserSessionRegistry(launcher=launcher, sleep=idle)
    yield registry
    await registry.close_all()


class FakeMinio:
    def __init__(self, fail_put: bool = False):
        self.buckets = set()
        self.objects: Dict[Tuple[str, str], Tuple[bytes, Optional[str]]] = {}
        self.fail_put = fail_put
        self.puts: List[str] = []

    def bucket_exists(self, bucket):
        return bucket in self.buckets

    def make_bucket(self, bucket):
        self.buckets.add(bucket)

    def put_object(self, bucket, key, data, length, content_type=None):
        if self.fail_put:
            raise OSError("connection refused")
        self.puts.append(key)
        self.objects[(bucket, key)] = (data.read(), content_type)


SITE_URL = "https://example.com"
HOME_HTML = """
<header><nav><a id="pricing" href="/pricing">Pricing</a></nav></header>
<script>window.track = 1;</script>
<main onclick="track()"><h1>Example</h1><!-- hero --></main>
"""
PRICING_HTML = "<main><h1>Pricing</h1><p>Pro: $10/mo</p></main>"


@pytest.fixture
def make_page():
    def _make(sites: Optional[Dict[str, str]] = None, targets: Optional[Dict[str, Optional[str]]] = None):
        return FakePage(
            sites if sites is not None else {SITE_URL: HOME_HTML},
            targets if targets is not None else {"#pricing": PRICING_HTML},
        )
    return _make


@pytest.fixture
def launcher(make_page):
    return FakeLauncher(lambda: make_page())


# ---------------------------------------------------------------------------
# Virtual clock
# ---------------------------------------------------------------------------

class VirtualClock:
    def __init__(self):
        self.now = 0.0
        self.sleeps: List[float] = []

    async def sleep(self, seconds: float):
        self.now += seconds
        self.sleeps.append(seconds)
        await asyncio.sleep(0)


@pytest.fixture
def clock():
    return VirtualClock()


# ---------------------------------------------------------------------------
# Model fake
# ---------------------------------------------------------------------------

def tool_call(name: str, call_id: str = "call_1", **arguments: Any) -> ToolCall:
    return ToolCall(id=call_id, name=name, arguments=json.dumps(arguments))


class ScriptedModel:
    """Returns scripted (content, tool_calls) replies and records every request."""

    def __init__(self, replies: List[Tuple[Optional[str], List[ToolCall]]] = None, repeat_last: bool = False):
        self.replies = list(replies or [])
        self.repeat_last = repeat_last
        self.requests: List[List[dict]] = []
        self.tools_seen: List[Any] = []

    async def __call__(self, messages, tools=None, **kwargs):
        self.requests.append(messages)
        self.tools_seen.append(tools)
        if len(self.replies) == 1 and self.repeat_last:
            return self.replies[0]
        return self.replies.pop(0)


@pytest.fixture
def tool_call_factory():
    return tool_call


@pytest.fixture
def scripted_model():
    return ScriptedModel
