"""Shared fixtures: manual clock, scripted content source, small settings."""

import asyncio

import pytest

from wikiref.config import PipelineSettings
from wikiref.core.errors import FetchNotFoundError

BASE_URL = "https://acme.atlassian.net/wiki"


def page_link(page_id: int | str, title: str = "Page") -> str:
    return f"{BASE_URL}/spaces/ENG/pages/{page_id}/{title}"


class ManualClock:
    """Clock whose time only moves when a test says so."""

    def __init__(self, start: float = 1000.0):
        self.current = start

    def now(self) -> float:
        return self.current

    def advance(self, seconds: float) -> None:
        self.current += seconds


class FakeSource:
    """Content source serving pages from a dict and recording every call."""

    def __init__(self, pages=None, errors=None, delay: float = 0.0):
        self.pages = dict(pages or {})
        self.errors = dict(errors or {})
        self.delay = delay
        self.calls: list[str] = []
        self.active = 0
        self.peak = 0

    async def fetch_page(self, page_id: str) -> str:
        self.calls.append(page_id)
        self.active += 1
        self.peak = max(self.peak, self.active)
        try:
            if self.delay:
                await asyncio.sleep(self.delay)
            if page_id in self.errors:
                raise self.errors[page_id]
            if page_id in self.pages:
                return self.pages[page_id]
            raise FetchNotFoundError("Page not found", page_id=page_id, status_code=404)
        finally:
            self.active -= 1


class StripSanitizer:

    def sanitize(self, raw: str) -> str:
        return raw.strip()


@pytest.fixture
def clock():
    return ManualClock()


@pytest.fixture
def settings():
    return PipelineSettings(
        cache_ttl=60.0,
        max_entries=10,
        max_bytes=100_000,
        max_concurrent=3,
        debounce_fast=0.01,
        debounce_slow=0.05,
        sweep_interval=0.05,
    )


@pytest.fixture
def source():
    return FakeSource(pages={"1": "Alpha", "2": "Beta", "3": "Gamma"})


@pytest.fixture
def sanitizer():
    return StripSanitizer()
