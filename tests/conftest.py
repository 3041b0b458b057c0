"""Shared pytest fixtures for the Beat Room test suite.

The app runs in-process behind aiohttp's TestServer with an in-memory
registry, so tests need no disk or network setup.
"""

from __future__ import annotations

from typing import AsyncIterator

import pytest
import pytest_asyncio
from aiohttp.test_utils import TestClient, TestServer

from beatroom.registry import MemoryRegistry
from main import create_app


@pytest.fixture()
def registry() -> MemoryRegistry:
    return MemoryRegistry()


@pytest_asyncio.fixture()
async def client(registry: MemoryRegistry) -> AsyncIterator[TestClient]:
    app = create_app(registry=registry, rate_limit=1000)
    async with TestClient(TestServer(app)) as tc:
        yield tc
