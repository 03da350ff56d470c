"""Shared fixtures and utilities for team RPS tests."""
from __future__ import annotations

import asyncio
import json
import random
import sys
from pathlib import Path
from typing import Any, Dict, List, Optional

import pytest
from httpx import AsyncClient, ASGITransport

# Add parent directory to path for imports
sys.path.insert(0, str(Path(__file__).parent.parent))

from connections import Connection
from game import Game
from server import app, GAME
from settings import Settings


class FakeSocket:
    """Records every frame the server sends."""

    def __init__(self) -> None:
        self.sent: List[Dict[str, Any]] = []
        self.closed = False
        self.close_code: Optional[int] = None

    async def send_text(self, text: str) -> None:
        self.sent.append(json.loads(text))

    async def close(self, code: int = 1000, reason: Optional[str] = None) -> None:
        self.closed = True
        self.close_code = code

    def of_type(self, msg_type: str) -> List[Dict[str, Any]]:
        return [m["data"] for m in self.sent if m["type"] == msg_type]

    def last(self, msg_type: str) -> Dict[str, Any]:
        return self.of_type(msg_type)[-1]


class BrokenSocket(FakeSocket):
    async def send_text(self, text: str) -> None:
        raise RuntimeError("connection reset")


class StalledSocket(FakeSocket):
    async def send_text(self, text: str) -> None:
        await asyncio.sleep(60)


class FakeClock:
    def __init__(self, now: float = 0.0) -> None:
        self.now = now

    def __call__(self) -> float:
        return self.now


def make_game(seed: int = 7, clock: Optional[FakeClock] = None, **overrides: Any) -> Game:
    """Game with a seeded RNG; bots are off unless asked for."""
    overrides.setdefault("bot_count", 0)
    settings = Settings(**overrides)
    if clock is None:
        return Game(settings, rng=random.Random(seed))
    return Game(settings, rng=random.Random(seed), clock=clock)


async def add_connections(game: Game, count: int) -> List[Connection]:
    """Connect ``count`` fake sockets and return their connections."""
    conns = []
    for _ in range(count):
        conns.append(await game.connect(FakeSocket()))
    return conns


async def run_ticks(game: Game, count: int) -> None:
    for _ in range(count):
        await game.tick()


@pytest.fixture
def game() -> Game:
    """Fresh, unstarted Game instance for each test."""
    return make_game()


@pytest.fixture
async def client():
    """Async HTTP client for API testing."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture(autouse=True)
def reset_global_game():
    """Reset the global GAME instance before each test."""
    GAME.reset()
    yield
    GAME.reset()
