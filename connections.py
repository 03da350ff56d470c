from __future__ import annotations

import time
from dataclasses import dataclass
from typing import Any, Callable, Dict, Iterator, List, Optional

from rules import Choice


@dataclass(eq=False)
class Connection:
    id: str
    websocket: Any
    team: int
    name: str
    has_voted: bool = False
    vote: Optional[Choice] = None
    last_activity: float = 0.0

    def reset_vote(self) -> None:
        self.has_voted = False
        self.vote = None


class ConnectionRegistry:
    """Live connections keyed by id.

    Iteration walks a snapshot of the current membership, so callers may
    remove connections (or have them evicted) mid-loop.
    """

    def __init__(self, clock: Callable[[], float] = time.monotonic) -> None:
        self._clock = clock
        self._connections: Dict[str, Connection] = {}

    def __len__(self) -> int:
        return len(self._connections)

    def __contains__(self, connection_id: object) -> bool:
        return connection_id in self._connections

    def __iter__(self) -> Iterator[Connection]:
        return iter(list(self._connections.values()))

    def add(self, connection: Connection) -> Connection:
        connection.last_activity = self._clock()
        self._connections[connection.id] = connection
        return connection

    def remove(self, connection_id: str) -> Optional[Connection]:
        return self._connections.pop(connection_id, None)

    def get(self, connection_id: str) -> Optional[Connection]:
        return self._connections.get(connection_id)

    def touch(self, connection_id: str) -> None:
        conn = self._connections.get(connection_id)
        if conn:
            conn.last_activity = self._clock()

    def on_team(self, team: int) -> List[Connection]:
        return [c for c in self._connections.values() if c.team == team]

    def idle_since(self, cutoff: float) -> List[Connection]:
        return [c for c in self._connections.values() if c.last_activity < cutoff]

    def clear(self) -> None:
        self._connections.clear()
