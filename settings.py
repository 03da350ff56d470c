from __future__ import annotations

import os
from dataclasses import dataclass
from typing import Mapping, Optional


@dataclass(frozen=True)
class Settings:
    host: str = "0.0.0.0"
    port: int = 8080
    # Phase lengths, in ticks
    voting_duration: int = 30
    results_duration: int = 5
    tick_interval: float = 1.0
    # Periodic gameState every N ticks; phase changes always broadcast
    broadcast_every: int = 5
    bot_count: int = 10
    bot_vote_window: int = 15
    # Idle eviction (seconds)
    idle_timeout: float = 1200.0
    idle_sweep_interval: float = 60.0
    send_timeout: float = 5.0
    log_level: str = "INFO"

    def __post_init__(self) -> None:
        object.__setattr__(self, "voting_duration", max(1, int(self.voting_duration)))
        object.__setattr__(self, "results_duration", max(1, int(self.results_duration)))
        object.__setattr__(self, "broadcast_every", max(1, int(self.broadcast_every)))
        object.__setattr__(self, "bot_count", max(0, int(self.bot_count)))

    @classmethod
    def from_env(cls, environ: Optional[Mapping[str, str]] = None) -> "Settings":
        env = os.environ if environ is None else environ
        return cls(
            host=env.get("HOST", "0.0.0.0"),
            port=int(env.get("PORT", "8080")),
            voting_duration=int(env.get("VOTING_DURATION", "30")),
            results_duration=int(env.get("RESULTS_DURATION", "5")),
            tick_interval=float(env.get("TICK_INTERVAL_SEC", "1.0")),
            broadcast_every=int(env.get("BROADCAST_EVERY", "5")),
            bot_count=int(env.get("BOT_COUNT", "10")),
            bot_vote_window=int(env.get("BOT_VOTE_WINDOW", "15")),
            idle_timeout=float(env.get("IDLE_TIMEOUT_SEC", "1200")),
            idle_sweep_interval=float(env.get("IDLE_SWEEP_INTERVAL_SEC", "60")),
            send_timeout=float(env.get("SEND_TIMEOUT_SEC", "5.0")),
            log_level=env.get("LOG_LEVEL", "INFO").upper(),
        )
