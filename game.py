from __future__ import annotations

import asyncio
import json
import logging
import random
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Awaitable, Callable, Dict, Iterable, List, Optional, Set, Union

from connections import Connection, ConnectionRegistry
from rules import (
    CHOICES,
    TEAMS,
    Choice,
    Winner,
    empty_tally,
    generate_player_name,
    get_winner,
    pick_team,
    top_choice,
)
from settings import Settings

logger = logging.getLogger("team-rps.game")

IDLE_CLOSE_CODE = 4000


class Phase(str, Enum):
    VOTING = "voting"
    RESULTS = "results"


@dataclass
class Team:
    players: Set[str] = field(default_factory=set)
    votes: Dict[Choice, int] = field(default_factory=empty_tally)
    choice: Optional[Choice] = None
    score: int = 0


@dataclass
class GameState:
    phase: Phase = Phase.VOTING
    game_number: int = 1
    time_left: int = 30
    teams: Dict[int, Team] = field(default_factory=lambda: {t: Team() for t in TEAMS})
    winner: Optional[Winner] = None


@dataclass(frozen=True)
class Bot:
    id: str
    team: int


class RepeatingTask:
    """Runs ``callback`` every ``interval`` seconds until cancelled.

    ``start`` always cancels the previous run first, so a single instance never
    has two loops going. Cancelling from inside the callback is allowed: the
    loop exits once the callback returns.
    """

    def __init__(self, interval: float, callback: Callable[[], Awaitable[Any]], name: str) -> None:
        self.interval = interval
        self.name = name
        self._callback = callback
        self._task: Optional[asyncio.Task] = None

    @property
    def active(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self) -> None:
        self.cancel()
        self._task = asyncio.create_task(self._run(), name=self.name)

    def cancel(self) -> None:
        task, self._task = self._task, None
        if task is None or task.done():
            return
        try:
            current = asyncio.current_task()
        except RuntimeError:
            current = None
        if task is current:
            return
        task.cancel()

    async def _run(self) -> None:
        me = asyncio.current_task()
        while self._task is me:
            await asyncio.sleep(self.interval)
            if self._task is not me:
                break
            try:
                await self._callback()
            except Exception:
                logger.exception("%s callback failed", self.name)


class Game:
    def __init__(
        self,
        settings: Optional[Settings] = None,
        rng: Optional[random.Random] = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.settings = settings or Settings()
        self.rng = rng or random.Random()
        self.clock = clock
        self.state = GameState(time_left=self.settings.voting_duration)
        self.connections = ConnectionRegistry(clock)
        self.bots: List[Bot] = [
            Bot(id=f"bot_{i + 1}", team=TEAMS[i % len(TEAMS)]) for i in range(self.settings.bot_count)
        ]
        self._ticker = RepeatingTask(self.settings.tick_interval, self._timer_tick, name="phase-ticker")
        self._sweeper = RepeatingTask(self.settings.idle_sweep_interval, self.sweep_idle, name="idle-sweep")
        self._bot_tasks: Set[asyncio.Task] = set()
        self._pending_sends: Set[asyncio.Future] = set()
        self._phase_ticks = 0
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    @property
    def ticker_active(self) -> bool:
        return self._ticker.active

    # ---- snapshots ----

    def team_player_count(self, team: int) -> int:
        bots = sum(1 for b in self.bots if b.team == team)
        return len(self.state.teams[team].players) + bots

    def public_snapshot(self) -> Dict[str, Any]:
        s = self.state
        t1, t2 = s.teams[1], s.teams[2]
        return {
            "phase": s.phase.value,
            "gameNumber": s.game_number,
            "timeLeft": s.time_left,
            "team1Score": t1.score,
            "team2Score": t2.score,
            "team1PlayerCount": self.team_player_count(1),
            "team2PlayerCount": self.team_player_count(2),
            "winner": s.winner.value if s.winner else None,
            "team1Choice": t1.choice.value if t1.choice else None,
            "team2Choice": t2.choice.value if t2.choice else None,
        }

    def team_votes(self, team: int) -> Dict[str, Any]:
        votes = self.state.teams[team].votes
        return {"team": team, "votes": {c.value: votes[c] for c in CHOICES}}

    # ---- broadcast ----

    async def _send(self, conn: Connection, payload: str) -> bool:
        try:
            await asyncio.wait_for(conn.websocket.send_text(payload), timeout=self.settings.send_timeout)
            return True
        except asyncio.TimeoutError:
            logger.debug("Send to %s timed out, skipping", conn.id)
        except Exception as exc:
            logger.debug("Send to %s failed: %r", conn.id, exc)
        return False

    async def _fan_out(self, recipients: Iterable[Connection], msg: Dict[str, Any], detach: bool = False) -> None:
        # Serialized once, before any await, so every recipient sees the same snapshot
        payload = json.dumps(msg, ensure_ascii=False)
        targets = list(recipients)
        if not targets:
            return
        sends = asyncio.gather(*(self._send(c, payload) for c in targets))
        if detach:
            self._pending_sends.add(sends)
            sends.add_done_callback(self._pending_sends.discard)
            return
        await sends

    async def broadcast_state(self, detach: bool = False) -> None:
        await self._fan_out(self.connections, {"type": "gameState", "data": self.public_snapshot()}, detach=detach)

    async def broadcast_team_votes(self, team: int) -> None:
        await self._fan_out(self.connections.on_team(team), {"type": "teamVotes", "data": self.team_votes(team)})

    # ---- lifecycle ----

    async def start(self) -> None:
        if self._running:
            return
        self._running = True
        logger.info("Starting continuous game (%d bots)", len(self.bots))
        self._sweeper.start()
        await self._enter_voting(detach=True)

    def stop(self) -> None:
        self._running = False
        self._ticker.cancel()
        self._sweeper.cancel()
        self._cancel_bot_tasks()
        for sends in list(self._pending_sends):
            sends.cancel()
        self._pending_sends.clear()

    def reset(self) -> None:
        self.stop()
        self.state = GameState(time_left=self.settings.voting_duration)
        self._phase_ticks = 0
        self.connections.clear()

    # ---- phases ----

    async def _enter_voting(self, detach: bool = False) -> None:
        s = self.state
        s.phase = Phase.VOTING
        s.time_left = self.settings.voting_duration
        self._phase_ticks = 0
        s.winner = None
        for team in s.teams.values():
            team.votes = empty_tally()
            team.choice = None
        for conn in self.connections:
            conn.reset_vote()
        logger.info("Starting game %d", s.game_number)

        if self._running:
            self._ticker.start()
            self._schedule_bot_votes()
        await self.broadcast_state(detach=detach)

    async def _enter_results(self, detach: bool = False) -> None:
        s = self.state
        for team in s.teams.values():
            team.choice = top_choice(team.votes, self.rng)
        t1, t2 = s.teams[1], s.teams[2]
        s.winner = get_winner(t1.choice, t2.choice)
        if s.winner == Winner.TEAM1:
            t1.score += 1
        elif s.winner == Winner.TEAM2:
            t2.score += 1
        s.phase = Phase.RESULTS
        s.time_left = self.settings.results_duration
        self._phase_ticks = 0
        logger.info(
            "Game %d results: team 1 (%s) vs team 2 (%s), winner: %s",
            s.game_number, t1.choice.value, t2.choice.value, s.winner.value,
        )

        if self._running:
            self._ticker.start()
        await self.broadcast_state(detach=detach)

    async def _timer_tick(self) -> None:
        # Sends run in the background so a slow socket never stretches the phase clock
        await self.tick(detach=True)

    async def tick(self, detach: bool = False) -> None:
        s = self.state
        s.time_left = max(0, s.time_left - 1)
        self._phase_ticks += 1
        if s.time_left == 0:
            self._ticker.cancel()
            if s.phase == Phase.VOTING:
                await self._enter_results(detach=detach)
            else:
                s.game_number += 1
                await self._enter_voting(detach=detach)
            return
        if self._phase_ticks % self.settings.broadcast_every == 0:
            await self.broadcast_state(detach=detach)

    # ---- players ----

    def _assign_team(self, connection_id: str) -> int:
        teams = self.state.teams
        team = pick_team(len(teams[1].players), len(teams[2].players), self.rng)
        teams[team].players.add(connection_id)
        return team

    def _drop(self, connection_id: str) -> Optional[Connection]:
        conn = self.connections.remove(connection_id)
        if conn is not None:
            self.state.teams[conn.team].players.discard(conn.id)
        return conn

    async def connect(self, websocket: Any) -> Connection:
        conn_id = f"player_{uuid.uuid4().hex[:12]}"
        team = self._assign_team(conn_id)
        conn = self.connections.add(
            Connection(id=conn_id, websocket=websocket, team=team, name=generate_player_name(self.rng))
        )
        logger.info("%s joined team %d", conn.name, team)

        await self._fan_out([conn], {"type": "joined", "data": {"team": team, "playerId": conn.id, "playerName": conn.name}})
        await self.broadcast_state()
        if self.state.phase == Phase.VOTING:
            await self._fan_out([conn], {"type": "teamVotes", "data": self.team_votes(team)})
        return conn

    async def disconnect(self, connection_id: str) -> None:
        conn = self._drop(connection_id)
        if conn is None:
            return
        logger.info("%s disconnected", conn.name)
        await self.broadcast_state()

    async def handle_message(self, connection_id: str, raw: Union[str, bytes, None]) -> None:
        self.connections.touch(connection_id)
        if not isinstance(raw, str):
            logger.warning("Ignoring non-text frame from %s", connection_id)
            return
        try:
            msg = json.loads(raw)
        except ValueError:
            logger.warning("Ignoring unparseable message from %s", connection_id)
            return
        if not isinstance(msg, dict):
            logger.warning("Ignoring non-object message from %s", connection_id)
            return

        msg_type = msg.get("type")
        if msg_type == "vote":
            data = msg.get("data")
            choice = data.get("choice") if isinstance(data, dict) else msg.get("choice")
            await self.record_vote(connection_id, choice)
        else:
            logger.warning("Ignoring unknown message type %r from %s", msg_type, connection_id)

    async def record_vote(self, connection_id: str, choice: Any) -> bool:
        if self.state.phase != Phase.VOTING:
            return False
        conn = self.connections.get(connection_id)
        if conn is None or conn.has_voted:
            return False
        try:
            picked = Choice(choice)
        except ValueError:
            logger.warning("Ignoring vote with invalid choice %r from %s", choice, connection_id)
            return False

        self.state.teams[conn.team].votes[picked] += 1
        conn.has_voted = True
        conn.vote = picked
        logger.debug("%s (team %d) voted for %s", conn.name, conn.team, picked.value)

        await self._fan_out([conn], {"type": "voteConfirmed", "data": {"choice": picked.value}})
        await self.broadcast_team_votes(conn.team)
        return True

    # ---- bots ----

    def _cancel_bot_tasks(self) -> None:
        for task in list(self._bot_tasks):
            task.cancel()
        self._bot_tasks.clear()

    def _schedule_bot_votes(self) -> None:
        self._cancel_bot_tasks()
        game_number = self.state.game_number
        for bot in self.bots:
            delay = self.rng.uniform(0, self.settings.bot_vote_window) * self.settings.tick_interval
            task = asyncio.create_task(self._bot_vote_later(bot, delay, game_number), name=f"vote-{bot.id}")
            self._bot_tasks.add(task)
            task.add_done_callback(self._bot_tasks.discard)

    async def _bot_vote_later(self, bot: Bot, delay: float, game_number: int) -> None:
        await asyncio.sleep(delay)
        if self.state.game_number != game_number:
            return
        await self.cast_bot_vote(bot)

    async def cast_bot_vote(self, bot: Bot) -> bool:
        if self.state.phase != Phase.VOTING:
            logger.debug("Dropping late vote from %s", bot.id)
            return False
        choice = self.rng.choice(CHOICES)
        self.state.teams[bot.team].votes[choice] += 1
        await self.broadcast_team_votes(bot.team)
        return True

    # ---- idle eviction ----

    async def _close(self, conn: Connection) -> None:
        try:
            await asyncio.wait_for(
                conn.websocket.close(code=IDLE_CLOSE_CODE, reason="idle timeout"),
                timeout=self.settings.send_timeout,
            )
        except Exception as exc:
            logger.debug("Closing %s failed: %r", conn.id, exc)

    async def sweep_idle(self) -> List[str]:
        cutoff = self.clock() - self.settings.idle_timeout
        evicted = [self._drop(c.id) for c in self.connections.idle_since(cutoff)]
        evicted = [c for c in evicted if c is not None]
        if not evicted:
            return []
        for conn in evicted:
            logger.info("Evicting idle connection %s (%s)", conn.name, conn.id)
        await asyncio.gather(*(self._close(c) for c in evicted))
        await self.broadcast_state()
        return [c.id for c in evicted]
