"""Lifecycle controller — drives a fungus through its life.

  BOOTSTRAP  search the mycelial hashtag for FUNGI code; adopt the first
             valid program or fall back to the built-in default.
  STEADY     two tickers feed one command queue:
               ANSWER  reply to new mentions with the current program
               CYCLE   score → publish → harvest → evolve → install

The live FungiState sits in a StateCell. Only bootstrap, a cycle or an
injected program writes it, and each write swaps the whole state. An
answer pass takes one snapshot and uses it for every mention, so a cycle
finishing halfway through cannot change the answers of that pass.
Cycles never overlap: a tick that arrives while one is running is
skipped.
"""

from __future__ import annotations

import asyncio
from collections import deque
from datetime import datetime
from enum import Enum
from typing import Any, Awaitable, TypeVar

import structlog
from pydantic import BaseModel, Field

from fungi.evolution.engine import EvolutionaryEngine
from fungi.exceptions import (
    FeedUnavailable,
    LifecycleError,
    MalformedProgram,
    StorageExhausted,
)
from fungi.feed.base import Feed
from fungi.fitness import FitnessEvaluator, count_sentiment
from fungi.history.local import FungiHistory
from fungi.history.mycelial import MycelialFungiHistory, format_post
from fungi.language.rules import DEFAULT_RULE_SYSTEM, evaluate, find_rule, parse, serialize
from fungi.lifecycle.cell import StateCell
from fungi.lifecycle.ticker import IntervalTicker
from fungi.types import Feedback, FungiState, RuleSystem, Status

logger = structlog.get_logger()

T = TypeVar("T")


class LifecyclePhase(str, Enum):
    CREATED = "created"
    BOOTSTRAP = "bootstrap"
    STEADY = "steady"
    STOPPED = "stopped"


VALID_TRANSITIONS: dict[LifecyclePhase, set[LifecyclePhase]] = {
    LifecyclePhase.CREATED: {LifecyclePhase.BOOTSTRAP, LifecyclePhase.STOPPED},
    LifecyclePhase.BOOTSTRAP: {LifecyclePhase.STEADY, LifecyclePhase.STOPPED},
    LifecyclePhase.STEADY: {LifecyclePhase.STOPPED},
    LifecyclePhase.STOPPED: set(),  # terminal
}


class CommandKind(str, Enum):
    ANSWER = "answer"
    CYCLE = "cycle"
    STOP = "stop"


class Command(BaseModel):
    kind: CommandKind
    issued_at: datetime = Field(default_factory=datetime.now)


class LifecycleController:
    """Owns the current state and everything that reads or replaces it."""

    def __init__(
        self,
        feed: Feed,
        tag: str,
        *,
        history: FungiHistory | None = None,
        mycelial: MycelialFungiHistory | None = None,
        evaluator: FitnessEvaluator | None = None,
        engine: EvolutionaryEngine | None = None,
        answer_interval: float = 180,
        cycle_interval: float = 3600,
        feed_timeout: float = 15.0,
        run_cycle_on_start: bool = True,
        default_rule_system: RuleSystem = DEFAULT_RULE_SYSTEM,
    ) -> None:
        self._feed = feed
        self._tag = tag.lstrip("#")
        self._history = history or FungiHistory()
        self._mycelial = mycelial or MycelialFungiHistory(feed, timeout=feed_timeout)
        self._evaluator = evaluator or FitnessEvaluator()
        self._engine = engine or EvolutionaryEngine()
        self._feed_timeout = feed_timeout
        self._run_cycle_on_start = run_cycle_on_start
        self._default = default_rule_system

        self._phase = LifecyclePhase.CREATED
        self._cell = StateCell()
        self._sequence = 0
        self._feedback: list[Feedback] = []
        self._answered: deque[str] = deque(maxlen=1000)
        self._mention_cursor: str | None = None
        self._answering = False

        self._queue: asyncio.Queue[Command] = asyncio.Queue()
        self._consumer: asyncio.Task | None = None
        self._inflight: set[asyncio.Task] = set()
        self._fatal: BaseException | None = None
        self._tickers = [
            IntervalTicker("answer", answer_interval, self._on_answer_tick),
            IntervalTicker("cycle", cycle_interval, self._on_cycle_tick),
        ]

    # ── Accessors ────────────────────────────────────────────────

    @property
    def phase(self) -> LifecyclePhase:
        return self._phase

    @property
    def current(self) -> FungiState:
        return self._cell.get()

    @property
    def history(self) -> FungiHistory:
        return self._history

    @property
    def mycelial(self) -> MycelialFungiHistory:
        return self._mycelial

    @property
    def pending_feedback(self) -> list[Feedback]:
        return list(self._feedback)

    def _transition(self, target: LifecyclePhase) -> None:
        if target not in VALID_TRANSITIONS[self._phase]:
            raise LifecycleError(
                f"Cannot move fungus from {self._phase.value} to {target.value}"
            )
        logger.debug("phase_changed", old=self._phase.value, new=target.value)
        self._phase = target

    # ── Phase 0/1: bootstrap ─────────────────────────────────────

    async def bootstrap(self) -> FungiState:
        """Adopt a program from the hashtag, or the default one."""
        self._transition(LifecyclePhase.BOOTSTRAP)
        logger.info("initial_search", tag=self._tag)
        found = await self._mycelial.find_first_valid(self._tag)
        if found is None or found.is_empty:
            logger.info("bootstrap_default_program", tag=self._tag)
            rule_system = self._default
        else:
            logger.info("bootstrap_adopted_program", program=serialize(found))
            rule_system = found

        state = await self._install(rule_system, fitness=0.0)
        self._transition(LifecyclePhase.STEADY)
        return state

    # ── Phase 2: answering ───────────────────────────────────────

    async def answer_mentions(self) -> int:
        """Answer new mentions. Returns how many replies were posted."""
        if self._answering:
            logger.debug("answer_skipped", reason="already answering")
            return 0
        self._answering = True
        try:
            return await self._answer_pass()
        finally:
            self._answering = False

    async def _answer_pass(self) -> int:
        snapshot = self._cell.get()
        try:
            mentions = await self._feed_call(self._feed.fetch_mentions(self._mention_cursor))
        except FeedUnavailable as e:
            logger.warning("fetch_mentions_failed", error=str(e))
            return 0

        answered = 0
        # the cursor never moves past a mention whose reply failed
        held = False
        for mention in mentions:
            status = mention.status
            if status.id not in self._answered:
                rule = find_rule(snapshot.rule_system, status.content)
                reply = evaluate(snapshot.rule_system, status.content)
                try:
                    await self._feed_call(self._feed.post_reply(reply, status))
                except FeedUnavailable as e:
                    logger.warning("post_reply_failed", status_id=status.id, error=str(e))
                    held = True
                    continue
                self._answered.append(status.id)
                self._record_feedback(status, matched=rule is not None)
                answered += 1
                logger.info("answered_mention", status_id=status.id, reply=reply)
            if not held and mention.id:
                self._mention_cursor = mention.id
        return answered

    def _record_feedback(self, status: Status, matched: bool) -> None:
        positive, negative = count_sentiment(status.content)
        self._feedback.append(Feedback(
            text=status.content,
            matched=matched,
            positive=positive + status.favourites_count + status.reblogs_count,
            negative=negative,
        ))

    def answer(self, text: str) -> str:
        """Evaluate-only reply for ``text``; touches nothing."""
        return evaluate(self._cell.get().rule_system, text)

    # ── Phases 3-5: the cycle ────────────────────────────────────

    async def run_cycle(self) -> bool:
        """Score, share, harvest, evolve and install.

        Returns False when skipped because another write is in progress.
        StorageExhausted propagates.
        """
        if self._cell.busy:
            logger.info("cycle_skipped", reason="state is being written")
            return False

        async with self._cell.writer():
            state = self._cell.get()
            feedback, self._feedback = self._feedback, []

            fitness = self._evaluator.score(feedback, state.rule_system)
            logger.info("fitness_calculated", fitness=fitness, feedback=len(feedback))

            await self._publish(state.rule_system, fitness)
            await self._mycelial.refresh(self._tag)

            unmatched = [f.text for f in feedback if not f.matched]
            evolved = self._engine.evolve(
                self._history.all(),
                self._mycelial.snapshot(),
                state.rule_system,
                unmatched=unmatched,
                current_fitness=fitness,
            )
            logger.info(
                "mutation_calculated",
                current=serialize(state.rule_system),
                mutation=serialize(evolved),
            )
            new_state = self._record_and_install(evolved, fitness)

        logger.info("cycle_completed", sequence=new_state.created_at, fitness=fitness)
        return True

    async def _publish(self, rule_system: RuleSystem, fitness: float) -> None:
        message = format_post(serialize(rule_system), fitness, self._tag)
        try:
            await self._feed_call(self._feed.post_status(message))
        except FeedUnavailable as e:
            logger.warning("share_failed", error=str(e))

    # ── Out-of-band control ──────────────────────────────────────

    async def inject_program(self, raw: str) -> bool:
        """Parse and install FUNGI code from outside. False if unusable."""
        try:
            rule_system = parse(raw)
        except MalformedProgram as e:
            logger.warning("inject_rejected", error=str(e))
            return False
        if rule_system.is_empty:
            logger.warning("inject_rejected", error="empty program")
            return False
        await self._install(rule_system, fitness=0.0)
        logger.info("inject_installed", program=serialize(rule_system))
        return True

    async def get_tag_statuses(self) -> list[Status]:
        return await self._feed_call(self._feed.fetch_tagged_statuses(self._tag))

    async def post_under_tag(self, message: str) -> None:
        await self._feed_call(self._feed.post_status(f"{message} #{self._tag}"))

    # ── Scheduling ───────────────────────────────────────────────

    async def start(self) -> None:
        """Bootstrap if needed, then arm the tickers and the consumer."""
        if self._phase == LifecyclePhase.CREATED:
            await self.bootstrap()
        if self._phase != LifecyclePhase.STEADY:
            raise LifecycleError(f"Cannot start fungus in phase {self._phase.value}")
        if self._run_cycle_on_start:
            await self.run_cycle()
        self._consumer = asyncio.create_task(self._consume(), name="fungi:consumer")
        for ticker in self._tickers:
            await ticker.start()
        logger.info("lifecycle_started", tag=self._tag)

    async def run(self) -> None:
        """Start and block until stopped. Re-raises a fatal handler error."""
        await self.start()
        if self._consumer is None:
            raise LifecycleError("Fungus started without a command consumer")
        try:
            await self._consumer
        finally:
            await self._stop_tickers()
        if self._fatal is not None:
            raise self._fatal

    async def stop(self) -> None:
        """Stop scheduling and let in-flight handlers finish."""
        if self._phase != LifecyclePhase.STOPPED:
            self._transition(LifecyclePhase.STOPPED)
        await self._stop_tickers()
        if self._consumer and not self._consumer.done():
            await self._queue.put(Command(kind=CommandKind.STOP))
            await self._consumer
        if self._inflight:
            await asyncio.gather(*self._inflight, return_exceptions=True)
        logger.info("lifecycle_stopped")

    async def submit(self, kind: CommandKind) -> None:
        await self._queue.put(Command(kind=kind))

    async def _on_answer_tick(self, event: dict[str, Any]) -> None:
        logger.debug("tick", ticker=event["ticker"], fire_count=event["fire_count"])
        await self.submit(CommandKind.ANSWER)

    async def _on_cycle_tick(self, event: dict[str, Any]) -> None:
        logger.debug("tick", ticker=event["ticker"], fire_count=event["fire_count"])
        await self.submit(CommandKind.CYCLE)

    async def _consume(self) -> None:
        while True:
            command = await self._queue.get()
            if command.kind == CommandKind.STOP:
                break
            handler = self.answer_mentions if command.kind == CommandKind.ANSWER else self.run_cycle
            task = asyncio.create_task(handler(), name=f"fungi:{command.kind.value}")
            self._inflight.add(task)
            task.add_done_callback(self._on_handler_done)

    def _on_handler_done(self, task: asyncio.Task) -> None:
        self._inflight.discard(task)
        if task.cancelled():
            return
        error = task.exception()
        if error is None:
            return
        if isinstance(error, StorageExhausted):
            logger.error("fatal_error", error=str(error))
            self._fatal = error
            if self._phase != LifecyclePhase.STOPPED:
                self._transition(LifecyclePhase.STOPPED)
            self._queue.put_nowait(Command(kind=CommandKind.STOP))
        else:
            logger.error("handler_failed", task=task.get_name(), error=str(error))

    async def _stop_tickers(self) -> None:
        for ticker in self._tickers:
            await ticker.stop()

    # ── Helpers ──────────────────────────────────────────────────

    def _next_sequence(self) -> int:
        self._sequence += 1
        return self._sequence

    async def _install(self, rule_system: RuleSystem, fitness: float) -> FungiState:
        async with self._cell.writer():
            return self._record_and_install(rule_system, fitness)

    def _record_and_install(self, rule_system: RuleSystem, fitness: float) -> FungiState:
        """Record then swap in. Caller holds the writer lock."""
        if rule_system.is_empty:
            logger.warning("empty_program_replaced_with_default")
            rule_system = self._default
        state = FungiState(
            rule_system=rule_system,
            fitness=fitness,
            created_at=self._next_sequence(),
        )
        # History first: an unrecorded state must never go live
        self._history.record(state)
        self._cell.install(state)
        return state

    async def _feed_call(self, call: Awaitable[T]) -> T:
        """Await a feed call with the feed timeout; errors become FeedUnavailable."""
        try:
            return await asyncio.wait_for(call, timeout=self._feed_timeout)
        except asyncio.TimeoutError as e:
            raise FeedUnavailable(f"feed call timed out after {self._feed_timeout}s") from e
        except FeedUnavailable:
            raise
        except Exception as e:
            raise FeedUnavailable(str(e)) from e
