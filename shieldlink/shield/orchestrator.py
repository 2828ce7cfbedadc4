"""Redirect orchestration for one visit.

``INIT -> CLASSIFYING -> CLOAKED | GATED -> READY -> REDIRECTED``

The countdown is a cancellable periodic tick driven by elapsed wall-clock
time, so a throttled runtime never shows a wrong remaining count. The
``READY -> REDIRECTED`` transition is guarded by a single-use latch keyed by
the session id: whatever fires it (auto-proceed, manual proceed, both,
twice) the payload is decoded once, the visitor is navigated once and one
action is recorded.
"""
from __future__ import annotations

import asyncio
import logging
import math
import time
from dataclasses import dataclass
from typing import Callable, Dict, Optional

from .classifier import EnvironmentProbe, InteractionKind, Verdict, classify_static
from .codec import PayloadCodec, normalize_destination
from .errors import PayloadDecodeError
from .latch import RedirectLatch
from .navigation import Navigator, StrategyPicker
from .recorder import PROCEED, ActionRecorder
from .session import SessionState, VisitSession

logger = logging.getLogger(__name__)

TICK_MS = 100
AUTO_PROCEED_GRACE_MS = 500
AUTO_CONFIRM_DELAY_MS = 500

_TRANSITIONS = {
    SessionState.INIT: {SessionState.CLASSIFYING, SessionState.ABANDONED},
    SessionState.CLASSIFYING: {SessionState.CLOAKED, SessionState.GATED, SessionState.ABANDONED},
    SessionState.GATED: {SessionState.READY, SessionState.ABANDONED},
    SessionState.READY: {SessionState.REDIRECTED, SessionState.ERROR, SessionState.ABANDONED},
}


@dataclass(frozen=True)
class SessionUpdate:
    kind: str  # "state" or "tick"
    state: SessionState
    remaining_seconds: int
    verdict: Verdict


UpdateListener = Callable[[SessionUpdate], None]


class RedirectOrchestrator:
    def __init__(
        self,
        session: VisitSession,
        *,
        codec: PayloadCodec,
        recorder: ActionRecorder,
        navigator: Navigator,
        latch: RedirectLatch,
        picker: StrategyPicker,
        listener: Optional[UpdateListener] = None,
        context: Optional[Dict[str, Optional[str]]] = None,
        clock: Callable[[], float] = time.monotonic,
        tick_ms: int = TICK_MS,
        grace_ms: int = AUTO_PROCEED_GRACE_MS,
        confirm_delay_ms: int = AUTO_CONFIRM_DELAY_MS,
    ) -> None:
        self.session = session
        self._codec = codec
        self._recorder = recorder
        self._navigator = navigator
        self._latch = latch
        self._picker = picker
        self._listener = listener
        self._context = context or {}
        self._clock = clock
        self._tick_ms = tick_ms
        self._grace_ms = grace_ms
        self._confirm_delay_ms = confirm_delay_ms
        self._tasks: set[asyncio.Task] = set()
        self._finished = asyncio.Event()

    @property
    def state(self) -> SessionState:
        return self.session.state

    # -- lifecycle -----------------------------------------------------------

    def start(self, agent_string: Optional[str], probe: Optional[EnvironmentProbe] = None) -> SessionState:
        """Run the static pass and enter ``CLOAKED`` or ``GATED``. Needs a running loop."""
        session = self.session
        session.start_time = self._clock()
        self._transition(SessionState.CLASSIFYING, notify=False)
        session.verdict = classify_static(agent_string, probe)
        logger.debug("Session %s static verdict: %s", session.session_id, session.verdict.value)

        if session.link.is_ultra_link and session.verdict is Verdict.BOT:
            self._transition(SessionState.CLOAKED)
            return session.state

        session.remaining_ms = session.config.timer_ms
        self._transition(SessionState.GATED)
        self._spawn(self._run_countdown(), "countdown")
        if session.link.is_direct and session.verdict is not Verdict.BOT:
            self._spawn(self._auto_confirm(), "auto-confirm")
        return session.state

    def cancel(self) -> None:
        """Session teardown. Before ``REDIRECTED`` nothing is navigated or recorded."""
        if not self.session.finished:
            self._transition(SessionState.ABANDONED, notify=False)
        self._cancel_tasks()

    async def wait_finished(self) -> SessionState:
        await self._finished.wait()
        return self.session.state

    # -- behavioral pass -----------------------------------------------------

    def observe(self, kind: InteractionKind) -> Verdict:
        session = self.session
        if session.state not in (SessionState.GATED, SessionState.READY):
            return session.verdict
        before = session.verdict
        verdict = session.observe(kind, self._clock())
        if verdict is not before:
            self._on_confirmed()
        return verdict

    def _on_confirmed(self) -> None:
        logger.debug("Session %s confirmed human", self.session.session_id)
        self._notify("state")

    async def _auto_confirm(self) -> None:
        await asyncio.sleep(self._confirm_delay_ms / 1000)
        before = self.session.verdict
        if self.session.auto_confirm() is not before:
            self._on_confirmed()

    # -- countdown -----------------------------------------------------------

    async def _run_countdown(self) -> None:
        session = self.session
        timer_ms = session.config.timer_ms
        while True:
            remaining = max(0, math.ceil(timer_ms - session.elapsed_ms(self._clock())))
            shown = session.remaining_seconds
            session.remaining_ms = remaining
            if session.remaining_seconds != shown:
                self._notify("tick")
            if remaining == 0:
                break
            await asyncio.sleep(min(self._tick_ms, remaining) / 1000)
        self._transition(SessionState.READY)
        if session.config.auto_proceed:
            self._spawn(self._auto_proceed(), "auto-proceed")

    async def _auto_proceed(self) -> None:
        await asyncio.sleep(self._grace_ms / 1000)
        await self.proceed()

    # -- redirect ------------------------------------------------------------

    async def proceed(self) -> bool:
        """Ask for ``READY -> REDIRECTED``. Returns True only for the call that redirected.

        Ultra-Link bots never get here, they are cloaked before the countdown.
        """
        session = self.session
        if session.state is not SessionState.READY:
            return False
        if not await self._latch.acquire(session.session_id):
            return False
        if session.state is not SessionState.READY:
            return False
        return self._redirect()

    def _redirect(self) -> bool:
        session = self.session
        try:
            decoded = self._codec.decode(session.payload)
            if str(decoded.link_id) != str(session.link.id):
                raise PayloadDecodeError("Payload belongs to another link")
        except PayloadDecodeError as exc:
            logger.warning("Session %s for link %s aborted: %s", session.session_id, session.link.id, exc)
            self._transition(SessionState.ERROR)
            self._cancel_tasks()
            return False

        url = normalize_destination(decoded.destination_url)
        strategy = self._picker.pick()
        self._transition(SessionState.REDIRECTED)
        self._navigator.execute(strategy, url)
        self._recorder.record(
            session.link.id,
            verdict_was_bot=session.verdict is Verdict.BOT,
            action=PROCEED,
            context=self._context,
        )
        self._cancel_tasks()
        return True

    # -- plumbing ------------------------------------------------------------

    def _transition(self, target: SessionState, *, notify: bool = True) -> None:
        session = self.session
        if target not in _TRANSITIONS.get(session.state, ()):
            raise RuntimeError(f"Illegal shield transition {session.state.value} -> {target.value}")
        session.state = target
        if target in (SessionState.CLOAKED, SessionState.REDIRECTED, SessionState.ERROR):
            logger.info("Session %s for link %s -> %s", session.session_id, session.link.id, target.value)
        else:
            logger.debug("Session %s -> %s", session.session_id, target.value)
        if session.finished:
            self._finished.set()
        if notify:
            self._notify("state")

    def _notify(self, kind: str) -> None:
        if self._listener is None:
            return
        session = self.session
        self._listener(SessionUpdate(kind, session.state, session.remaining_seconds, session.verdict))

    def _spawn(self, coro, name: str) -> None:
        task = asyncio.get_running_loop().create_task(coro, name=f"shield-{name}-{self.session.session_id}")
        self._tasks.add(task)
        task.add_done_callback(self._tasks.discard)

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task() if _loop_running() else None
        for task in list(self._tasks):
            if task is not current:
                task.cancel()


def _loop_running() -> bool:
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return False
    return True


__all__ = [
    "AUTO_CONFIRM_DELAY_MS",
    "AUTO_PROCEED_GRACE_MS",
    "TICK_MS",
    "RedirectOrchestrator",
    "SessionUpdate",
    "UpdateListener",
]
