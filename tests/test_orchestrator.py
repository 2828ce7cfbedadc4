"""Tests for the redirect state machine."""

import asyncio

import pytest

from conftest import HUMAN_PROBE, make_link
from shieldlink.shield.classifier import EnvironmentProbe, InteractionKind, Verdict
from shieldlink.shield.config import ProtectionConfig
from shieldlink.shield.navigation import FixedStrategyPicker, NavigationStrategy
from shieldlink.shield.session import SessionState

BROWSER = "Mozilla/5.0 (X11; Linux x86_64) AppleWebKit/537.36 (KHTML, like Gecko) Chrome/126.0 Safari/537.36"
TRUSTED = EnvironmentProbe.from_mapping(HUMAN_PROBE)
AUTOMATED = EnvironmentProbe.from_mapping({**HUMAN_PROBE, "webdriver": True})


async def run_countdown(orchestrator, clock, step=0.25, limit=80):
    """Advance the manual clock until the countdown leaves GATED."""
    for _ in range(limit):
        if orchestrator.state is not SessionState.GATED:
            return
        clock.advance(step)
        await asyncio.sleep(0.005)
    raise AssertionError("countdown never finished")


class TestCountdown:
    """GATED -> READY."""

    @pytest.mark.asyncio
    async def test_scenario_level_two_auto_redirect(self, harness, clock):
        """Test 3-2-1-0 countdown, then one automatic redirect within the grace delay."""
        link = make_link(config=ProtectionConfig(level=2, timer_ms=3000))
        h = harness(link, clock=clock, grace_ms=500)
        orchestrator = h.orchestrator

        assert orchestrator.start(BROWSER, TRUSTED) is SessionState.GATED
        assert h.updates[0].remaining_seconds == 3
        for _ in range(12):
            orchestrator.observe(InteractionKind.POINTER_MOVE)
        assert h.session.verdict is Verdict.HUMAN

        await run_countdown(orchestrator, clock)
        assert h.ticks == [2, 1, 0]
        assert orchestrator.state is SessionState.READY

        loop = asyncio.get_running_loop()
        ready_at = loop.time()
        assert await asyncio.wait_for(orchestrator.wait_finished(), 1.0) is SessionState.REDIRECTED
        assert loop.time() - ready_at < 0.6

        await h.recorder.drain()
        assert h.navigator.calls == [(NavigationStrategy.HREF, "https://example.com/x")]
        assert len(h.sink.records) == 1
        assert h.sink.records[0].verdict_was_bot is False
        assert h.sink.records[0].link_id == 7

    @pytest.mark.asyncio
    async def test_display_follows_elapsed_time(self, harness, clock):
        """Test a throttled runtime jumps straight to the right count."""
        link = make_link(config=ProtectionConfig(level=1, timer_ms=3000))
        h = harness(link, clock=clock)
        h.orchestrator.start(BROWSER)

        clock.advance(2.5)
        await asyncio.sleep(0.01)

        assert h.ticks == [1]
        assert h.session.remaining_ms == 500
        assert h.orchestrator.state is SessionState.GATED
        h.orchestrator.cancel()

    @pytest.mark.asyncio
    async def test_standard_link_ignores_verdict(self, harness):
        """Test a bot on a standard link still waits out the timer and proceeds."""
        h = harness(make_link(config=ProtectionConfig(level=2, timer_ms=0)))

        assert h.orchestrator.start(BROWSER, AUTOMATED) is SessionState.GATED
        assert await asyncio.wait_for(h.orchestrator.wait_finished(), 1.0) is SessionState.REDIRECTED

        await h.recorder.drain()
        assert h.states == ["gated", "ready", "redirected"]
        assert h.sink.records[0].verdict_was_bot is True


class TestManualProceed:
    """Level 1 and idempotence."""

    @pytest.mark.asyncio
    async def test_scenario_level_one_double_click(self, harness, clock):
        """Test Continue only after the countdown, and two clicks make one redirect."""
        link = make_link(config=ProtectionConfig(level=1, timer_ms=2000))
        h = harness(link, clock=clock)
        orchestrator = h.orchestrator
        orchestrator.start(BROWSER, TRUSTED)
        for _ in range(12):
            orchestrator.observe(InteractionKind.POINTER_MOVE)

        assert await orchestrator.proceed() is False
        await run_countdown(orchestrator, clock)
        await asyncio.sleep(0.02)
        assert orchestrator.state is SessionState.READY
        assert h.navigator.calls == []

        results = await asyncio.gather(orchestrator.proceed(), orchestrator.proceed())
        await h.recorder.drain()

        assert sorted(results) == [False, True]
        assert len(h.navigator.calls) == 1
        assert len(h.sink.records) == 1

    @pytest.mark.asyncio
    async def test_repeated_proceed(self, harness):
        """Test N proceeds, one navigation, one record."""
        h = harness(make_link(config=ProtectionConfig(level=1, timer_ms=0)))
        h.orchestrator.start(BROWSER)
        await asyncio.sleep(0.01)

        results = [await h.orchestrator.proceed() for _ in range(5)]
        await h.recorder.drain()

        assert results == [True, False, False, False, False]
        assert len(h.navigator.calls) == 1
        assert len(h.sink.records) == 1


class TestUltraLink:
    """Cloaking and Ultra-Link proceed."""

    @pytest.mark.asyncio
    async def test_scenario_crawler_is_cloaked(self, harness):
        """Test the unfurler is cloaked with no countdown and no record."""
        h = harness(make_link(is_ultra_link=True, config=ProtectionConfig(level=2, timer_ms=0)))

        assert h.orchestrator.start("facebookexternalhit/1.1") is SessionState.CLOAKED
        assert await h.orchestrator.wait_finished() is SessionState.CLOAKED
        await asyncio.sleep(0.02)

        assert h.session.verdict is Verdict.BOT
        assert h.states == ["cloaked"]
        assert h.ticks == []
        assert h.navigator.calls == []
        assert h.sink.records == []
        assert h.orchestrator.observe(InteractionKind.TOUCH) is Verdict.BOT

    @pytest.mark.asyncio
    async def test_unconfirmed_visitor_is_auto_redirected(self, harness):
        """Test a level 2 Ultra-Link redirects on the timer alone for an unknown visitor."""
        link = make_link(is_ultra_link=True, config=ProtectionConfig(level=2, timer_ms=0))
        h = harness(link, picker=FixedStrategyPicker(NavigationStrategy.ASSIGN))
        h.orchestrator.start(BROWSER, TRUSTED)

        assert await asyncio.wait_for(h.orchestrator.wait_finished(), 1.0) is SessionState.REDIRECTED
        await h.recorder.drain()

        assert h.session.verdict is Verdict.UNKNOWN
        assert h.navigator.calls == [(NavigationStrategy.ASSIGN, "https://example.com/x")]
        assert h.sink.records[0].verdict_was_bot is False

    @pytest.mark.asyncio
    async def test_manual_proceed_without_interaction(self, harness):
        """Test Continue works on a level 1 Ultra-Link before any interaction is seen."""
        link = make_link(is_ultra_link=True, config=ProtectionConfig(level=1, timer_ms=0))
        h = harness(link)
        h.orchestrator.start(BROWSER, TRUSTED)
        await asyncio.sleep(0.01)

        assert h.orchestrator.state is SessionState.READY
        assert h.session.verdict is Verdict.UNKNOWN
        assert await h.orchestrator.proceed() is True
        assert len(h.navigator.calls) == 1

    @pytest.mark.asyncio
    async def test_interaction_still_upgrades_verdict(self, harness, clock):
        """Test interactions during the countdown mark the visitor human."""
        link = make_link(is_ultra_link=True, config=ProtectionConfig(level=1, timer_ms=0))
        h = harness(link, clock=clock)
        h.orchestrator.start(BROWSER, TRUSTED)
        await asyncio.sleep(0.01)

        clock.advance(0.2)
        assert h.orchestrator.observe(InteractionKind.CLICK) is Verdict.HUMAN
        assert h.updates[-1].verdict is Verdict.HUMAN
        assert await h.orchestrator.proceed() is True

    @pytest.mark.asyncio
    async def test_direct_link_is_auto_confirmed(self, harness):
        """Test direct links proceed without interaction."""
        link = make_link(is_ultra_link=True, is_direct=True, config=ProtectionConfig(level=2, timer_ms=0))
        h = harness(link)
        h.orchestrator.start(BROWSER, TRUSTED)

        assert await asyncio.wait_for(h.orchestrator.wait_finished(), 1.0) is SessionState.REDIRECTED
        assert h.session.verdict is Verdict.HUMAN

    @pytest.mark.asyncio
    async def test_automated_probe_is_cloaked(self, harness):
        """Test a headless runtime with a browser agent string."""
        h = harness(make_link(is_ultra_link=True))

        assert h.orchestrator.start(BROWSER, AUTOMATED) is SessionState.CLOAKED


class TestFailures:
    """Decode errors and teardown."""

    @pytest.mark.parametrize("payload", ["not-a-token", None])
    @pytest.mark.asyncio
    async def test_bad_payload_ends_in_error(self, harness, codec, payload):
        """Test an undecodable or foreign payload never navigates."""
        if payload is None:
            payload = codec.encode("https://elsewhere.example", 99)
        h = harness(make_link(config=ProtectionConfig(level=2, timer_ms=0)), payload=payload)
        h.orchestrator.start(BROWSER)

        assert await asyncio.wait_for(h.orchestrator.wait_finished(), 1.0) is SessionState.ERROR
        await asyncio.sleep(0.01)
        assert h.states[-1] == "error"
        assert h.navigator.calls == []
        assert h.sink.records == []

    @pytest.mark.asyncio
    async def test_cancel_before_redirect(self, harness):
        """Test teardown stops the countdown with no side effects."""
        h = harness(make_link(config=ProtectionConfig(level=2, timer_ms=5000)))
        h.orchestrator.start(BROWSER)
        await asyncio.sleep(0.01)

        h.orchestrator.cancel()
        await asyncio.sleep(0.02)

        assert h.orchestrator.state is SessionState.ABANDONED
        assert await h.orchestrator.proceed() is False
        assert h.navigator.calls == []
        assert h.sink.records == []

    @pytest.mark.asyncio
    async def test_cancel_after_redirect_keeps_state(self, harness):
        """Test late teardown does not rewrite a finished session."""
        h = harness(make_link(config=ProtectionConfig(level=2, timer_ms=0)))
        h.orchestrator.start(BROWSER)
        await asyncio.wait_for(h.orchestrator.wait_finished(), 1.0)

        h.orchestrator.cancel()

        assert h.orchestrator.state is SessionState.REDIRECTED
