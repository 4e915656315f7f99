"""Tests for RoomAgentRegistry."""

import asyncio

import pytest

from conftest import SPEAK, ScriptedRouter
from kagami.agent.messages import GroupTurn
from kagami.agent.registry import RoomAgentRegistry
from kagami.agent.scheduling import ManualScheduler
from kagami.bus.events import InboundMessage
from kagami.channels.mock import MockTransport
from kagami.config.schema import BehaviorConfig, MasterConfig


def make_registry(template, router=None, behavior=None, master=None):
    transport = MockTransport()
    scheduler = ManualScheduler()
    registry = RoomAgentRegistry(
        router=router or ScriptedRouter(),
        transport=transport,
        template=template,
        bot_id="10001",
        behavior=behavior,
        master=master,
        history_size=10,
        clock=lambda: "2025-01-01 12:00:00",
        scheduler=scheduler,
    )
    return registry, transport, scheduler


def inbound(room_id="111", text="hello", sender_id="42", nickname="Alice", mentions=()):
    return InboundMessage(
        room_id=room_id,
        sender_id=sender_id,
        sender_nickname=nickname,
        rendered_text=text,
        message_id="m1",
        mentions=mentions,
        timestamp="2025-01-01 12:00:00",
    )


class TestInitialize:

    def test_one_agent_per_room(self, template):
        registry, _, scheduler = make_registry(template)
        registry.initialize(["111", "222"])

        assert len(registry) == 2
        assert registry.room_ids == ["111", "222"]
        assert registry.get("111") is not registry.get("222")
        assert scheduler.active_count == 2  # one recovery timer each

    def test_initialize_is_idempotent(self, template):
        registry, _, _ = make_registry(template)
        registry.initialize(["111"])
        first = registry.get("111")
        registry.initialize(["111"])
        assert registry.get("111") is first
        assert len(registry) == 1

    def test_behavior_applied(self, template):
        behavior = BehaviorConfig(energy_max=50, energy_cost=10, message_handler_type="passive")
        registry, _, _ = make_registry(template, behavior=behavior)
        registry.initialize(["111"])

        agent = registry.get("111")
        assert agent.energy.status() == "50/50"
        assert agent.policy.kind == "passive"
        assert agent.window.capacity == 10


class TestDispatch:

    @pytest.mark.asyncio
    async def test_routes_to_room(self, template):
        router = ScriptedRouter([SPEAK])
        registry, transport, _ = make_registry(template, router=router)
        registry.initialize(["111"])

        task = registry.dispatch(inbound())
        await asyncio.wait_for(task, timeout=2.0)

        turn = registry.get("111").window.messages()[0]
        assert isinstance(turn, GroupTurn)
        assert turn.user_nickname == "Alice"
        assert turn.text == "hello"
        assert transport.replies[0].room_id == "111"

    @pytest.mark.asyncio
    async def test_unknown_room_dropped(self, template):
        registry, _, _ = make_registry(template)
        registry.initialize(["111"])
        assert registry.dispatch(inbound(room_id="999")) is None
        assert len(registry.get("111").window) == 0

    @pytest.mark.asyncio
    async def test_operator_in_prompt(self, template):
        router = ScriptedRouter()
        registry, _, _ = make_registry(template, router=router, master=MasterConfig(qq=20002, nickname="Boss"))
        registry.initialize(["111"])

        await asyncio.wait_for(registry.dispatch(inbound()), timeout=2.0)

        system = router.calls[0].messages[0].content
        assert "Boss(20002)" in system

    @pytest.mark.asyncio
    async def test_transport_dispatcher_wiring(self, template):
        router = ScriptedRouter([SPEAK])
        registry, transport, _ = make_registry(template, router=router)
        registry.initialize(["111"])
        transport.set_dispatcher(registry.dispatch)

        transport.inject_message("hey", room_id="111")
        reply = await transport.wait_for_reply(timeout=2.0)

        assert reply is not None
        assert reply.room_id == "111"


class TestSendAndStatus:

    @pytest.mark.asyncio
    async def test_send_to_room(self, template):
        registry, transport, _ = make_registry(template)
        registry.initialize(["111"])
        segments = [{"type": "text", "data": {"text": "announcement"}}]

        assert await registry.send_to_room("111", segments) is True
        assert transport.replies[0].segments == segments

    @pytest.mark.asyncio
    async def test_send_to_unknown_room(self, template):
        registry, transport, _ = make_registry(template)
        registry.initialize(["111"])
        assert await registry.send_to_room("999", []) is False
        assert transport.replies == []

    @pytest.mark.asyncio
    async def test_send_failure_reported(self, template):
        registry, transport, _ = make_registry(template)
        registry.initialize(["111"])
        transport.fail_sends = True
        assert await registry.send_to_room("111", [{"type": "text", "data": {"text": "x"}}]) is False

    def test_status(self, template):
        registry, _, _ = make_registry(template)
        registry.initialize(["111", "222"])
        status = registry.status()
        assert [s["room_id"] for s in status] == ["111", "222"]
        assert all(s["draining"] is False for s in status)


class TestShutdown:

    @pytest.mark.asyncio
    async def test_closes_agents(self, template):
        registry, _, scheduler = make_registry(template)
        registry.initialize(["111", "222"])

        await registry.shutdown()

        assert scheduler.active_count == 0
        assert all(registry.get(r).energy.closed for r in ("111", "222"))

    @pytest.mark.asyncio
    async def test_waits_for_in_flight_drain(self, template):
        router = ScriptedRouter([SPEAK])
        router.gate = asyncio.Event()
        registry, transport, _ = make_registry(template, router=router)
        registry.initialize(["111"])

        registry.dispatch(inbound())
        await asyncio.wait_for(router.started.wait(), timeout=1.0)
        asyncio.get_running_loop().call_later(0.05, router.gate.set)

        await registry.shutdown(timeout=2.0)

        assert len(transport.replies) == 1

    @pytest.mark.asyncio
    async def test_cancels_hung_drain(self, template):
        router = ScriptedRouter()
        router.gate = asyncio.Event()  # never released
        registry, _, _ = make_registry(template, router=router)
        registry.initialize(["111"])

        task = registry.dispatch(inbound())
        await asyncio.wait_for(router.started.wait(), timeout=1.0)

        await registry.shutdown(timeout=0.05)

        assert task.cancelled()
        assert not registry.get("111").draining
