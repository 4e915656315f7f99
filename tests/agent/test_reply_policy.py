"""Tests for the active (energy-gated) and passive (mention-gated) policies."""

import pytest

from conftest import group_turn
from kagami.agent.energy import EnergyGate, EnergyState
from kagami.agent.reply_policy import ActivePolicy, PassivePolicy, make_policy
from kagami.agent.scheduling import ManualScheduler


def make_energy(current=100, cost=10):
    state = EnergyState.full(100, cost, 5, 60)
    state.current = current
    return EnergyGate(state, ManualScheduler())


class TestActivePolicy:

    def test_allows_when_affordable(self):
        assert ActivePolicy().should_attempt_reply([group_turn("hi")], make_energy(100))

    def test_blocks_when_exhausted(self):
        assert not ActivePolicy().should_attempt_reply([group_turn("hi")], make_energy(5))

    def test_uses_energy(self):
        assert ActivePolicy().uses_energy is True


class TestPassivePolicy:

    def test_mention_in_batch(self):
        arrived = [group_turn("hi"), group_turn("@bot?", mentions=("10001",)), group_turn("anyone?")]
        assert PassivePolicy(bot_id="10001").should_attempt_reply(arrived, make_energy())

    def test_batch_without_mention(self):
        arrived = [group_turn("ok"), group_turn("sure")]
        assert not PassivePolicy(bot_id="10001").should_attempt_reply(arrived, make_energy())

    def test_empty_batch(self):
        assert not PassivePolicy(bot_id="10001").should_attempt_reply([], make_energy())

    def test_mention_of_someone_else(self):
        arrived = [group_turn("@bob", mentions=("555",))]
        assert not PassivePolicy(bot_id="10001").should_attempt_reply(arrived, make_energy())

    def test_ignores_energy(self):
        policy = PassivePolicy(bot_id="10001")
        assert policy.should_attempt_reply([group_turn("@bot", mentions=("10001",))], make_energy(0))
        assert policy.uses_energy is False


class TestMakePolicy:

    def test_by_name(self):
        assert isinstance(make_policy("active", "1"), ActivePolicy)
        passive = make_policy("passive", "10001")
        assert isinstance(passive, PassivePolicy)
        assert passive.bot_id == "10001"

    def test_unknown(self):
        with pytest.raises(ValueError):
            make_policy("chaotic", "1")
