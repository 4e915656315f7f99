"""Energy gate: a per-room stamina budget that limits how often the agent speaks.

Each reply costs ``cost_per_reply``. Energy recovers in fixed steps of
``recovery_rate`` every ``recovery_interval_seconds`` regardless of when it
was last spent, capped at ``max``. Recovery is stepped, not continuous: a
reply can wait up to one full interval longer than a continuous model
would suggest.

The gate is touched only by its room's single drain round, so consume()
and refund() never interleave with another round.
"""

from __future__ import annotations

from dataclasses import dataclass

from loguru import logger

from kagami.agent.scheduling import ScheduledHandle, Scheduler


@dataclass
class EnergyState:
    """Mutable energy budget. Invariant: 0 <= current <= max."""

    current: float
    max: float
    cost_per_reply: float
    recovery_rate: float
    recovery_interval_seconds: float

    @classmethod
    def full(
        cls,
        max_energy: float = 100,
        cost_per_reply: float = 1,
        recovery_rate: float = 5,
        recovery_interval_seconds: float = 60,
    ) -> "EnergyState":
        if max_energy < 0 or cost_per_reply < 0 or recovery_rate < 0:
            raise ValueError("energy parameters must be non-negative")
        return cls(
            current=max_energy,
            max=max_energy,
            cost_per_reply=cost_per_reply,
            recovery_rate=recovery_rate,
            recovery_interval_seconds=recovery_interval_seconds,
        )


class EnergyGate:
    """Consume/refund/recover operations over an EnergyState."""

    def __init__(self, state: EnergyState, scheduler: Scheduler, label: str = "") -> None:
        self.state = state
        self._label = label
        self._timer: ScheduledHandle | None = scheduler.call_every(
            state.recovery_interval_seconds, self.recover,
        )

    def can_afford(self) -> bool:
        return self.state.current >= self.state.cost_per_reply

    def consume(self) -> bool:
        """Spend one reply's worth of energy. All or nothing."""
        if not self.can_afford():
            return False
        self.state.current -= self.state.cost_per_reply
        logger.debug(f"{self._label}Energy: spent {self.state.cost_per_reply}, now {self.status()}")
        return True

    def refund(self) -> None:
        """Give back one reply's worth of energy, capped at max."""
        self.state.current = min(self.state.current + self.state.cost_per_reply, self.state.max)
        logger.debug(f"{self._label}Energy: refunded {self.state.cost_per_reply}, now {self.status()}")

    def recover(self) -> None:
        """One recovery tick."""
        if self.state.current >= self.state.max:
            return
        before = self.state.current
        self.state.current = min(self.state.current + self.state.recovery_rate, self.state.max)
        logger.debug(f"{self._label}Energy: recovered {self.state.current - before}, now {self.status()}")

    def status(self) -> str:
        return f"{self.state.current:g}/{self.state.max:g}"

    def close(self) -> None:
        """Stop background recovery. Safe to call more than once."""
        if self._timer is not None:
            self._timer.cancel()
            self._timer = None

    @property
    def closed(self) -> bool:
        return self._timer is None
