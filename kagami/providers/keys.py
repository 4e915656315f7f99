"""API key pool: pick a key uniformly at random per call to spread rate limits."""

from __future__ import annotations

import random


class ApiKeyPool:
    """Immutable pool of API keys for one provider."""

    def __init__(self, api_keys: list[str], rng: random.Random | None = None) -> None:
        keys = [k for k in api_keys if k]
        if not keys:
            raise ValueError("API key pool cannot be empty")
        self._keys = tuple(keys)
        self._rng = rng or random.Random()

    def pick(self) -> str:
        return self._rng.choice(self._keys)

    def __len__(self) -> int:
        return len(self._keys)
