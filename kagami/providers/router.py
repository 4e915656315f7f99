"""ProviderRouter: try each configured model in order until one answers.

Every attempt is written to the call log, success or failure, before the
router moves on. An attempt resolves to one of three outcomes:

- Success:      the model returned text or tool calls
- EmptyContent: the call went through but the model said nothing
- Failure:      the adapter raised (network, vendor error, timeout)

EmptyContent and Failure both fall through to the next model. When every
model has been tried, ProviderExhaustedError carries the per-model reasons.
"""

from __future__ import annotations

import json
from typing import Callable

from loguru import logger

from kagami.config.schema import Config
from kagami.providers.base import (
    AttemptOutcome,
    ChatRequest,
    EmptyContent,
    Failure,
    LLMProvider,
    LLMResponse,
    Success,
)
from kagami.providers.registry import create_provider
from kagami.storage.call_log import LlmCallRecord, LogRepository
from kagami.utils.timefmt import Clock, now_str


class ProviderExhaustedError(Exception):
    """Every configured model failed for one request."""

    def __init__(self, attempts: list[tuple[str, str]]):
        self.attempts = attempts
        detail = "; ".join(f"{model}: {reason}" for model, reason in attempts)
        super().__init__(f"All {len(attempts)} model(s) failed: {detail}")


class ProviderRouter:
    """Ordered fallback over one client per configured model.

    Shared across rooms. Holds no per-request state, so concurrent calls
    from different rooms don't need a lock.
    """

    def __init__(
        self,
        models: list[str],
        clients: dict[str, LLMProvider],
        log_repository: LogRepository,
        clock: Clock | None = None,
    ) -> None:
        if not models:
            raise ValueError("ProviderRouter needs at least one model")
        missing = [m for m in models if m not in clients]
        if missing:
            raise ValueError(f"No client for model(s): {', '.join(missing)}")
        self.models = list(models)
        self._clients = clients
        self._log_repository = log_repository
        self._clock: Callable[[], str] = clock or now_str

    @classmethod
    def from_config(
        cls,
        config: Config,
        log_repository: LogRepository,
        clock: Clock | None = None,
    ) -> "ProviderRouter":
        """One adapter per provider, shared by every model that provider serves.

        A model listed by several providers goes to the first one declared.
        """
        adapters: dict[str, LLMProvider] = {}
        clients: dict[str, LLMProvider] = {}
        for model in config.llm.models:
            name = config.find_provider_name(model)
            if name is None:
                raise ValueError(f'No provider serves model "{model}"')
            if name not in adapters:
                adapters[name] = create_provider(config.llm_providers[name], timeout=config.llm.timeout)
            clients[model] = adapters[name]
            logger.debug(f"Router: {model} → provider '{name}' ({adapters[name].interface})")
        return cls(config.llm.models, clients, log_repository, clock=clock)

    @property
    def clients(self) -> dict[str, LLMProvider]:
        return dict(self._clients)

    async def call_with_fallback(self, request: ChatRequest) -> LLMResponse:
        """Return the first successful response, in configured model order.

        Raises:
            ProviderExhaustedError: If no model produced a response.
        """
        rendered_input = json.dumps(request.to_dict(), indent=2, ensure_ascii=False)
        attempts: list[tuple[str, str]] = []

        for model in self.models:
            outcome = await self._attempt(model, request)

            if isinstance(outcome, Success):
                await self._log(
                    "success", rendered_input, self._describe_output(outcome.response),
                )
                if attempts:
                    logger.info(f"Router: {model} succeeded after {len(attempts)} failed attempt(s)")
                return outcome.response

            reason = "empty content" if isinstance(outcome, EmptyContent) else outcome.reason
            await self._log("fail", rendered_input, reason)
            attempts.append((model, reason))
            logger.warning(f"Router: {model} failed ({reason}), trying next model")

        logger.error(f"Router: all {len(attempts)} model(s) failed")
        raise ProviderExhaustedError(attempts)

    async def _attempt(self, model: str, request: ChatRequest) -> AttemptOutcome:
        client = self._clients[model]
        try:
            response = await client.chat(model, request)
        except Exception as e:
            return Failure(reason=f"{type(e).__name__}: {e}")
        if not response.content and not response.has_tool_calls:
            return EmptyContent()
        return Success(response=response)

    @staticmethod
    def _describe_output(response: LLMResponse) -> str:
        if response.content:
            return response.content
        return json.dumps([tc.to_dict() for tc in response.tool_calls], ensure_ascii=False)

    async def _log(self, status: str, rendered_input: str, output: str) -> None:
        record = LlmCallRecord(
            timestamp=self._clock(),
            status=status,  # type: ignore[arg-type]
            input=rendered_input,
            output=output,
        )
        try:
            await self._log_repository.insert(record)
        except Exception as e:
            logger.exception(f"Failed to write LLM call log: {e}")
