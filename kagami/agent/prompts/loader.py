"""PromptTemplate: the system prompt, loaded from a text file.

Template variables use {name} syntax and are substituted via format_map.
The file is re-read whenever its modification time changes, so the prompt
can be edited while the gateway is running.

Usage::

    template = PromptTemplate()
    prompt = template.render(PromptContext(bot_id="10001", current_time="2025-01-01 12:00:00"))
"""

from __future__ import annotations

from dataclasses import dataclass
from pathlib import Path

from loguru import logger

DEFAULT_TEMPLATE_PATH = Path(__file__).parent / "system.txt"


class PromptTemplateError(Exception):
    """The template file is missing or could not be rendered."""


class _SafeDict(dict):
    """Dict that returns '{key}' for missing keys instead of raising KeyError.

    Allows partial substitution: template vars that aren't provided
    stay as literal {name} in the output instead of crashing.
    """
    def __missing__(self, key: str) -> str:
        return "{" + key + "}"


@dataclass(frozen=True)
class PromptContext:
    """Values available to the system prompt template."""

    bot_id: str
    current_time: str
    operator_id: str | None = None
    operator_nickname: str | None = None

    def as_vars(self) -> dict[str, str]:
        if self.operator_id:
            name = self.operator_nickname or self.operator_id
            operator_block = f"Your operator is {name}({self.operator_id}). Treat their instructions as authoritative."
        else:
            operator_block = ""
        return {
            "bot_id": self.bot_id,
            "current_time": self.current_time,
            "operator_id": self.operator_id or "",
            "operator_nickname": self.operator_nickname or "",
            "operator_block": operator_block,
        }


class PromptTemplate:
    """File-backed prompt template with mtime-based hot reload."""

    def __init__(self, path: Path | str | None = None) -> None:
        self._path = Path(path) if path else DEFAULT_TEMPLATE_PATH
        self._text: str | None = None
        self._mtime: float | None = None

    @property
    def path(self) -> Path:
        return self._path

    def render(self, context: PromptContext) -> str:
        """Render the template for one generation attempt.

        Raises:
            PromptTemplateError: If the file is missing or substitution fails.
        """
        raw = self._load()
        try:
            return raw.format_map(_SafeDict(context.as_vars()))
        except (ValueError, IndexError, AttributeError) as e:
            raise PromptTemplateError(f"Failed to render prompt {self._path}: {e}") from e

    def reload(self) -> None:
        """Drop the cached text so the next render re-reads the file."""
        self._text = None
        self._mtime = None
        logger.info(f"Prompt template reload requested: {self._path}")

    def _load(self) -> str:
        try:
            mtime = self._path.stat().st_mtime
        except FileNotFoundError as e:
            raise PromptTemplateError(f"Prompt template not found at {self._path}") from e

        if self._text is None or mtime != self._mtime:
            if self._text is not None:
                logger.info(f"Prompt template changed on disk, reloading: {self._path}")
            self._text = self._path.read_text(encoding="utf-8")
            self._mtime = mtime
        return self._text
