"""Configuration schema, validated with pydantic.

Mirrors the layout of ``env.yaml``::

    llm_providers:
      main:
        interface: openai
        base_url: https://api.example.com/v1
        api_keys: [sk-1, sk-2]
        models: [model-a]
    llm:
      models: [model-a]
    napcat:
      base_url: ws://127.0.0.1:3001
      access_token: secret
      groups: [123456]
      bot_qq: 10001
"""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, Field, field_validator, model_validator


class ProviderConfig(BaseModel):
    """One LLM vendor endpoint and the models it serves."""

    interface: Literal["openai", "genai"] = "openai"
    api_keys: list[str]
    models: list[str]
    base_url: str | None = None

    @field_validator("api_keys", "models")
    @classmethod
    def _non_empty(cls, v: list[str]) -> list[str]:
        if not v:
            raise ValueError("must contain at least one entry")
        return v


class LlmConfig(BaseModel):
    models: list[str] = Field(min_length=1)  # fallback order
    timeout: float = 60.0


class ReconnectionConfig(BaseModel):
    enable: bool = True
    attempts: int = 10
    delay: float = 5.0


class NapcatConfig(BaseModel):
    base_url: str
    access_token: str = ""
    reconnection: ReconnectionConfig = Field(default_factory=ReconnectionConfig)
    groups: list[int] = Field(min_length=1)
    bot_qq: int


class MasterConfig(BaseModel):
    """The bot's operator, mentioned in the system prompt."""

    qq: int
    nickname: str = ""


class AgentConfig(BaseModel):
    history_size: int = Field(default=40, ge=1)
    prompt_path: str | None = None
    timezone: str = "Asia/Shanghai"


class BehaviorConfig(BaseModel):
    energy_max: float = Field(default=100, ge=0)
    energy_cost: float = Field(default=1, ge=0)
    energy_recovery_rate: float = Field(default=5, ge=0)
    energy_recovery_interval: float = Field(default=60, gt=0)
    message_handler_type: Literal["active", "passive"] = "active"


class CorsConfig(BaseModel):
    allowed_origins: list[str] = Field(default_factory=list)


class HttpConfig(BaseModel):
    enable: bool = True
    host: str = "127.0.0.1"
    port: int = 8080
    cors: CorsConfig = Field(default_factory=CorsConfig)


class DatabaseConfig(BaseModel):
    path: str = "data/kagami.db"


class LoggingConfig(BaseModel):
    level: str = "INFO"


class Config(BaseModel):
    llm_providers: dict[str, ProviderConfig] = Field(min_length=1)
    llm: LlmConfig
    napcat: NapcatConfig
    master: MasterConfig | None = None
    agent: AgentConfig = Field(default_factory=AgentConfig)
    behavior: BehaviorConfig = Field(default_factory=BehaviorConfig)
    http: HttpConfig = Field(default_factory=HttpConfig)
    database: DatabaseConfig = Field(default_factory=DatabaseConfig)
    logging: LoggingConfig = Field(default_factory=LoggingConfig)

    @model_validator(mode="after")
    def _models_have_providers(self) -> "Config":
        for model in self.llm.models:
            if self.find_provider_name(model) is None:
                raise ValueError(f'No provider serves model "{model}"')
        return self

    def find_provider_name(self, model: str) -> str | None:
        """First provider (in declaration order) that lists ``model``."""
        for name, provider in self.llm_providers.items():
            if model in provider.models:
                return name
        return None
