# config.py
# Runtime settings, read from the environment (and a .env file if present).

import os

from dotenv import load_dotenv
from pydantic import BaseModel, Field, field_validator

DEFAULT_BASE_URL = "https://api.deepseek.com/v1"
DEFAULT_MODEL = "deepseek-chat"


class Settings(BaseModel):
    """Everything the relay needs to talk to the endpoint and to tool servers."""

    api_key: str = Field(default="", description="Bearer credential for the completion endpoint.")
    base_url: str = DEFAULT_BASE_URL
    model: str = DEFAULT_MODEL
    max_tokens: int = Field(default=1000, gt=0)
    history_capacity: int = Field(default=10, ge=1)
    max_iterations: int = Field(default=5, ge=1)
    connect_timeout: float = Field(default=10.0, gt=0)
    list_timeout: float = Field(default=5.0, gt=0)
    tool_timeout: float | None = Field(
        default=60.0, description="Per tool call deadline in seconds; None disables it."
    )
    log_level: str = "WARNING"

    @field_validator("tool_timeout")
    @classmethod
    def _zero_disables(cls, value: float | None) -> float | None:
        if value is not None and value <= 0:
            return None
        return value

    @classmethod
    def from_env(cls, **overrides) -> "Settings":
        """
        Build settings from DEEPSEEK_API_KEY and MCP_RELAY_* variables.

        Keyword overrides win over the environment. Unset variables fall back
        to the field defaults; malformed ones raise pydantic's ValidationError.
        """
        load_dotenv()

        env = {
            "api_key": os.getenv("DEEPSEEK_API_KEY"),
            "base_url": os.getenv("MCP_RELAY_BASE_URL"),
            "model": os.getenv("MCP_RELAY_MODEL"),
            "max_tokens": os.getenv("MCP_RELAY_MAX_TOKENS"),
            "history_capacity": os.getenv("MCP_RELAY_HISTORY_CAPACITY"),
            "max_iterations": os.getenv("MCP_RELAY_MAX_ITERATIONS"),
            "connect_timeout": os.getenv("MCP_RELAY_CONNECT_TIMEOUT"),
            "list_timeout": os.getenv("MCP_RELAY_LIST_TIMEOUT"),
            "tool_timeout": os.getenv("MCP_RELAY_TOOL_TIMEOUT"),
            "log_level": os.getenv("MCP_RELAY_LOG_LEVEL"),
        }
        values = {key: value for key, value in env.items() if value is not None}
        values.update(overrides)
        return cls.model_validate(values)
