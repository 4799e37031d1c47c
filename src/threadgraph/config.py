from pathlib import Path
from typing import Literal

from pydantic import Field
from pydantic_settings import BaseSettings, SettingsConfigDict

from threadgraph.nodes.tools import ToolErrorPolicy

DEFAULT_SYSTEM_PROMPT = (
    "You are a helpful assistant. Use the available tools when they help you "
    "answer accurately, and answer directly when they do not."
)


class ThreadGraphConfig(BaseSettings):
    """Configuration for ThreadGraph.

    Settings can be provided via environment variables with THREADGRAPH_ prefix.
    """

    model_config = SettingsConfigDict(
        env_prefix="THREADGRAPH_",
        env_file=".env",
        env_file_encoding="utf-8",
        case_sensitive=False,
        extra="ignore",
    )

    # Graph name, reported in logs
    name: str = "Hyperliquid Agent"

    # Model configuration
    model: str = "gpt-4o-mini"
    temperature: float = Field(default=0.0, ge=0.0, le=2.0)
    openai_api_key: str | None = None
    system_prompt: str = DEFAULT_SYSTEM_PROMPT

    # Loop limits and timeouts
    max_round_trips: int = Field(default=10, ge=0)
    model_timeout_seconds: float = Field(default=60.0, gt=0)
    tool_timeout_seconds: float = Field(default=30.0, gt=0)

    # Retries for failed model calls (1 = no retry)
    model_max_attempts: int = Field(default=1, ge=1)
    model_retry_base_delay: float = Field(default=0.5, ge=0.0)

    # Tool dispatch behaviour
    tool_error_policy: ToolErrorPolicy = ToolErrorPolicy.REPORT
    parallel_tool_calls: bool = True

    # Checkpoint backend
    checkpoint_store: Literal["memory", "file", "kuzu"] = "kuzu"

    # Home directory for durable checkpoints
    # Default: ~/.threadgraph
    home: Path | None = None

    def get_home(self) -> Path:
        """Get the home directory for storage."""
        return self.home or Path.home() / ".threadgraph"

    def get_checkpoint_path(self) -> Path:
        """Get the checkpoint directory for the file and kuzu backends."""
        return self.get_home() / "checkpoints"
