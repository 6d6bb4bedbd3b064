from __future__ import annotations

from typing import Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic_settings import BaseSettings, SettingsConfigDict


class FlowSettings(BaseModel):
    """Immutable WriteFlow configuration, validated once at construction.

    Attributes:
        batch_size: Max items per bulk call
        max_retry: Retry budget per item (0 disables retries)
        retry_interval: Fixed delay between retry rounds, seconds
        retry_on_partial_failure: Retry per-item retryable failures; when False they
            are terminal at once (whole-call transport failures are still retried)
        flush_interval: Linger before a partial batch is flushed; None waits for a
            full batch or end of stream
        drain_timeout: How long teardown waits for an in-flight dispatch, seconds
    """

    model_config = ConfigDict(frozen=True, extra="forbid")

    batch_size: int = Field(default=10, gt=0)
    max_retry: int = Field(default=100, ge=0)
    retry_interval: float = Field(default=5.0, ge=0)
    retry_on_partial_failure: bool = True
    flush_interval: Optional[float] = Field(default=None, gt=0)
    drain_timeout: float = Field(default=30.0, gt=0)


class FlowRuntimeSettings(BaseSettings):
    """Environment-backed WriteFlow settings (``FLOW_BATCH_SIZE``, ``FLOW_MAX_RETRY``...)."""

    model_config = SettingsConfigDict(env_prefix="FLOW_", env_file=".env", extra="ignore")

    batch_size: int = 10
    max_retry: int = 100
    retry_interval: float = 5.0
    retry_on_partial_failure: bool = True
    flush_interval: Optional[float] = None
    drain_timeout: float = 30.0

    def flow_settings(self) -> FlowSettings:
        return FlowSettings(**self.model_dump())
