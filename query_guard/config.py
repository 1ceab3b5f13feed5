"""Configuration management for the query guard."""

from typing import Optional, Dict, List
from pydantic import BaseModel, Field, ConfigDict


class GuardConfig(BaseModel):
    """Failure guard configuration."""
    failure_threshold: int = Field(3, ge=1, description="Consecutive failures before a key is blocked")
    block_duration_ms: int = Field(30_000, gt=0, description="How long a key stays blocked, in milliseconds")
    max_entries: Optional[int] = Field(
        None,
        gt=0,
        description=(
            "Maximum number of tracked keys (None for unbounded). Blocked keys are "
            "never evicted, so the table may exceed this while they stay blocked"
        )
    )
    single_probe: bool = Field(
        False,
        description="Admit only one trial call per key once its block window expires"
    )


class RetryConfig(BaseModel):
    """Retry policy for guarded requests."""
    max_retries: int = Field(3, ge=0, description="Maximum retries for ordinary failures")
    max_server_error_retries: int = Field(2, ge=0, description="Maximum retries for 5xx responses")
    non_retryable_statuses: List[int] = Field(
        default_factory=lambda: [401, 403, 404],
        description="HTTP statuses that are never retried"
    )
    base_delay_ms: int = Field(1000, ge=0, description="Delay before the first retry")
    max_delay_ms: int = Field(5000, ge=0, description="Upper bound for the retry delay")


class ClientConfig(BaseModel):
    """HTTP client configuration."""
    base_url: Optional[str] = Field(None, description="Base URL prepended to request paths")
    timeout_seconds: float = Field(30.0, gt=0, description="Request timeout in seconds")
    headers: Dict[str, str] = Field(default_factory=dict, description="Headers sent with every request")


class QueryGuardConfig(BaseModel):
    """Main configuration for the query guard."""
    guard: GuardConfig = Field(default_factory=GuardConfig)
    retry: RetryConfig = Field(default_factory=RetryConfig)
    client: ClientConfig = Field(default_factory=ClientConfig)
    log_level: str = Field("INFO", description="Log level used by the CLI")

    model_config = ConfigDict(
        json_schema_extra={
            "example": {
                "guard": {
                    "failure_threshold": 3,
                    "block_duration_ms": 30000,
                    "max_entries": 10000,
                    "single_probe": False
                },
                "retry": {
                    "max_retries": 3,
                    "max_server_error_retries": 2,
                    "non_retryable_statuses": [401, 403, 404],
                    "base_delay_ms": 1000,
                    "max_delay_ms": 5000
                },
                "client": {
                    "base_url": "https://api.example.com",
                    "timeout_seconds": 30.0
                },
                "log_level": "INFO"
            }
        }
    )
