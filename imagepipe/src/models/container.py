"""
Container disposition and readiness models.
"""

from pydantic import BaseModel, model_validator
from typing import Optional
from enum import Enum

class Disposition(str, Enum):
    RUNNING = "running"
    HEALTHY = "healthy"

class RawState(str, Enum):
    CREATED = "created"
    RESTARTING = "restarting"
    RUNNING = "running"
    PAUSED = "paused"
    EXITED = "exited"
    DEAD = "dead"
    NOT_FOUND = "not-found"
    ERROR = "error"

class RawHealth(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    STARTING = "starting"
    NO_HEALTH_CHECK = "no-healthcheck"
    NOT_FOUND = "not-found"
    ERROR = "error"

class FailureReason(str, Enum):
    UNHEALTHY = "unhealthy"
    NO_HEALTH_CHECK = "no-health-check"
    FAILED = "failed"
    NUM_RETRIES_EXCEEDED = "num-retries-exceeded"
    ILLEGAL_TARGET = "illegal-target"
    ERROR = "error"

class StateInspection(BaseModel):
    container: str
    state: RawState
    detail: Optional[str] = None

class HealthInspection(BaseModel):
    container: str
    health: RawHealth
    detail: Optional[str] = None

class PollOutcome(BaseModel):
    """Result of waiting for one or more containers."""

    success: bool
    failure_reason: Optional[FailureReason] = None
    detail: Optional[str] = None
    container: Optional[str] = None

    @model_validator(mode="after")
    def _check_failure_fields(self):
        if self.success and (self.failure_reason is not None or self.container is not None):
            raise ValueError("a successful outcome carries no failure reason or container")
        if not self.success and (self.failure_reason is None or self.container is None):
            raise ValueError("a failed outcome requires a failure reason and container")
        return self

    @classmethod
    def succeeded(cls) -> "PollOutcome":
        return cls(success=True)

    @classmethod
    def failed(
        cls,
        reason: FailureReason,
        container: str,
        detail: Optional[str] = None,
    ) -> "PollOutcome":
        return cls(success=False, failure_reason=reason, container=container, detail=detail)
