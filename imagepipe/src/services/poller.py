"""
Readiness polling - waits for containers to reach a target disposition.

Each pass queries every target in order. A terminal classification (a
crashed or unhealthy container, a missing health check, a query error)
ends the wait at once. Containers that are merely still starting are
retried until the retry budget runs out.
"""

import logging
import time
from enum import Enum
from typing import Callable, Mapping, NamedTuple, Optional, Union

from imagepipe.src.config import get_settings
from imagepipe.src.models.container import (
    Disposition,
    RawState,
    RawHealth,
    FailureReason,
    PollOutcome,
)
from imagepipe.src.services.inspector import DispositionInspector

logger = logging.getLogger(__name__)

class Classification(str, Enum):
    PROCEED = "proceed"
    RETRY = "retry"
    TERMINAL = "terminal"

class Verdict(NamedTuple):
    classification: Classification
    reason: Optional[FailureReason] = None
    detail: Optional[str] = None

_PROCEED = Verdict(Classification.PROCEED)

_FAILED_STATES = {RawState.RESTARTING, RawState.PAUSED, RawState.DEAD, RawState.EXITED}
_PENDING_STATES = {RawState.CREATED, RawState.NOT_FOUND}
_PENDING_HEALTH = {RawHealth.STARTING, RawHealth.NOT_FOUND}

def classify_state(state: RawState, detail: Optional[str] = None) -> Verdict:
    """Classify a container state against a RUNNING target."""
    if state is RawState.RUNNING:
        return _PROCEED
    if state in _FAILED_STATES:
        return Verdict(Classification.TERMINAL, FailureReason.FAILED, state.value)
    if state in _PENDING_STATES:
        return Verdict(Classification.RETRY, detail=state.value)
    return Verdict(Classification.TERMINAL, FailureReason.ERROR, detail)

def classify_health(health: RawHealth, detail: Optional[str] = None) -> Verdict:
    """Classify a container health status against a HEALTHY target."""
    if health is RawHealth.HEALTHY:
        return _PROCEED
    if health is RawHealth.UNHEALTHY:
        return Verdict(Classification.TERMINAL, FailureReason.UNHEALTHY, health.value)
    if health is RawHealth.NO_HEALTH_CHECK:
        return Verdict(Classification.TERMINAL, FailureReason.NO_HEALTH_CHECK, health.value)
    if health in _PENDING_HEALTH:
        return Verdict(Classification.RETRY, detail=health.value)
    return Verdict(Classification.TERMINAL, FailureReason.ERROR, detail)

def _as_disposition(target: Union[Disposition, str]) -> Optional[Disposition]:
    if isinstance(target, Disposition):
        return target
    try:
        return Disposition(target)
    except ValueError:
        return None

class ReadinessPoller:
    """Blocks until containers reach their targets or the wait fails."""

    def __init__(
        self,
        inspector: Optional[DispositionInspector] = None,
        sleep: Callable[[float], None] = time.sleep,
    ):
        self.inspector = inspector or DispositionInspector(docker=get_settings().docker_command)
        self.sleep = sleep

    def wait(
        self,
        targets: Mapping[str, Union[Disposition, str]],
        interval_seconds: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> PollOutcome:
        """
        Wait for every container in `targets` to reach its disposition.

        The first pass runs immediately. After a pass that left some
        container pending, sleep `interval_seconds` and try again, up to
        `max_retries` more passes.
        """
        settings = get_settings()
        if interval_seconds is None:
            interval_seconds = settings.wait_interval_seconds
        if max_retries is None:
            max_retries = settings.wait_max_retries

        if not targets:
            raise ValueError("At least one container target is required")
        if interval_seconds < 0 or max_retries < 0:
            raise ValueError("interval_seconds and max_retries must not be negative")

        attempt = 0
        last_pending: Optional[tuple] = None

        while True:
            all_ready = True

            for container, target in targets.items():
                verdict = self._check(container, target)

                if verdict.classification is Classification.TERMINAL:
                    logger.error(
                        f"Container {container} failed readiness: {verdict.reason.value}"
                        + (f" ({verdict.detail})" if verdict.detail else "")
                    )
                    return PollOutcome.failed(verdict.reason, container, verdict.detail)

                if verdict.classification is Classification.RETRY:
                    all_ready = False
                    last_pending = (container, verdict.detail)

            if all_ready:
                logger.info(f"All {len(targets)} container(s) ready after {attempt + 1} pass(es)")
                return PollOutcome.succeeded()

            if attempt >= max_retries:
                container, detail = last_pending
                logger.error(
                    f"Gave up waiting after {attempt + 1} pass(es); {container} still {detail}"
                )
                return PollOutcome.failed(FailureReason.NUM_RETRIES_EXCEEDED, container, detail)

            attempt += 1
            logger.info(
                f"Waiting for {last_pending[0]} ({last_pending[1]}), "
                f"retry {attempt}/{max_retries} in {interval_seconds}s"
            )
            self.sleep(interval_seconds)

    def wait_for_container(
        self,
        container: str,
        target: Union[Disposition, str],
        interval_seconds: Optional[int] = None,
        max_retries: Optional[int] = None,
    ) -> PollOutcome:
        """Wait for a single container; defaults to the shorter single-target budget."""
        if max_retries is None:
            max_retries = get_settings().single_wait_max_retries
        return self.wait({container: target}, interval_seconds, max_retries)

    def _check(self, container: str, target: Union[Disposition, str]) -> Verdict:
        disposition = _as_disposition(target)

        if disposition is Disposition.RUNNING:
            inspection = self.inspector.get_container_state(container)
            return classify_state(inspection.state, inspection.detail)

        if disposition is Disposition.HEALTHY:
            inspection = self.inspector.get_container_health(container)
            return classify_health(inspection.health, inspection.detail)

        return Verdict(
            Classification.TERMINAL,
            FailureReason.ILLEGAL_TARGET,
            f"unsupported target disposition '{target}'",
        )
