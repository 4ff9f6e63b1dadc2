"""
Container state and health queries.

The Docker CLI reports missing containers and missing health checks only
through its error text, so classification relies on substring checks.
They are kept here so the polling logic never sees raw CLI output.
"""

import logging
from typing import Optional

from imagepipe.src.docker.commands import (
    build_state_inspect_command,
    build_health_inspect_command,
)
from imagepipe.src.docker.runner import ProcessRunner
from imagepipe.src.models.container import (
    RawState,
    RawHealth,
    StateInspection,
    HealthInspection,
)

logger = logging.getLogger(__name__)

NOT_FOUND_MARKERS = ("No such object", "No such container")
NO_HEALTH_CHECK_MARKER = 'map has no entry for key "Health"'
NO_VALUE_OUTPUT = "<no value>"

class DispositionInspector:
    """Queries the state or health status of a single container."""

    def __init__(self, runner: Optional[ProcessRunner] = None, docker: str = "docker"):
        self.runner = runner or ProcessRunner()
        self.docker = docker

    def get_container_state(self, container: str) -> StateInspection:
        command = build_state_inspect_command(container, self.docker)
        try:
            result = self.runner.execute(command)
        except OSError as e:
            return StateInspection(container=container, state=RawState.ERROR, detail=str(e))

        if result.ok:
            value = result.stdout.strip().lower()
            try:
                return StateInspection(container=container, state=RawState(value))
            except ValueError:
                return StateInspection(
                    container=container,
                    state=RawState.ERROR,
                    detail=f"unrecognized container state '{value}'",
                )

        if _is_not_found(result.stderr):
            return StateInspection(container=container, state=RawState.NOT_FOUND)

        return StateInspection(container=container, state=RawState.ERROR, detail=result.stderr.strip())

    def get_container_health(self, container: str) -> HealthInspection:
        command = build_health_inspect_command(container, self.docker)
        try:
            result = self.runner.execute(command)
        except OSError as e:
            return HealthInspection(container=container, health=RawHealth.ERROR, detail=str(e))

        if result.ok:
            value = result.stdout.strip().lower()
            if value in ("", NO_VALUE_OUTPUT):
                return HealthInspection(container=container, health=RawHealth.NO_HEALTH_CHECK)
            try:
                return HealthInspection(container=container, health=RawHealth(value))
            except ValueError:
                return HealthInspection(
                    container=container,
                    health=RawHealth.ERROR,
                    detail=f"unrecognized health status '{value}'",
                )

        if NO_HEALTH_CHECK_MARKER in result.stderr:
            return HealthInspection(container=container, health=RawHealth.NO_HEALTH_CHECK)

        if _is_not_found(result.stderr):
            return HealthInspection(container=container, health=RawHealth.NOT_FOUND)

        return HealthInspection(container=container, health=RawHealth.ERROR, detail=result.stderr.strip())

def _is_not_found(stderr: str) -> bool:
    return any(marker in stderr for marker in NOT_FOUND_MARKERS)
