"""
Pipeline error hierarchy.

Every failure that aborts a pipeline run is a PipelineError. The stage,
reason, container and detail fields say which step failed, against which
container or target, and why.
"""

from typing import Any, Dict, List, Optional, Sequence

class PipelineError(Exception):
    """Base class for failures that abort a pipeline run."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        reason: Optional[str] = None,
        container: Optional[str] = None,
        detail: Optional[str] = None,
    ):
        super().__init__(message)
        self.message = message
        self.stage = stage
        self.reason = reason
        self.container = container
        self.detail = detail
        # Set by the executor to the context as it stood when the run failed
        self.context: Any = None

    def to_dict(self) -> Dict[str, Optional[str]]:
        return {
            "error": self.message,
            "stage": self.stage,
            "reason": self.reason,
            "container": self.container,
            "detail": self.detail,
        }

class PipelineConfigError(PipelineError):
    """Raised when pipeline configuration is invalid or incomplete."""

    def __init__(self, message: str, **kwargs):
        kwargs.setdefault("reason", "config")
        super().__init__(message, **kwargs)

class MissingBuildContextError(PipelineConfigError):
    """Raised when a step needs the built image and none is recorded."""

    def __init__(self, operation: str, **kwargs):
        kwargs.setdefault("reason", "missing-build-context")
        super().__init__(
            f"Cannot {operation} - no built image in pipeline context", **kwargs
        )
        self.operation = operation

class ReadinessError(PipelineError):
    """Raised when containers did not reach their target disposition."""

    def __init__(self, outcome, **kwargs):
        reason = outcome.failure_reason.value if outcome.failure_reason else None
        message = f"Container '{outcome.container}' not ready: {reason}"
        if outcome.detail:
            message += f" ({outcome.detail})"
        super().__init__(
            message,
            reason=reason,
            container=outcome.container,
            detail=outcome.detail,
            **kwargs,
        )
        self.outcome = outcome

class TestHarnessError(PipelineError):
    """Raised when the test command could not be run at all."""

    __test__ = False

class HookError(PipelineError):
    """Raised when a configured hook fails."""

    def __init__(self, hook: str, cause: BaseException, **kwargs):
        kwargs.setdefault("reason", "hook")
        super().__init__(f"Hook '{hook}' failed: {cause}", detail=str(cause), **kwargs)
        self.hook = hook

class OperationError(PipelineError):
    """Raised when a tag, save or publish operation fails."""

class PublishError(OperationError):
    """Raised when publishing fails for one or more targets."""

    def __init__(self, image_ref: str, failures: Dict[str, str], **kwargs):
        targets = ", ".join(f"'{name}': {msg}" for name, msg in failures.items())
        kwargs.setdefault("reason", "publish")
        super().__init__(f"Failed to publish image '{image_ref}' to {targets}", **kwargs)
        self.image_ref = image_ref
        self.failures = dict(failures)

class RuntimeUnavailableError(PipelineError):
    """Raised when the container runtime cannot be reached."""

class CommandError(RuntimeError):
    """Raised when an external command exits with a non-zero status code."""

    def __init__(self, argv: Sequence[str], exit_code: int, stdout: str, stderr: str):
        self.argv: List[str] = list(argv)
        self.exit_code = exit_code
        self.stdout = stdout
        self.stderr = stderr
        super().__init__(
            f"Command {' '.join(self.argv)} failed with exit code {exit_code}: {stderr.strip()}"
        )
