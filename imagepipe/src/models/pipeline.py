"""
Pipeline run state.
"""

from pydantic import BaseModel, Field
from typing import List, Optional
from enum import Enum

class PipelineStage(str, Enum):
    IDLE = "idle"
    BUILDING = "building"
    UPPING = "upping"
    WAITING_READY = "waiting_ready"
    TESTING = "testing"
    SUCCEEDING = "succeeding"
    FAILING = "failing"
    COMPLETED = "completed"

class TestOutcome(str, Enum):
    __test__ = False

    NOT_RUN = "not_run"
    PASSED = "passed"
    FAILED = "failed"

class RunStatus(str, Enum):
    QUEUED = "queued"
    RUNNING = "running"
    SUCCEEDED = "succeeded"
    FAILED = "failed"

class PipelineContext(BaseModel):
    """
    State threaded through every step of a single pipeline run.

    The built image is recorded once and the test result moves from
    NOT_RUN to PASSED or FAILED exactly once. Applied tags only grow.
    """

    pipeline_name: str = Field(frozen=True)
    stage: PipelineStage = PipelineStage.IDLE
    built_image: Optional[str] = None
    applied_tags: List[str] = []
    test_result: TestOutcome = TestOutcome.NOT_RUN

    def record_built_image(self, image_ref: str) -> None:
        if not image_ref:
            raise ValueError("built image reference must not be empty")
        if self.built_image is not None:
            raise RuntimeError(
                f"Pipeline '{self.pipeline_name}' already has built image '{self.built_image}'"
            )
        self.built_image = image_ref

    def record_test_result(self, result: TestOutcome) -> None:
        if result is TestOutcome.NOT_RUN:
            raise ValueError("test result must be PASSED or FAILED")
        if self.test_result is not TestOutcome.NOT_RUN:
            raise RuntimeError(
                f"Pipeline '{self.pipeline_name}' already recorded test result '{self.test_result.value}'"
            )
        self.test_result = result

    def add_applied_tags(self, tags: List[str]) -> None:
        for tag in tags:
            if tag not in self.applied_tags:
                self.applied_tags.append(tag)

    @property
    def tests_passed(self) -> bool:
        return self.test_result is TestOutcome.PASSED
