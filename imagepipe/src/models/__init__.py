from imagepipe.src.models.container import (
    Disposition,
    RawState,
    RawHealth,
    FailureReason,
    StateInspection,
    HealthInspection,
    PollOutcome,
)
from imagepipe.src.models.image import (
    ImageReference,
    build_image_references,
)
from imagepipe.src.models.pipeline import (
    PipelineStage,
    TestOutcome,
    RunStatus,
    PipelineContext,
)
from imagepipe.src.models.step import (
    Hook,
    Compression,
    ImageSpec,
    BuildStepSpec,
    EnvironmentSpec,
    TestStepSpec,
    SaveSpec,
    PublishTarget,
    PublishSpec,
    SuccessStepSpec,
    FailureStepSpec,
    PipelineSpec,
    PipelineJob,
)

__all__ = [
    "Disposition",
    "RawState",
    "RawHealth",
    "FailureReason",
    "StateInspection",
    "HealthInspection",
    "PollOutcome",
    "ImageReference",
    "build_image_references",
    "PipelineStage",
    "TestOutcome",
    "RunStatus",
    "PipelineContext",
    "Hook",
    "Compression",
    "ImageSpec",
    "BuildStepSpec",
    "EnvironmentSpec",
    "TestStepSpec",
    "SaveSpec",
    "PublishTarget",
    "PublishSpec",
    "SuccessStepSpec",
    "FailureStepSpec",
    "PipelineSpec",
    "PipelineJob",
]
