"""
Pipeline step specifications.

Specs are read-only for the duration of a run. An optional block that is
present must be complete; absence means the operation is skipped.
"""

from pydantic import BaseModel, ConfigDict, Field, field_validator, model_validator
from typing import Any, Callable, Dict, List, Optional
from enum import Enum

from imagepipe.src.config import get_settings
from imagepipe.src.models.container import Disposition
from imagepipe.src.models.image import build_image_references

Hook = Callable[[], Any]

class Compression(str, Enum):
    NONE = "none"
    GZIP = "gzip"
    BZIP2 = "bzip2"
    XZ = "xz"
    ZIP = "zip"

    @property
    def extension(self) -> str:
        return {
            "none": "tar",
            "gzip": "tar.gz",
            "bzip2": "tar.bz2",
            "xz": "tar.xz",
            "zip": "zip",
        }[self.value]

class ImageSpec(BaseModel):
    name: str
    registry: Optional[str] = None
    namespace: Optional[str] = None
    repository: Optional[str] = None
    image_name: Optional[str] = None
    tags: List[str] = []

    # Build inputs
    context_dir: str = "."
    dockerfile: Optional[str] = None
    build_args: Dict[str, str] = {}
    labels: Dict[str, str] = {}

    # Use an existing image instead of building one
    source_ref: Optional[str] = None
    pull_if_missing: bool = False

    model_config = ConfigDict(frozen=True)

    @model_validator(mode="after")
    def _check_naming(self):
        if self.source_ref:
            return self
        if not self.repository and not self.image_name:
            raise ValueError(
                f"image '{self.name}' needs a repository, an image_name or a source_ref"
            )
        if not self.tags:
            raise ValueError(f"image '{self.name}' needs at least one tag")
        return self

    def references(self) -> List[str]:
        if self.source_ref:
            return [self.source_ref]
        return build_image_references(
            self.registry, self.namespace, self.repository, self.image_name, self.tags
        )

    @property
    def primary_reference(self) -> str:
        return self.references()[0]

class BuildStepSpec(BaseModel):
    image: Optional[ImageSpec] = None
    before_build: Optional[Hook] = None
    after_build: Optional[Hook] = None

    model_config = ConfigDict(frozen=True)

class EnvironmentSpec(BaseModel):
    compose_files: List[str] = Field(min_length=1)
    project_name: str
    env_files: List[str] = []
    targets: Dict[str, Disposition] = {}
    # Compose service names, resolved to containers after the project is up
    services: Dict[str, Disposition] = {}
    interval_seconds: int = Field(
        default_factory=lambda: get_settings().wait_interval_seconds, ge=0
    )
    max_retries: int = Field(
        default_factory=lambda: get_settings().wait_max_retries, ge=0
    )

    model_config = ConfigDict(frozen=True)

class TestStepSpec(BaseModel):
    __test__ = False

    command: List[str] = Field(min_length=1)
    working_dir: Optional[str] = None
    timeout: Optional[int] = Field(default=None, gt=0)
    before_test: Optional[Hook] = None
    after_test: Optional[Hook] = None

    model_config = ConfigDict(frozen=True)

class SaveSpec(BaseModel):
    output_file: str
    compression: Compression = Compression.NONE

    model_config = ConfigDict(frozen=True)

    @field_validator("output_file")
    @classmethod
    def _non_empty(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("output_file must not be empty")
        return value

class PublishTarget(BaseModel):
    name: str
    registry: Optional[str] = None
    namespace: Optional[str] = None
    repository: Optional[str] = None
    image_name: Optional[str] = None
    tags: List[str] = []

    model_config = ConfigDict(frozen=True)

class PublishSpec(BaseModel):
    tags: List[str] = []
    targets: List[PublishTarget] = Field(min_length=1)

    model_config = ConfigDict(frozen=True)

    @field_validator("targets")
    @classmethod
    def _unique_names(cls, targets: List[PublishTarget]) -> List[PublishTarget]:
        names = [t.name for t in targets]
        duplicates = sorted({n for n in names if names.count(n) > 1})
        if duplicates:
            raise ValueError(f"duplicate publish target names: {', '.join(duplicates)}")
        return targets

class SuccessStepSpec(BaseModel):
    additional_tags: List[str] = []
    save: Optional[SaveSpec] = None
    publish: Optional[PublishSpec] = None
    after_success: Optional[Hook] = None

    model_config = ConfigDict(frozen=True)

class FailureStepSpec(BaseModel):
    after_failure: Optional[Hook] = None
    save_failure_logs_dir: Optional[str] = None
    include_services: List[str] = []

    model_config = ConfigDict(frozen=True)

class PipelineSpec(BaseModel):
    name: str
    description: str = ""
    build: BuildStepSpec
    environment: Optional[EnvironmentSpec] = None
    test: TestStepSpec
    on_success: Optional[SuccessStepSpec] = None
    on_failure: Optional[FailureStepSpec] = None
    keep_environment_on_failure: bool = False

    model_config = ConfigDict(frozen=True)

class PipelineJob(BaseModel):
    run_id: str
    config: Dict[str, Any]
    queued_at: Optional[str] = None
