"""
Pipeline YAML parser and validator.
"""

import logging
import yaml
from typing import List, Dict, Any, Optional

from pydantic import ValidationError

from imagepipe.src.docker.runner import ProcessRunner
from imagepipe.src.errors import PipelineConfigError
from imagepipe.src.models.container import Disposition
from imagepipe.src.models.step import (
    BuildStepSpec,
    EnvironmentSpec,
    FailureStepSpec,
    Hook,
    ImageSpec,
    PipelineSpec,
    PublishSpec,
    SaveSpec,
    SuccessStepSpec,
    TestStepSpec,
)

logger = logging.getLogger(__name__)

def parse_pipeline_config(yaml_content: str, runner: Optional[ProcessRunner] = None) -> PipelineSpec:
    """Parse pipeline YAML configuration from string."""
    try:
        config = yaml.safe_load(yaml_content)
    except yaml.YAMLError as e:
        raise PipelineConfigError(f"Invalid YAML: {e}")

    return validate_config(config, runner)

def parse_pipeline_file(path: str, runner: Optional[ProcessRunner] = None) -> PipelineSpec:
    """Parse pipeline YAML configuration from a file."""
    with open(path, "r") as f:
        return parse_pipeline_config(f.read(), runner)

def parse_pipeline_dict(config: Dict[str, Any], runner: Optional[ProcessRunner] = None) -> PipelineSpec:
    """Validate pipeline configuration from dict."""
    return validate_config(config, runner)

def validate_config(config: Optional[Dict[str, Any]], runner: Optional[ProcessRunner] = None) -> PipelineSpec:
    """Validate pipeline configuration structure."""
    if not config:
        raise PipelineConfigError("Empty pipeline configuration")

    if not isinstance(config, dict):
        raise PipelineConfigError("Pipeline configuration must be a dictionary")

    name = config.get("name")
    if not name:
        raise PipelineConfigError("Pipeline must have a 'name'")
    if not isinstance(name, str):
        raise PipelineConfigError("Pipeline 'name' must be a string")

    for section in ("build", "test"):
        if section not in config:
            raise PipelineConfigError(f"Pipeline must have '{section}' defined")

    runner = runner or ProcessRunner()

    return _build_model(
        PipelineSpec,
        "pipeline",
        name=name,
        description=config.get("description", ""),
        build=validate_build(config["build"], runner),
        environment=validate_environment(config.get("environment")),
        test=validate_test(config["test"], runner),
        on_success=validate_success(config.get("on_success"), runner),
        on_failure=validate_failure(config.get("on_failure"), runner),
        keep_environment_on_failure=config.get("keep_environment_on_failure", False),
    )

def validate_build(build: Any, runner: ProcessRunner) -> BuildStepSpec:
    """Validate the build block."""
    _require_dict(build, "build")

    if "image" not in build:
        raise PipelineConfigError("Step 'build' missing 'image'")

    image = build["image"]
    _require_dict(image, "build.image")
    image = dict(image)
    image.setdefault("name", image.get("image_name") or image.get("repository") or "image")

    return _build_model(
        BuildStepSpec,
        "build",
        image=_build_model(ImageSpec, "build.image", **image),
        before_build=compile_hook(build.get("before"), "build.before", runner),
        after_build=compile_hook(build.get("after"), "build.after", runner),
    )

def validate_environment(environment: Any) -> Optional[EnvironmentSpec]:
    """Validate the optional environment block."""
    if environment is None:
        return None
    _require_dict(environment, "environment")

    compose_files = environment.get("compose_files")
    if compose_files is None and "compose_file" in environment:
        compose_files = [environment["compose_file"]]
    if not compose_files:
        raise PipelineConfigError("Step 'environment' missing 'compose_files'")

    if "project_name" not in environment:
        raise PipelineConfigError("Step 'environment' missing 'project_name'")

    wait = environment.get("wait") or {}
    _require_dict(wait, "environment.wait")

    targets = _wait_targets(wait, "running", "healthy", "container")
    services = _wait_targets(wait, "running_services", "healthy_services", "service")

    values = {
        "compose_files": compose_files,
        "project_name": environment["project_name"],
        "env_files": environment.get("env_files", []),
        "targets": targets,
        "services": services,
    }
    for key in ("interval_seconds", "max_retries"):
        if key in wait:
            values[key] = wait[key]

    return _build_model(EnvironmentSpec, "environment", **values)

def _wait_targets(wait: Dict[str, Any], running_key: str, healthy_key: str, kind: str) -> Dict[str, Disposition]:
    # Healthy is listed last so it wins when a name appears in both lists
    targets: Dict[str, Disposition] = {}
    for key, disposition in ((running_key, Disposition.RUNNING), (healthy_key, Disposition.HEALTHY)):
        names = wait.get(key, [])
        if not isinstance(names, list) or not all(isinstance(n, str) for n in names):
            raise PipelineConfigError(f"'environment.wait.{key}' must be a list of {kind} names")
        for name in names:
            targets[name] = disposition
    return targets

def validate_test(test: Any, runner: ProcessRunner) -> TestStepSpec:
    """Validate the test block."""
    _require_dict(test, "test")

    if "command" not in test:
        raise PipelineConfigError("Step 'test' missing 'command'")

    return _build_model(
        TestStepSpec,
        "test",
        command=_to_argv(test["command"], "test.command"),
        working_dir=test.get("working_dir"),
        timeout=test.get("timeout"),
        before_test=compile_hook(test.get("before"), "test.before", runner),
        after_test=compile_hook(test.get("after"), "test.after", runner),
    )

def validate_success(on_success: Any, runner: ProcessRunner) -> Optional[SuccessStepSpec]:
    """Validate the optional on_success block."""
    if on_success is None:
        return None
    _require_dict(on_success, "on_success")

    tags = on_success.get("additional_tags", [])
    if not isinstance(tags, list) or not all(isinstance(t, str) for t in tags):
        raise PipelineConfigError("'on_success.additional_tags' must be a list of strings")

    save = None
    if on_success.get("save") is not None:
        _require_dict(on_success["save"], "on_success.save")
        if "output_file" not in on_success["save"]:
            raise PipelineConfigError("Block 'on_success.save' missing 'output_file'")
        save = _build_model(SaveSpec, "on_success.save", **on_success["save"])

    publish = None
    if on_success.get("publish") is not None:
        _require_dict(on_success["publish"], "on_success.publish")
        if not on_success["publish"].get("targets"):
            raise PipelineConfigError("Block 'on_success.publish' must have at least one target")
        publish = _build_model(PublishSpec, "on_success.publish", **on_success["publish"])

    return _build_model(
        SuccessStepSpec,
        "on_success",
        additional_tags=tags,
        save=save,
        publish=publish,
        after_success=compile_hook(on_success.get("after"), "on_success.after", runner),
    )

def validate_failure(on_failure: Any, runner: ProcessRunner) -> Optional[FailureStepSpec]:
    """Validate the optional on_failure block."""
    if on_failure is None:
        return None
    _require_dict(on_failure, "on_failure")

    include_services = on_failure.get("include_services", [])
    if not isinstance(include_services, list) or not all(isinstance(s, str) for s in include_services):
        raise PipelineConfigError("'on_failure.include_services' must be a list of service names")

    return _build_model(
        FailureStepSpec,
        "on_failure",
        after_failure=compile_hook(on_failure.get("after"), "on_failure.after", runner),
        save_failure_logs_dir=on_failure.get("save_logs_dir", on_failure.get("save_failure_logs_dir")),
        include_services=include_services,
    )

def compile_hook(command: Any, block: str, runner: ProcessRunner) -> Optional[Hook]:
    """Turn a hook command from configuration into a zero-argument callable."""
    if command is None:
        return None

    argv = _to_argv(command, block)

    def hook():
        logger.info(f"Running {block} hook: {' '.join(argv)}")
        runner.execute(argv).check()

    hook.__name__ = block.replace(".", "_")
    return hook

def _to_argv(command: Any, block: str) -> List[str]:
    # Strings run through the shell so pipelines and && chains work
    if isinstance(command, str):
        if not command.strip():
            raise PipelineConfigError(f"'{block}' must not be empty")
        return ["/bin/sh", "-c", command]

    if isinstance(command, list) and command and all(isinstance(c, str) for c in command):
        return list(command)

    raise PipelineConfigError(f"'{block}' must be a command string or a non-empty list of strings")

def _require_dict(value: Any, block: str):
    if not isinstance(value, dict):
        raise PipelineConfigError(f"'{block}' must be a dictionary")

def _build_model(model, block: str, **values):
    try:
        return model(**values)
    except ValidationError as e:
        problems = "; ".join(
            f"{'.'.join(str(part) for part in error['loc']) or block}: {error['msg']}"
            for error in e.errors()
        )
        raise PipelineConfigError(f"Invalid '{block}' configuration: {problems}")
