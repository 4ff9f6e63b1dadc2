"""
Docker CLI command builders.
"""

from typing import Dict, List, Optional

def build_version_command(docker: str = "docker") -> List[str]:
    return [docker, "version", "--format", "{{.Server.Version}}"]

def build_image_build_command(
    references: List[str],
    context_dir: str,
    dockerfile: Optional[str] = None,
    build_args: Optional[Dict[str, str]] = None,
    labels: Optional[Dict[str, str]] = None,
    docker: str = "docker",
) -> List[str]:
    """
    Build the `docker build` command for an image.
    Every reference becomes a -t flag; the context directory goes last.
    """
    command = [docker, "build"]

    for ref in references:
        command.extend(["-t", ref])

    if dockerfile:
        command.extend(["-f", dockerfile])

    for key, value in (build_args or {}).items():
        command.extend(["--build-arg", f"{key}={value}"])

    for key, value in (labels or {}).items():
        command.extend(["--label", f"{key}={value}"])

    command.append(context_dir)
    return command

def build_tag_command(source: str, target: str, docker: str = "docker") -> List[str]:
    return [docker, "tag", source, target]

def build_save_command(image_ref: str, output_file: str, docker: str = "docker") -> List[str]:
    return [docker, "save", "-o", output_file, image_ref]

def build_push_command(image_ref: str, docker: str = "docker") -> List[str]:
    return [docker, "push", image_ref]

def build_pull_command(image_ref: str, docker: str = "docker") -> List[str]:
    return [docker, "pull", image_ref]

def build_image_inspect_command(image_ref: str, docker: str = "docker") -> List[str]:
    return [docker, "image", "inspect", "--format", "{{.Id}}", image_ref]

def build_state_inspect_command(container: str, docker: str = "docker") -> List[str]:
    return [docker, "inspect", "--format", "{{.State.Status}}", container]

def build_health_inspect_command(container: str, docker: str = "docker") -> List[str]:
    return [docker, "inspect", "--format", "{{.State.Health.Status}}", container]

def _compose_base(
    compose: List[str],
    compose_files: List[str],
    project_name: str,
    env_files: Optional[List[str]] = None,
) -> List[str]:
    command = list(compose)
    for path in compose_files:
        command.extend(["-f", path])
    command.extend(["-p", project_name])
    for env_file in env_files or []:
        command.extend(["--env-file", env_file])
    return command

def build_compose_up_command(
    compose_files: List[str],
    project_name: str,
    env_files: Optional[List[str]] = None,
    compose: Optional[List[str]] = None,
) -> List[str]:
    command = _compose_base(compose or ["docker", "compose"], compose_files, project_name, env_files)
    command.extend(["up", "-d"])
    return command

def build_compose_down_command(
    compose_files: List[str],
    project_name: str,
    env_files: Optional[List[str]] = None,
    compose: Optional[List[str]] = None,
) -> List[str]:
    command = _compose_base(compose or ["docker", "compose"], compose_files, project_name, env_files)
    command.append("down")
    return command

def build_compose_logs_command(
    compose_files: List[str],
    project_name: str,
    env_files: Optional[List[str]] = None,
    compose: Optional[List[str]] = None,
    services: Optional[List[str]] = None,
    tail: int = 1000,
) -> List[str]:
    command = _compose_base(compose or ["docker", "compose"], compose_files, project_name, env_files)
    command.extend(["logs", "--no-color", "--tail", str(tail)])
    command.extend(services or [])
    return command

def build_compose_ps_command(
    compose_files: List[str],
    project_name: str,
    service: str,
    env_files: Optional[List[str]] = None,
    compose: Optional[List[str]] = None,
) -> List[str]:
    command = _compose_base(compose or ["docker", "compose"], compose_files, project_name, env_files)
    command.extend(["ps", "-q", service])
    return command
