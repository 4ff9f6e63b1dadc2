from imagepipe.src.docker.client import (
    DockerRuntime,
    compress_archive,
)
from imagepipe.src.docker.commands import (
    build_image_build_command,
    build_tag_command,
    build_save_command,
    build_push_command,
    build_pull_command,
    build_state_inspect_command,
    build_health_inspect_command,
    build_compose_up_command,
    build_compose_down_command,
    build_compose_logs_command,
    build_compose_ps_command,
)
from imagepipe.src.docker.runner import (
    CommandResult,
    ProcessRunner,
)

__all__ = [
    "DockerRuntime",
    "compress_archive",
    "build_image_build_command",
    "build_tag_command",
    "build_save_command",
    "build_push_command",
    "build_pull_command",
    "build_state_inspect_command",
    "build_health_inspect_command",
    "build_compose_up_command",
    "build_compose_down_command",
    "build_compose_logs_command",
    "build_compose_ps_command",
    "CommandResult",
    "ProcessRunner",
]
