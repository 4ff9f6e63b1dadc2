"""
Docker runtime handle and image/compose operations.
"""

import bz2
import gzip
import logging
import lzma
import os
import shutil
import tempfile
import zipfile
from pathlib import Path
from typing import List, Optional, Tuple

from imagepipe.src.config import Settings, get_settings
from imagepipe.src.docker.commands import (
    build_version_command,
    build_image_build_command,
    build_tag_command,
    build_save_command,
    build_push_command,
    build_pull_command,
    build_image_inspect_command,
    build_compose_up_command,
    build_compose_down_command,
    build_compose_logs_command,
    build_compose_ps_command,
)
from imagepipe.src.docker.runner import CommandResult, ProcessRunner
from imagepipe.src.errors import PipelineConfigError, RuntimeUnavailableError
from imagepipe.src.models.step import Compression, EnvironmentSpec, ImageSpec

logger = logging.getLogger(__name__)

_OPENERS = {
    Compression.GZIP: gzip.open,
    Compression.BZIP2: bz2.open,
    Compression.XZ: lzma.open,
}

class DockerRuntime:
    """
    Handle on the Docker CLI.

    Acquire once per process with open() (or a `with` block) and release
    with close(). Operations on a closed handle raise RuntimeUnavailableError.
    """

    def __init__(self, runner: Optional[ProcessRunner] = None, settings: Optional[Settings] = None):
        self.runner = runner or ProcessRunner()
        self.settings = settings or get_settings()
        self._open = False

    @property
    def docker(self) -> str:
        return self.settings.docker_command

    @property
    def is_open(self) -> bool:
        return self._open

    def open(self) -> "DockerRuntime":
        """Verify the daemon answers and mark the handle usable."""
        command = build_version_command(self.docker)
        try:
            result = self.runner.execute(command)
        except OSError as e:
            raise RuntimeUnavailableError(f"Failed to run '{self.docker}': {e}") from e

        if not result.ok:
            raise RuntimeUnavailableError(
                f"Docker daemon is not reachable: {result.stderr.strip()}",
                detail=result.stderr,
            )

        self._open = True
        logger.info(f"Connected to Docker server {result.stdout.strip()}")
        return self

    def close(self):
        if self._open:
            logger.info("Closing Docker runtime handle")
        self._open = False

    def __enter__(self) -> "DockerRuntime":
        return self.open()

    def __exit__(self, exc_type, exc, tb):
        self.close()

    def _run(self, command) -> CommandResult:
        if not self._open:
            raise RuntimeUnavailableError("Docker runtime handle is not open")
        return self.runner.execute(command).check()

    # Images

    def build_image(self, image: ImageSpec) -> str:
        """Build an image and return its primary reference."""
        references = image.references()
        command = build_image_build_command(
            references=references,
            context_dir=image.context_dir,
            dockerfile=image.dockerfile,
            build_args=image.build_args,
            labels=image.labels,
            docker=self.docker,
        )
        logger.info(f"Building image {image.name} as {', '.join(references)}")
        self._run(command)
        return references[0]

    def image_exists(self, image_ref: str) -> bool:
        if not self._open:
            raise RuntimeUnavailableError("Docker runtime handle is not open")
        result = self.runner.execute(build_image_inspect_command(image_ref, self.docker))
        return result.ok

    def ensure_image(self, image_ref: str, pull_if_missing: bool = False):
        """Make sure an existing image is available locally."""
        if self.image_exists(image_ref):
            logger.info(f"Using existing image {image_ref}")
            return

        if not pull_if_missing:
            raise PipelineConfigError(
                f"Image '{image_ref}' not found locally and pull_if_missing is disabled",
                reason="image-missing",
            )

        logger.info(f"Pulling image {image_ref}")
        self._run(build_pull_command(image_ref, self.docker))

    def tag_image(self, source: str, target: str):
        if source == target:
            logger.debug(f"Source and target are the same ({source}) - skipping tag")
            return
        logger.info(f"Tagging {source} as {target}")
        self._run(build_tag_command(source, target, self.docker))

    def push_image(self, image_ref: str):
        logger.info(f"Pushing {image_ref}")
        self._run(build_push_command(image_ref, self.docker))

    def save_image(self, image_ref: str, output_file: str, compression: Compression = Compression.NONE):
        """Save an image to an archive, compressing it when requested."""
        output = Path(output_file)
        output.parent.mkdir(parents=True, exist_ok=True)

        if compression is Compression.NONE:
            self._run(build_save_command(image_ref, str(output), self.docker))
            return

        fd, tar_path = tempfile.mkstemp(prefix=f".{output.name}.", suffix=".tar", dir=str(output.parent))
        os.close(fd)
        try:
            self._run(build_save_command(image_ref, tar_path, self.docker))
            compress_archive(tar_path, str(output), compression)
        finally:
            if os.path.exists(tar_path):
                os.remove(tar_path)

    # Compose environments

    def compose_up(self, env: EnvironmentSpec):
        compose_files, env_files = _compose_paths(env)
        command = build_compose_up_command(compose_files, env.project_name, env_files, self.settings.compose_argv)
        logger.info(f"Starting compose project {env.project_name}")
        self._run(command)

    def compose_down(self, env: EnvironmentSpec):
        compose_files, env_files = _compose_paths(env)
        command = build_compose_down_command(compose_files, env.project_name, env_files, self.settings.compose_argv)
        logger.info(f"Stopping compose project {env.project_name}")
        self._run(command)

    def compose_logs(self, env: EnvironmentSpec, services: Optional[List[str]] = None, tail: int = 1000) -> str:
        """Return the combined output of the project's containers."""
        compose_files, env_files = _compose_paths(env)
        command = build_compose_logs_command(
            compose_files,
            env.project_name,
            env_files,
            self.settings.compose_argv,
            services=services,
            tail=tail,
        )
        logger.info(f"Collecting logs for compose project {env.project_name}")
        return self._run(command).stdout

    def compose_service_containers(self, env: EnvironmentSpec, service: str) -> List[str]:
        """Return the ids of the containers running a compose service."""
        compose_files, env_files = _compose_paths(env)
        command = build_compose_ps_command(
            compose_files, env.project_name, service, env_files, self.settings.compose_argv
        )
        result = self._run(command)
        return [line.strip() for line in result.stdout.splitlines() if line.strip()]

def _compose_paths(env: EnvironmentSpec) -> Tuple[List[str], List[str]]:
    # Compose resolves relative paths in the files against the first file's directory
    compose_files = [str(Path(path).resolve()) for path in env.compose_files]
    env_files = [str(Path(path).resolve()) for path in env.env_files]
    return compose_files, env_files

def compress_archive(tar_path: str, output_file: str, compression: Compression):
    """Write a plain tar archive to output_file using the given compression."""
    if compression is Compression.NONE:
        shutil.copyfile(tar_path, output_file)
    elif compression is Compression.ZIP:
        with zipfile.ZipFile(output_file, "w", compression=zipfile.ZIP_DEFLATED) as archive:
            archive.write(tar_path, arcname="image.tar")
    else:
        with open(tar_path, "rb") as source, _OPENERS[compression](output_file, "wb") as target:
            shutil.copyfileobj(source, target)
