"""
External command execution.
"""

import logging
import os
import subprocess
from typing import List, Mapping, Optional, Sequence

from pydantic import BaseModel

from imagepipe.src.errors import CommandError

logger = logging.getLogger(__name__)

class CommandResult(BaseModel):
    argv: List[str]
    exit_code: int
    stdout: str = ""
    stderr: str = ""

    @property
    def ok(self) -> bool:
        return self.exit_code == 0

    def check(self) -> "CommandResult":
        """Raise CommandError unless the command exited with 0."""
        if not self.ok:
            raise CommandError(self.argv, self.exit_code, self.stdout, self.stderr)
        return self

class ProcessRunner:
    """Runs external commands and captures their output."""

    def __init__(self, env: Optional[Mapping[str, str]] = None):
        self.env = dict(env) if env else None

    def execute(
        self,
        argv: Sequence[str],
        cwd: Optional[str] = None,
        timeout: Optional[int] = None,
    ) -> CommandResult:
        """
        Execute a command and return its exit code and output.
        Launch failures (OSError) and timeouts (subprocess.TimeoutExpired) propagate.
        """
        command = list(argv)
        logger.debug(f"Executing: {' '.join(command)}")

        process_env = None
        if self.env:
            process_env = os.environ.copy()
            process_env.update(self.env)

        completed = subprocess.run(
            command,
            cwd=cwd,
            env=process_env,
            capture_output=True,
            text=True,
            timeout=timeout,
            check=False,
        )
        return CommandResult(
            argv=command,
            exit_code=completed.returncode,
            stdout=completed.stdout or "",
            stderr=completed.stderr or "",
        )
