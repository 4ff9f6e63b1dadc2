"""
imagepipe - Main entry point.

    python -m imagepipe.src.main [pipeline.yaml]

With a pipeline file, runs it once. Without one, starts the queue worker.
"""

import logging
import sys

from imagepipe.src.config import get_settings
from imagepipe.src.docker.client import DockerRuntime
from imagepipe.src.errors import PipelineError, RuntimeUnavailableError
from imagepipe.src.services.executor import PipelineExecutor
from imagepipe.src.services.pipeline_parser import parse_pipeline_file
from imagepipe.src.worker import run_worker

logger = logging.getLogger(__name__)

def configure_logging(level: str):
    logging.basicConfig(
        level=getattr(logging, level.upper(), logging.INFO),
        format="%(asctime)s - %(name)s - %(levelname)s - %(message)s",
        handlers=[logging.StreamHandler(sys.stdout)]
    )

def run_once(path: str, runtime: DockerRuntime) -> int:
    """Run a single pipeline file and return the process exit code."""
    try:
        spec = parse_pipeline_file(path)
        context = PipelineExecutor(runtime).run(spec)
    except OSError as e:
        logger.error(f"Cannot read pipeline file {path}: {e}")
        return 2
    except PipelineError as e:
        logger.error(f"Pipeline failed: {e}")
        return 1

    return 0 if context.tests_passed else 1

def main(argv=None) -> int:
    """Main entry point."""
    argv = sys.argv[1:] if argv is None else argv
    settings = get_settings()
    configure_logging(settings.log_level)

    logger.info("Starting imagepipe")
    logger.info(f"Docker command: {settings.docker_command}")

    runtime = DockerRuntime(settings=settings)
    try:
        runtime.open()
    except RuntimeUnavailableError as e:
        logger.error(f"Failed to connect to Docker: {e}")
        return 1

    try:
        if argv:
            return run_once(argv[0], runtime)

        logger.info(f"Redis URL: {settings.redis_url}")
        logger.info("Starting worker...")
        run_worker(runtime)
        return 0
    finally:
        runtime.close()

if __name__ == "__main__":
    sys.exit(main())
