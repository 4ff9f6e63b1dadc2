"""
Queue worker - pulls pipeline jobs from Redis and runs them one at a time.
"""

import logging
import time
from typing import Optional, Dict, Any

from pydantic import ValidationError

from imagepipe.src.docker.runner import ProcessRunner
from imagepipe.src.errors import PipelineConfigError, PipelineError
from imagepipe.src.models.pipeline import RunStatus
from imagepipe.src.models.step import PipelineJob
from imagepipe.src.services.executor import PipelineExecutor
from imagepipe.src.services.pipeline_parser import parse_pipeline_dict
from imagepipe.src.services.queue import dequeue_pipeline_run, get_redis_client
from imagepipe.src.services.status_reporter import RedisStatusReporter

logger = logging.getLogger(__name__)

def load_job(job: Dict[str, Any]) -> PipelineJob:
    """Validate a job as it came off the queue."""
    try:
        return PipelineJob.model_validate(job)
    except ValidationError as e:
        fields = ", ".join(".".join(str(part) for part in error["loc"]) for error in e.errors())
        raise PipelineConfigError(f"Malformed pipeline job: invalid {fields}", detail=str(e))

def process_job(job: Dict[str, Any], runtime, client, runner: Optional[ProcessRunner] = None) -> bool:
    """
    Run one queued pipeline job.
    Returns True if the pipeline completed with passing tests.
    """
    run_id = str(job.get("run_id") or "unknown")
    reporter = RedisStatusReporter(client)

    try:
        pipeline_job = load_job(job)
        run_id = pipeline_job.run_id
        spec = parse_pipeline_dict(pipeline_job.config, runner)
    except PipelineConfigError as e:
        logger.error(f"Rejected pipeline run {run_id}: {e}")
        reporter.run_finished(run_id, RunStatus.FAILED, e)
        return False

    executor = PipelineExecutor(runtime, runner=runner, reporter=reporter)
    try:
        context = executor.run(spec, run_id=run_id)
    except PipelineError as e:
        logger.error(f"Pipeline run {run_id} failed: {e}")
        return False

    return context.tests_passed

def worker_loop(
    runtime,
    client=None,
    runner: Optional[ProcessRunner] = None,
    max_jobs: Optional[int] = None,
    timeout: int = 5,
):
    """Main worker loop. Stops after `max_jobs` jobs when given."""
    client = client or get_redis_client()
    processed = 0
    logger.info("Worker started, waiting for jobs...")

    while max_jobs is None or processed < max_jobs:
        try:
            job = dequeue_pipeline_run(client, timeout=timeout)

            if job:
                run_id = job.get("run_id", "unknown")
                logger.info(f"Received job for run {run_id}")
                processed += 1

                try:
                    process_job(job, runtime, client, runner)
                except Exception as e:
                    logger.exception(f"Failed to execute pipeline {run_id}: {e}")

        except KeyboardInterrupt:
            logger.info("Worker shutting down...")
            break
        except Exception as e:
            logger.exception(f"Worker error: {e}")
            time.sleep(5)

def run_worker(runtime):
    """Entry point for worker."""
    worker_loop(runtime)
