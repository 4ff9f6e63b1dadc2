"""
Redis queue for pipeline jobs.
"""

import json
import redis
from typing import Dict, Any, Optional
from datetime import datetime, timezone

from imagepipe.src.config import get_settings
from imagepipe.src.models.pipeline import RunStatus
from imagepipe.src.models.step import PipelineJob
from imagepipe.src.services.status_reporter import PIPELINE_STATUS

PIPELINE_QUEUE = "imagepipe:jobs"

def get_redis_client() -> redis.Redis:
    """Get Redis client."""
    return redis.from_url(get_settings().redis_url, decode_responses=True)

def enqueue_pipeline_run(client, run_id: str, config: Dict[str, Any]):
    """Add pipeline run to processing queue."""
    job = PipelineJob(
        run_id=run_id,
        config=config,
        queued_at=datetime.now(timezone.utc).isoformat(),
    )

    client.lpush(PIPELINE_QUEUE, job.model_dump_json())
    client.hset(PIPELINE_STATUS, run_id, RunStatus.QUEUED.value)

def dequeue_pipeline_run(client, timeout: int = 5) -> Optional[Dict[str, Any]]:
    """
    Get next pipeline run from queue.
    Blocks for `timeout` seconds if queue is empty.
    """
    result = client.brpop(PIPELINE_QUEUE, timeout=timeout)
    if result:
        _, job_data = result
        return json.loads(job_data)
    return None

def get_run_status(client, run_id: str) -> Optional[str]:
    """Get pipeline run status."""
    return client.hget(PIPELINE_STATUS, run_id)

def get_queue_length(client) -> int:
    """Get number of jobs in queue."""
    return client.llen(PIPELINE_QUEUE)
