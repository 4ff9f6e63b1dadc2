"""
Report pipeline run and stage status.
"""

import logging
from datetime import datetime, timezone
from typing import Optional

from imagepipe.src.errors import PipelineError
from imagepipe.src.models.pipeline import PipelineStage, RunStatus

logger = logging.getLogger(__name__)

PIPELINE_STATUS = "imagepipe:status"
RUN_KEY_PREFIX = "imagepipe:run:"

def run_key(run_id: str) -> str:
    return f"{RUN_KEY_PREFIX}{run_id}"

class StatusReporter:
    """Receives run progress notifications. The base class ignores them."""

    def stage_changed(self, run_id: str, stage: PipelineStage):
        pass

    def run_finished(self, run_id: str, status: RunStatus, error: Optional[PipelineError] = None):
        pass

class RedisStatusReporter(StatusReporter):
    """Records run status and the current stage in Redis hashes."""

    def __init__(self, client):
        self.client = client

    def stage_changed(self, run_id: str, stage: PipelineStage):
        values = {
            "stage": stage.value,
            "updated_at": datetime.now(timezone.utc).isoformat(),
        }
        if stage is PipelineStage.BUILDING:
            self.client.hset(PIPELINE_STATUS, run_id, RunStatus.RUNNING.value)
            values["started_at"] = values["updated_at"]

        self.client.hset(run_key(run_id), mapping=values)
        logger.debug(f"Run {run_id} entered stage {stage.value}")

    def run_finished(self, run_id: str, status: RunStatus, error: Optional[PipelineError] = None):
        now = datetime.now(timezone.utc).isoformat()
        values = {"status": status.value, "finished_at": now, "updated_at": now}
        if error is not None:
            values.update({k: v for k, v in error.to_dict().items() if v is not None})

        self.client.hset(PIPELINE_STATUS, run_id, status.value)
        self.client.hset(run_key(run_id), mapping=values)
        logger.info(f"Updated run {run_id} status to {status.value}")

def get_run_details(client, run_id: str) -> dict:
    """Get the recorded stage and error details for a run."""
    return client.hgetall(run_key(run_id)) or {}
