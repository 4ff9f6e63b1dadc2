from imagepipe.src.services.executor import PipelineExecutor
from imagepipe.src.services.inspector import DispositionInspector
from imagepipe.src.services.operations import (
    TagOperationExecutor,
    SaveOperationExecutor,
    PublishOperationExecutor,
)
from imagepipe.src.services.pipeline_parser import (
    parse_pipeline_config,
    parse_pipeline_dict,
    parse_pipeline_file,
)
from imagepipe.src.services.poller import ReadinessPoller
from imagepipe.src.services.status_reporter import (
    StatusReporter,
    RedisStatusReporter,
    get_run_details,
)

__all__ = [
    "PipelineExecutor",
    "DispositionInspector",
    "TagOperationExecutor",
    "SaveOperationExecutor",
    "PublishOperationExecutor",
    "parse_pipeline_config",
    "parse_pipeline_dict",
    "parse_pipeline_file",
    "ReadinessPoller",
    "StatusReporter",
    "RedisStatusReporter",
    "get_run_details",
]
