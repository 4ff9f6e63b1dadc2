"""
Pipeline executor - runs one pipeline on the local Docker runtime.

Idle -> Building -> [Upping -> WaitingReady] -> Testing -> Succeeding | Failing -> Completed
"""

import logging
import subprocess
import time
from pathlib import Path
from typing import Dict, Optional

from imagepipe.src.config import get_settings
from imagepipe.src.docker.runner import ProcessRunner
from imagepipe.src.errors import (
    CommandError,
    HookError,
    PipelineConfigError,
    PipelineError,
    ReadinessError,
    TestHarnessError,
)
from imagepipe.src.models.container import Disposition, FailureReason, PollOutcome
from imagepipe.src.models.pipeline import PipelineContext, PipelineStage, RunStatus, TestOutcome
from imagepipe.src.models.step import EnvironmentSpec, FailureStepSpec, Hook, PipelineSpec, TestStepSpec
from imagepipe.src.services.operations import (
    PublishOperationExecutor,
    SaveOperationExecutor,
    TagOperationExecutor,
)
from imagepipe.src.services.poller import ReadinessPoller
from imagepipe.src.services.status_reporter import StatusReporter

logger = logging.getLogger(__name__)

class PipelineExecutor:
    """
    Sequences the steps of a single pipeline run.

    The runtime handle is owned by the caller; the executor only uses it.
    One executor may run many pipelines one after another, each with its
    own PipelineContext.
    """

    def __init__(
        self,
        runtime,
        runner: Optional[ProcessRunner] = None,
        poller: Optional[ReadinessPoller] = None,
        tag_executor: Optional[TagOperationExecutor] = None,
        save_executor: Optional[SaveOperationExecutor] = None,
        publish_executor: Optional[PublishOperationExecutor] = None,
        reporter: Optional[StatusReporter] = None,
    ):
        self.runtime = runtime
        self.runner = runner or ProcessRunner()
        self.poller = poller or ReadinessPoller()
        self.tag_executor = tag_executor or TagOperationExecutor()
        self.save_executor = save_executor or SaveOperationExecutor()
        self.publish_executor = publish_executor or PublishOperationExecutor()
        self.reporter = reporter or StatusReporter()

    def run(self, spec: PipelineSpec, run_id: Optional[str] = None) -> PipelineContext:
        """
        Execute a pipeline run and return its final context.

        A failed test is a normal outcome: the failure branch runs and the
        context comes back with test_result FAILED. Anything else that stops
        the run raises a PipelineError carrying the stage it failed in and
        the context as it stood.
        """
        run_id = run_id or spec.name
        context = PipelineContext(pipeline_name=spec.name)

        logger.info(f"Starting pipeline run {run_id} ({spec.name})")

        try:
            self.build(spec, context, run_id)
            self.verify(spec, context, run_id)

            if context.tests_passed:
                self.succeed(spec, context, run_id)
            else:
                self.fail(spec, context, run_id)

        except PipelineError as e:
            self._finish_with_error(e, context, run_id)
            raise
        except CommandError as e:
            error = PipelineError(str(e), reason="command", detail=e.stderr)
            self._finish_with_error(error, context, run_id)
            raise error from e
        except Exception as e:
            error = PipelineError(f"Unexpected error: {e}", detail=repr(e))
            self._finish_with_error(error, context, run_id)
            raise error from e

        self._enter(context, PipelineStage.COMPLETED, run_id)
        status = RunStatus.SUCCEEDED if context.tests_passed else RunStatus.FAILED
        self.reporter.run_finished(run_id, status)

        logger.info(f"Pipeline run {run_id} finished with status: {status.value}")
        return context

    # Steps

    def build(self, spec: PipelineSpec, context: PipelineContext, run_id: str):
        self._enter(context, PipelineStage.BUILDING, run_id)

        image = spec.build.image
        if image is None:
            raise PipelineConfigError(f"Pipeline '{spec.name}' has no image to build")

        self._run_hook(spec.build.before_build, "before_build")

        if image.source_ref:
            logger.info(f"Using existing image {image.source_ref}")
            self.runtime.ensure_image(image.source_ref, pull_if_missing=image.pull_if_missing)
            built_image = image.source_ref
        else:
            built_image = self.runtime.build_image(image)

        self._run_hook(spec.build.after_build, "after_build")

        context.record_built_image(built_image)
        logger.info(f"Built image: {built_image}")

    def verify(self, spec: PipelineSpec, context: PipelineContext, run_id: str):
        """Bring the environment up, wait for it, run the tests, tear it down."""
        environment = spec.environment
        if environment is None:
            self.run_tests(spec.test, context, run_id)
            return

        succeeded = False
        try:
            self._enter(context, PipelineStage.UPPING, run_id)
            self.runtime.compose_up(environment)

            self._enter(context, PipelineStage.WAITING_READY, run_id)
            self.wait_until_ready(environment)

            self.run_tests(spec.test, context, run_id)
            succeeded = context.tests_passed
        finally:
            if not succeeded and spec.on_failure is not None and spec.on_failure.save_failure_logs_dir:
                self.save_failure_logs(environment, spec.on_failure)
            if succeeded or not spec.keep_environment_on_failure:
                self.teardown(environment)
            else:
                logger.warning(f"Keeping environment {environment.project_name} for inspection")

    def wait_until_ready(self, environment: EnvironmentSpec):
        targets = dict(environment.targets)
        targets.update(self.resolve_services(environment))
        if not targets:
            logger.info("No readiness targets declared")
            return

        outcome = self.poller.wait(
            targets,
            interval_seconds=environment.interval_seconds,
            max_retries=environment.max_retries,
        )
        if not outcome.success:
            raise ReadinessError(outcome)

    def resolve_services(self, environment: EnvironmentSpec) -> Dict[str, Disposition]:
        """Map compose service names to the containers running them."""
        resolved = {}
        for service, disposition in environment.services.items():
            containers = self.runtime.compose_service_containers(environment, service)
            if not containers:
                raise ReadinessError(
                    PollOutcome.failed(FailureReason.ERROR, service, "no running container for service")
                )
            logger.info(f"Service {service} runs in {', '.join(containers)}")
            for container in containers:
                resolved[container] = disposition
        return resolved

    def run_tests(self, test: TestStepSpec, context: PipelineContext, run_id: str):
        self._enter(context, PipelineStage.TESTING, run_id)
        timeout = test.timeout or get_settings().test_timeout

        self._run_hook(test.before_test, "before_test")

        logger.info(f"Running tests: {' '.join(test.command)}")
        try:
            result = self.runner.execute(test.command, cwd=test.working_dir, timeout=timeout)
        except subprocess.TimeoutExpired as e:
            raise TestHarnessError(
                f"Test command timed out after {timeout}s", reason="timeout", detail=str(e)
            ) from e
        except OSError as e:
            raise TestHarnessError(
                f"Failed to start test command: {e}", reason="harness", detail=str(e)
            ) from e

        if result.ok:
            context.record_test_result(TestOutcome.PASSED)
            logger.info("Tests passed")
        else:
            context.record_test_result(TestOutcome.FAILED)
            logger.error(f"Tests failed with exit code {result.exit_code}")

        self._run_hook(test.after_test, "after_test")

    def save_failure_logs(self, environment: EnvironmentSpec, on_failure: FailureStepSpec):
        """Write the environment's container logs to the configured directory. Errors are only logged."""
        log_dir = Path(on_failure.save_failure_logs_dir)
        log_file = log_dir / f"failure-logs-{int(time.time() * 1000)}.log"
        try:
            output = self.runtime.compose_logs(environment, services=on_failure.include_services or None)
            log_dir.mkdir(parents=True, exist_ok=True)
            log_file.write_text(output)
        except Exception as e:
            logger.error(f"Failed to save logs for environment {environment.project_name}: {e}")
            return
        logger.info(f"Saved environment logs to {log_file}")

    def teardown(self, environment: EnvironmentSpec):
        try:
            self.runtime.compose_down(environment)
        except Exception as e:
            logger.error(f"Failed to tear down environment {environment.project_name}: {e}")

    def succeed(self, spec: PipelineSpec, context: PipelineContext, run_id: str):
        self._enter(context, PipelineStage.SUCCEEDING, run_id)
        on_success = spec.on_success
        if on_success is None:
            return

        # Fixed order: tag, save, publish, hook. Nothing is rolled back.
        if on_success.additional_tags:
            self.tag_executor.execute(on_success.additional_tags, context.built_image, self.runtime)
            context.add_applied_tags(on_success.additional_tags)

        if on_success.save is not None:
            self.save_executor.execute(on_success.save, context.built_image, self.runtime)

        if on_success.publish is not None:
            self.publish_executor.execute(on_success.publish, context.built_image, self.runtime)

        self._run_hook(on_success.after_success, "after_success")

    def fail(self, spec: PipelineSpec, context: PipelineContext, run_id: str):
        self._enter(context, PipelineStage.FAILING, run_id)
        if spec.on_failure is not None:
            self._run_hook(spec.on_failure.after_failure, "after_failure")

    # Helpers

    def _enter(self, context: PipelineContext, stage: PipelineStage, run_id: str):
        context.stage = stage
        logger.info(f"Run {run_id}: {stage.value}")
        self.reporter.stage_changed(run_id, stage)

    def _run_hook(self, hook: Optional[Hook], name: str):
        if hook is None:
            return
        logger.info(f"Running {name} hook")
        try:
            hook()
        except Exception as e:
            raise HookError(name, e) from e

    def _finish_with_error(self, error: PipelineError, context: PipelineContext, run_id: str):
        if error.stage is None:
            error.stage = context.stage.value
        error.context = context
        logger.error(f"Pipeline run {run_id} failed in stage {error.stage}: {error.message}")
        self.reporter.run_finished(run_id, RunStatus.FAILED, error)
