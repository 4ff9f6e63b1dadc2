"""Tests for the pipeline executor."""

import subprocess

import pytest

from imagepipe.src.errors import (
    HookError,
    OperationError,
    PipelineConfigError,
    PipelineError,
    ReadinessError,
    TestHarnessError,
)
from imagepipe.src.docker.client import DockerRuntime
from imagepipe.src.models.container import Disposition, FailureReason, RawHealth, RawState
from imagepipe.src.models.pipeline import PipelineStage, RunStatus, TestOutcome
from imagepipe.src.models.step import (
    BuildStepSpec,
    EnvironmentSpec,
    FailureStepSpec,
    ImageSpec,
    PipelineSpec,
    PublishSpec,
    PublishTarget,
    SaveSpec,
    SuccessStepSpec,
    TestStepSpec,
)
from imagepipe.src.services.executor import PipelineExecutor
from imagepipe.src.services.status_reporter import StatusReporter

IMAGE = ImageSpec(name="app", registry="registry.local", namespace="team", image_name="app", tags=["1.0"])
ENVIRONMENT = EnvironmentSpec(
    compose_files=["deploy/compose.yml"],
    project_name="it",
    targets={"web": Disposition.RUNNING},
    interval_seconds=1,
    max_retries=3,
)


class RecordingReporter(StatusReporter):
    def __init__(self):
        self.stages = []
        self.finished = []

    def stage_changed(self, run_id, stage):
        self.stages.append(stage)

    def run_finished(self, run_id, status, error=None):
        self.finished.append((status, error))


def make_spec(**overrides):
    values = {
        "name": "app-pipeline",
        "build": BuildStepSpec(image=IMAGE),
        "test": TestStepSpec(command=["pytest", "-q"]),
    }
    values.update(overrides)
    return PipelineSpec(**values)


def make_executor(runtime, runner, poller=None, reporter=None):
    return PipelineExecutor(runtime, runner=runner, poller=poller, reporter=reporter or RecordingReporter())


def release_spec(runtime):
    return SuccessStepSpec(
        additional_tags=["latest"],
        save=SaveSpec(output_file="out/app.tar.gz", compression="gzip"),
        publish=PublishSpec(targets=[PublishTarget(name="hub", registry="docker.io", namespace="acme")]),
        after_success=lambda: runtime.events.append(("after_success",)),
    )


def test_passing_run_takes_success_path(runtime, runner):
    reporter = RecordingReporter()
    spec = make_spec(on_success=release_spec(runtime))

    context = make_executor(runtime, runner, reporter=reporter).run(spec, run_id="run-1")

    assert context.stage is PipelineStage.COMPLETED
    assert context.test_result is TestOutcome.PASSED
    assert context.built_image == "registry.local/team/app:1.0"
    assert context.applied_tags == ["latest"]
    assert reporter.stages == [
        PipelineStage.BUILDING,
        PipelineStage.TESTING,
        PipelineStage.SUCCEEDING,
        PipelineStage.COMPLETED,
    ]
    assert reporter.finished == [(RunStatus.SUCCEEDED, None)]


def test_success_operations_run_in_fixed_order(runtime, runner):
    spec = make_spec(on_success=release_spec(runtime))

    make_executor(runtime, runner).run(spec)

    assert runtime.operations() == ["build", "tag", "save", "tag", "push", "after_success"]


def test_failed_tests_take_failure_path_only(runtime, runner):
    runner.script("pytest", exit_code=1, stdout="1 failed")
    hook_calls = []
    reporter = RecordingReporter()
    spec = make_spec(
        on_success=release_spec(runtime),
        on_failure=FailureStepSpec(after_failure=lambda: hook_calls.append("after_failure")),
    )

    context = make_executor(runtime, runner, reporter=reporter).run(spec)

    assert context.test_result is TestOutcome.FAILED
    assert context.applied_tags == []
    assert hook_calls == ["after_failure"]
    assert runtime.operations() == ["build"]
    assert PipelineStage.SUCCEEDING not in reporter.stages
    assert PipelineStage.FAILING in reporter.stages
    assert reporter.finished == [(RunStatus.FAILED, None)]


@pytest.mark.parametrize("exit_code, branch", [(0, "success"), (2, "failure")])
def test_exactly_one_branch_runs(runtime, runner, exit_code, branch):
    runner.script("pytest", exit_code=exit_code)
    calls = []
    spec = make_spec(
        on_success=SuccessStepSpec(after_success=lambda: calls.append("success")),
        on_failure=FailureStepSpec(after_failure=lambda: calls.append("failure")),
    )

    make_executor(runtime, runner).run(spec)

    assert calls == [branch]


def test_environment_is_started_waited_and_torn_down(runtime, runner, make_poller):
    poller, inspector = make_poller(states={"web": [RawState.CREATED, RawState.RUNNING]})
    reporter = RecordingReporter()

    context = make_executor(runtime, runner, poller=poller, reporter=reporter).run(
        make_spec(environment=ENVIRONMENT)
    )

    assert context.tests_passed
    assert runtime.operations() == ["build", "compose_up", "compose_down"]
    assert len(inspector.queries) == 2
    assert reporter.stages[:4] == [
        PipelineStage.BUILDING,
        PipelineStage.UPPING,
        PipelineStage.WAITING_READY,
        PipelineStage.TESTING,
    ]


def test_readiness_failure_never_runs_tests(runtime, runner, make_poller):
    poller, _ = make_poller(states={"web": [RawState.EXITED]})
    reporter = RecordingReporter()

    with pytest.raises(ReadinessError) as exc_info:
        make_executor(runtime, runner, poller=poller, reporter=reporter).run(make_spec(environment=ENVIRONMENT))

    error = exc_info.value
    assert error.reason == FailureReason.FAILED.value
    assert error.container == "web"
    assert error.stage == PipelineStage.WAITING_READY.value
    assert error.context.test_result is TestOutcome.NOT_RUN
    assert runner.calls == []
    assert runtime.operations() == ["build", "compose_up", "compose_down"]
    assert reporter.finished[0][0] is RunStatus.FAILED


def test_environment_kept_on_failure_when_requested(runtime, runner, make_poller):
    runner.script("pytest", exit_code=1)
    poller, _ = make_poller(states={"web": [RawState.RUNNING]})
    spec = make_spec(environment=ENVIRONMENT, keep_environment_on_failure=True)

    make_executor(runtime, runner, poller=poller).run(spec)

    assert "compose_down" not in runtime.operations()


def test_teardown_failure_does_not_fail_run(make_runtime, runner, make_poller):
    runtime = make_runtime(fail_on={"compose_down": None})
    poller, _ = make_poller(states={"web": [RawState.RUNNING]})

    context = make_executor(runtime, runner, poller=poller).run(make_spec(environment=ENVIRONMENT))

    assert context.tests_passed


def test_missing_image_is_config_error(runtime, runner):
    spec = make_spec(build=BuildStepSpec())

    with pytest.raises(PipelineConfigError) as exc_info:
        make_executor(runtime, runner).run(spec)

    assert exc_info.value.stage == PipelineStage.BUILDING.value
    assert runtime.events == []


def test_source_ref_uses_existing_image(runtime, runner):
    spec = make_spec(build=BuildStepSpec(image=ImageSpec(name="base", source_ref="alpine:3.19")))

    context = make_executor(runtime, runner).run(spec)

    assert context.built_image == "alpine:3.19"
    assert runtime.events == [("ensure", "alpine:3.19")]


def test_build_hooks_surround_build(runtime, runner):
    spec = make_spec(
        build=BuildStepSpec(
            image=IMAGE,
            before_build=lambda: runtime.events.append(("before_build",)),
            after_build=lambda: runtime.events.append(("after_build",)),
        )
    )

    make_executor(runtime, runner).run(spec)

    assert runtime.operations()[:3] == ["before_build", "build", "after_build"]


def test_failing_hook_aborts_run(runtime, runner):
    def broken():
        raise RuntimeError("lint failed")

    spec = make_spec(build=BuildStepSpec(image=IMAGE, before_build=broken))

    with pytest.raises(HookError, match="before_build") as exc_info:
        make_executor(runtime, runner).run(spec)

    assert exc_info.value.context.built_image is None
    assert runtime.events == []


def test_build_failure_is_pipeline_error(make_runtime, runner):
    runtime = make_runtime(fail_on={"build": None})

    with pytest.raises(PipelineError) as exc_info:
        make_executor(runtime, runner).run(make_spec())

    assert exc_info.value.reason == "command"
    assert exc_info.value.stage == PipelineStage.BUILDING.value


def test_success_failure_keeps_earlier_side_effects(make_runtime, runner):
    runtime = make_runtime(fail_on={"save": None})
    spec = make_spec(on_success=release_spec(runtime))

    with pytest.raises(OperationError) as exc_info:
        make_executor(runtime, runner).run(spec)

    assert runtime.operations() == ["build", "tag", "save"]
    assert exc_info.value.context.applied_tags == ["latest"]
    assert exc_info.value.stage == PipelineStage.SUCCEEDING.value


def test_test_harness_errors_are_fatal(runtime, runner):
    runner.script("pytest", raises=FileNotFoundError("pytest"))

    with pytest.raises(TestHarnessError):
        make_executor(runtime, runner).run(make_spec())


def test_test_timeout_is_harness_error(runtime, runner):
    runner.script("pytest", raises=subprocess.TimeoutExpired(["pytest"], 5))

    with pytest.raises(TestHarnessError) as exc_info:
        make_executor(runtime, runner).run(make_spec(test=TestStepSpec(command=["pytest"], timeout=5)))

    assert exc_info.value.reason == "timeout"
    assert runner.calls[0]["timeout"] == 5


def test_test_timeout_defaults_to_settings(runtime, runner):
    make_executor(runtime, runner).run(make_spec())

    assert runner.calls[0]["timeout"] == 600


def test_test_hooks_surround_test_command(runtime, runner):
    seen = []
    spec = make_spec(
        test=TestStepSpec(
            command=["pytest", "-q"],
            before_test=lambda: seen.append(("before_test", len(runner.calls))),
            after_test=lambda: seen.append(("after_test", len(runner.calls))),
        )
    )

    make_executor(runtime, runner).run(spec)

    assert seen == [("before_test", 0), ("after_test", 1)]


def test_after_test_hook_runs_when_tests_fail(runtime, runner):
    runner.script("pytest", exit_code=1)
    seen = []
    spec = make_spec(test=TestStepSpec(command=["pytest"], after_test=lambda: seen.append("after_test")))

    context = make_executor(runtime, runner).run(spec)

    assert context.test_result is TestOutcome.FAILED
    assert seen == ["after_test"]


def test_failing_before_test_hook_skips_tests(runtime, runner):
    def broken():
        raise RuntimeError("fixtures missing")

    spec = make_spec(test=TestStepSpec(command=["pytest"], before_test=broken))

    with pytest.raises(HookError, match="before_test") as exc_info:
        make_executor(runtime, runner).run(spec)

    assert exc_info.value.stage == PipelineStage.TESTING.value
    assert exc_info.value.context.test_result is TestOutcome.NOT_RUN
    assert runner.calls == []


def test_failure_logs_saved_before_teardown(make_runtime, runner, make_poller, tmp_path):
    runtime = make_runtime(logs="web  | Traceback: boom\n")
    runner.script("pytest", exit_code=1)
    poller, _ = make_poller(states={"web": [RawState.RUNNING]})
    spec = make_spec(
        environment=ENVIRONMENT,
        on_failure=FailureStepSpec(save_failure_logs_dir="reports/logs", include_services=["web"]),
    )

    context = make_executor(runtime, runner, poller=poller).run(spec)

    assert context.test_result is TestOutcome.FAILED
    assert runtime.operations() == ["build", "compose_up", "compose_logs", "compose_down"]
    assert runtime.logged_services == ["web"]
    saved = list((tmp_path / "reports" / "logs").glob("failure-logs-*.log"))
    assert len(saved) == 1
    assert saved[0].read_text() == "web  | Traceback: boom\n"


def test_failure_logs_saved_when_readiness_fails(runtime, runner, make_poller):
    poller, _ = make_poller(states={"web": [RawState.DEAD]})
    spec = make_spec(environment=ENVIRONMENT, on_failure=FailureStepSpec(save_failure_logs_dir="logs"))

    with pytest.raises(ReadinessError):
        make_executor(runtime, runner, poller=poller).run(spec)

    assert runtime.operations() == ["build", "compose_up", "compose_logs", "compose_down"]
    assert runtime.logged_services is None


def test_no_failure_logs_when_tests_pass(runtime, runner, make_poller, tmp_path):
    poller, _ = make_poller(states={"web": [RawState.RUNNING]})
    spec = make_spec(environment=ENVIRONMENT, on_failure=FailureStepSpec(save_failure_logs_dir="logs"))

    make_executor(runtime, runner, poller=poller).run(spec)

    assert "compose_logs" not in runtime.operations()
    assert not (tmp_path / "logs").exists()


def test_failure_log_errors_do_not_fail_run(make_runtime, runner, make_poller):
    runtime = make_runtime(fail_on={"compose_logs": None})
    runner.script("pytest", exit_code=1)
    poller, _ = make_poller(states={"web": [RawState.RUNNING]})
    spec = make_spec(environment=ENVIRONMENT, on_failure=FailureStepSpec(save_failure_logs_dir="logs"))

    context = make_executor(runtime, runner, poller=poller).run(spec)

    assert context.test_result is TestOutcome.FAILED
    assert runtime.operations()[-1] == "compose_down"


def test_services_are_resolved_to_containers(make_runtime, runner, make_poller):
    runtime = make_runtime(services={"db": ["3f2a", "9c1b"]})
    poller, inspector = make_poller(health={"3f2a": [RawHealth.HEALTHY], "9c1b": [RawHealth.HEALTHY]})
    environment = EnvironmentSpec(
        compose_files=["compose.yml"],
        project_name="it",
        services={"db": Disposition.HEALTHY},
        interval_seconds=1,
        max_retries=3,
    )

    context = make_executor(runtime, runner, poller=poller).run(make_spec(environment=environment))

    assert context.tests_passed
    assert ("compose_ps", "db") in runtime.events
    assert {container for _, container in inspector.queries} == {"3f2a", "9c1b"}


def test_service_without_container_fails_readiness(runtime, runner, make_poller):
    poller, inspector = make_poller()
    environment = EnvironmentSpec(
        compose_files=["compose.yml"],
        project_name="it",
        services={"db": Disposition.RUNNING},
    )

    with pytest.raises(ReadinessError) as exc_info:
        make_executor(runtime, runner, poller=poller).run(make_spec(environment=environment))

    assert exc_info.value.container == "db"
    assert exc_info.value.reason == FailureReason.ERROR.value
    assert exc_info.value.stage == PipelineStage.WAITING_READY.value
    assert inspector.queries == []
    assert runner.calls == []
    assert runtime.operations()[-1] == "compose_down"


def test_missing_existing_image_reports_reason(runner):
    runner.script("docker", "image", "inspect", exit_code=1, stderr="No such image: alpine:3.19")
    spec = make_spec(build=BuildStepSpec(image=ImageSpec(name="base", source_ref="alpine:3.19")))

    with DockerRuntime(runner=runner) as runtime:
        with pytest.raises(PipelineConfigError) as exc_info:
            make_executor(runtime, runner).run(spec)

    assert exc_info.value.reason == "image-missing"
    assert exc_info.value.stage == PipelineStage.BUILDING.value
    assert ["docker", "pull", "alpine:3.19"] not in runner.argvs()
