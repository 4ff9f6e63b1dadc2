"""Shared fakes for pipeline tests. Nothing here talks to Docker or Redis."""

import os
from collections import defaultdict
from typing import Dict, List, Optional

import pytest

from imagepipe.src.docker.runner import CommandResult
from imagepipe.src.errors import CommandError
from imagepipe.src.models.container import (
    HealthInspection,
    RawHealth,
    RawState,
    StateInspection,
)


class FakeRunner:
    """
    Scripted stand-in for ProcessRunner.

    Responses are matched by argv prefix (longest prefix wins) and consumed
    in order; the last response for a prefix repeats. Unscripted commands
    succeed with empty output.
    """

    def __init__(self):
        self.calls = []
        self._scripts: Dict[tuple, list] = {}

    def script(self, *prefix, exit_code=0, stdout="", stderr="", raises=None, writes=None):
        self._scripts.setdefault(tuple(prefix), []).append(
            {"exit_code": exit_code, "stdout": stdout, "stderr": stderr, "raises": raises, "writes": writes}
        )
        return self

    def execute(self, argv, cwd=None, timeout=None):
        argv = list(argv)
        self.calls.append({"argv": argv, "cwd": cwd, "timeout": timeout})

        response = self._match(argv)
        if response is None:
            return CommandResult(argv=argv, exit_code=0)
        if response["raises"] is not None:
            raise response["raises"]
        if response["writes"] is not None:
            # Simulate `docker save -o <file>`
            path = argv[argv.index("-o") + 1]
            with open(path, "wb") as f:
                f.write(response["writes"])
        return CommandResult(
            argv=argv,
            exit_code=response["exit_code"],
            stdout=response["stdout"],
            stderr=response["stderr"],
        )

    def _match(self, argv) -> Optional[dict]:
        matches = [p for p in self._scripts if tuple(argv[: len(p)]) == p]
        if not matches:
            return None
        responses = self._scripts[max(matches, key=len)]
        return responses.pop(0) if len(responses) > 1 else responses[0]

    def argvs(self) -> List[List[str]]:
        return [call["argv"] for call in self.calls]


class ScriptedInspector:
    """Inspector returning a scripted sequence per container. The last value repeats."""

    def __init__(self, states=None, health=None):
        self.states = {k: list(v) for k, v in (states or {}).items()}
        self.health = {k: list(v) for k, v in (health or {}).items()}
        self.queries = []

    def get_container_state(self, container):
        self.queries.append(("state", container))
        return StateInspection(container=container, state=self._next(self.states, container, RawState.NOT_FOUND))

    def get_container_health(self, container):
        self.queries.append(("health", container))
        return HealthInspection(container=container, health=self._next(self.health, container, RawHealth.NOT_FOUND))

    @staticmethod
    def _next(script, container, default):
        values = script.get(container)
        if not values:
            return default
        return values.pop(0) if len(values) > 1 else values[0]


class RecordingSleep:
    def __init__(self):
        self.calls = []

    def __call__(self, seconds):
        self.calls.append(seconds)


class RecordingRuntime:
    """
    Fake DockerRuntime that records every call as an event tuple.
    `fail_on` maps an operation name to the refs it should fail for
    (None fails every call). `services` maps compose service names to the
    container ids `compose ps` would report.
    """

    def __init__(self, built_ref="registry.local/team/app:1.0", fail_on=None, services=None, logs=""):
        self.built_ref = built_ref
        self.events = []
        self.fail_on = fail_on or {}
        self.services = services or {}
        self.logs = logs
        self.logged_services = None

    def _record(self, operation, *args):
        self.events.append((operation,) + args)
        if operation in self.fail_on:
            refs = self.fail_on[operation]
            if refs is None or args[-1] in refs:
                raise CommandError(["docker", operation] + [str(a) for a in args], 1, "", f"{operation} denied")

    def build_image(self, image):
        self._record("build", image.name)
        return self.built_ref

    def ensure_image(self, image_ref, pull_if_missing=False):
        self._record("ensure", image_ref)

    def tag_image(self, source, target):
        self._record("tag", source, target)

    def push_image(self, image_ref):
        self._record("push", image_ref)

    def save_image(self, image_ref, output_file, compression):
        self._record("save", image_ref, output_file)

    def compose_up(self, env):
        self._record("compose_up", env.project_name)

    def compose_down(self, env):
        self._record("compose_down", env.project_name)

    def compose_logs(self, env, services=None, tail=1000):
        self._record("compose_logs", env.project_name)
        self.logged_services = services
        return self.logs

    def compose_service_containers(self, env, service):
        self._record("compose_ps", service)
        return list(self.services.get(service, []))

    def operations(self):
        return [event[0] for event in self.events]


class FakeRedis:
    """In-memory subset of the redis-py client used by the queue and reporter."""

    def __init__(self):
        self.lists = defaultdict(list)
        self.hashes = defaultdict(dict)

    def lpush(self, name, *values):
        for value in values:
            self.lists[name].insert(0, value)
        return len(self.lists[name])

    def brpop(self, name, timeout=0):
        if not self.lists[name]:
            return None
        return name, self.lists[name].pop()

    def llen(self, name):
        return len(self.lists[name])

    def hset(self, name, key=None, value=None, mapping=None):
        if key is not None:
            self.hashes[name][key] = value
        for k, v in (mapping or {}).items():
            self.hashes[name][k] = v
        return 1

    def hget(self, name, key):
        return self.hashes.get(name, {}).get(key)

    def hgetall(self, name):
        return dict(self.hashes.get(name, {}))


@pytest.fixture
def runner():
    return FakeRunner()


@pytest.fixture
def sleep():
    return RecordingSleep()


@pytest.fixture
def runtime():
    return RecordingRuntime()


@pytest.fixture
def redis_client():
    return FakeRedis()


@pytest.fixture(autouse=True)
def isolated_settings(monkeypatch, tmp_path):
    """Keep a developer's .env or IMAGEPIPE-style env vars out of the tests."""
    from imagepipe.src.config import get_settings

    for key in list(os.environ):
        if key.upper() in {
            "REDIS_URL", "DOCKER_COMMAND", "COMPOSE_COMMAND", "WAIT_INTERVAL_SECONDS",
            "WAIT_MAX_RETRIES", "SINGLE_WAIT_MAX_RETRIES", "TEST_TIMEOUT", "LOG_LEVEL",
        }:
            monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)
    get_settings.cache_clear()
    yield
    get_settings.cache_clear()


@pytest.fixture
def make_poller(sleep):
    """Factory for a ReadinessPoller over a ScriptedInspector and the recording sleep."""
    from imagepipe.src.services.poller import ReadinessPoller

    def factory(states=None, health=None):
        inspector = ScriptedInspector(states=states, health=health)
        return ReadinessPoller(inspector=inspector, sleep=sleep), inspector

    return factory


@pytest.fixture
def make_runtime():
    return RecordingRuntime
