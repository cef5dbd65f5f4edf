import bluegreen.services.health as health_module
from bluegreen.models import ContainerInstance, HealthState, HealthVerdict, Role
from bluegreen.services.health import HealthMonitor


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None

    def error(self, *_args, **_kwargs):
        return None


class ScriptedRuntime:
    def __init__(self, states):
        self.states = list(states)
        self.polls = 0

    def inspect_health(self, _name):
        self.polls += 1
        return self.states.pop(0) if len(self.states) > 1 else self.states[0]


def _instance():
    return ContainerInstance(name="app-container-1", role=Role.STAGING, port=3001)


def test_await_healthy_returns_once_healthy(monkeypatch):
    sleeps = []
    monkeypatch.setattr(health_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    runtime = ScriptedRuntime([HealthState.STARTING, HealthState.UNKNOWN, HealthState.HEALTHY])
    instance = _instance()

    verdict = HealthMonitor(runtime, DummyLogger()).await_healthy(instance, poll_interval=2.0, max_attempts=30)

    assert verdict == HealthVerdict.HEALTHY
    assert runtime.polls == 3
    assert sleeps == [2.0, 2.0]
    assert instance.health == HealthState.HEALTHY


def test_await_healthy_fails_fast_on_unhealthy(monkeypatch):
    monkeypatch.setattr(health_module.time, "sleep", lambda *_args: None)
    runtime = ScriptedRuntime([HealthState.STARTING, HealthState.UNHEALTHY])

    verdict = HealthMonitor(runtime, DummyLogger()).await_healthy(_instance(), max_attempts=10)

    assert verdict == HealthVerdict.UNHEALTHY
    assert runtime.polls == 2


def test_await_healthy_times_out_without_trailing_sleep(monkeypatch):
    sleeps = []
    monkeypatch.setattr(health_module.time, "sleep", lambda seconds: sleeps.append(seconds))
    runtime = ScriptedRuntime([HealthState.STARTING])

    verdict = HealthMonitor(runtime, DummyLogger()).await_healthy(_instance(), poll_interval=1.0, max_attempts=4)

    assert verdict == HealthVerdict.TIMEOUT
    assert runtime.polls == 4
    assert len(sleeps) == 3


def test_await_healthy_calls_checkpoint_each_poll(monkeypatch):
    monkeypatch.setattr(health_module.time, "sleep", lambda *_args: None)
    calls = []
    runtime = ScriptedRuntime([HealthState.STARTING, HealthState.HEALTHY])
    monitor = HealthMonitor(runtime, DummyLogger(), checkpoint=lambda: calls.append(1))

    monitor.await_healthy(_instance())

    assert len(calls) == 2
