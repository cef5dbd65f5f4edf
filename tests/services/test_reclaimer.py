import pytest

from bluegreen.errors import CleanupFailure, RuntimeClientError
from bluegreen.models import ContainerInstance, Role
from bluegreen.services.reclaimer import ResourceReclaimer


class DummyLogger:
    def info(self, *_args, **_kwargs):
        return None

    def debug(self, *_args, **_kwargs):
        return None

    def warning(self, *_args, **_kwargs):
        return None


class StubRuntime:
    def __init__(self, instances, failing_removals=(), prune_error=False):
        self.instances = instances
        self.failing_removals = set(failing_removals)
        self.prune_error = prune_error
        self.removed = []
        self.volume_prunes = 0

    def list_by_name_prefix(self, _prefix):
        return list(self.instances)

    def remove(self, name, force=False):
        if name in self.failing_removals:
            raise RuntimeClientError("removal in progress")
        self.removed.append(name)

    def prune_images(self, _hours):
        if self.prune_error:
            raise RuntimeClientError("daemon busy")
        return 1

    def prune_volumes(self):
        self.volume_prunes += 1
        return 0


def _stopped(number):
    return ContainerInstance(name=f"app-container-{number}", role=Role.STAGING, port=3001, state="exited")


def test_reclaim_keeps_newest_stopped_releases():
    runtime = StubRuntime([_stopped(n) for n in (10, 40, 20, 30)])

    ResourceReclaimer(runtime, DummyLogger(), "app-container", 80).reclaim(retention_count=2)

    assert runtime.removed == ["app-container-20", "app-container-10"]
    assert runtime.volume_prunes == 0


def test_reclaim_never_removes_production_or_running_containers():
    instances = [
        ContainerInstance(name="app-container", role=Role.PRODUCTION, port=80, state="exited"),
        ContainerInstance(name="app-container-5", role=Role.STAGING, port=80, state="exited"),
        ContainerInstance(name="app-container-4", role=Role.STAGING, port=3001, state="running"),
        _stopped(3),
    ]
    runtime = StubRuntime(instances)

    ResourceReclaimer(runtime, DummyLogger(), "app-container", 80).reclaim(retention_count=0)

    assert runtime.removed == ["app-container-3"]


def test_reclaim_is_best_effort():
    runtime = StubRuntime([_stopped(1), _stopped(2)], failing_removals={"app-container-1"}, prune_error=True)
    reclaimer = ResourceReclaimer(runtime, DummyLogger(), "app-container", 80)

    with pytest.raises(CleanupFailure, match=r"2 cleanup step\(s\) failed"):
        reclaimer.reclaim(retention_count=0, prune_volumes=True)

    assert runtime.removed == ["app-container-2"]
    assert runtime.volume_prunes == 1
