import time

import pytest

from bluegreen.constants import LABEL_IMAGE, LABEL_ROLE, LABEL_SERVICE
from bluegreen.errors import RuntimeClientError
from bluegreen.models import ContainerInstance, ContainerSpec, HealthState, Role


class FakeRuntime:
    """In-memory stand-in for DockerRuntimeClient."""

    def __init__(self):
        self.containers = {}
        self.calls = []
        self.reachable = True
        self.login_rejected = False
        self.pull_failures = 0
        self.failures = {}
        self.health_script = {}
        self.health_polls = {}
        self.on_create = None
        self.max_running_staging = 0

    def seed(self, name, image, port, role=Role.PRODUCTION, state="running", service="app-container"):
        spec = ContainerSpec(
            name=name,
            image=image,
            host_port=port,
            container_port=3000,
            env={"PORT": "3000"},
            labels={LABEL_SERVICE: service, LABEL_ROLE: role.value, LABEL_IMAGE: image},
        )
        self.containers[name] = {"spec": spec, "state": state}
        return spec

    def running(self):
        return {name: entry for name, entry in self.containers.items() if entry["state"] == "running"}

    def _maybe_fail(self, op, name=None):
        targets = self.failures.get(op)
        if targets is not None and ("*" in targets or name in targets):
            raise RuntimeClientError(f"{op} failed for {name}")

    def _require(self, name):
        if name not in self.containers:
            raise RuntimeClientError(f"Error: No such container: {name}")
        return self.containers[name]

    def ping(self):
        self.calls.append(("ping",))
        if not self.reachable:
            raise RuntimeClientError("Cannot connect to the Docker daemon")
        return "27.0.0"

    def ensure_network(self, name):
        self.calls.append(("ensure_network", name))

    def login(self, registry, username, password):
        self.calls.append(("login", registry, username))
        if self.login_rejected:
            raise RuntimeClientError("unauthorized: incorrect username or password")

    def pull(self, image):
        self.calls.append(("pull", image))
        if self.pull_failures > 0:
            self.pull_failures -= 1
            raise RuntimeClientError("net/http: TLS handshake timeout")

    def image_digest(self, image):
        return "registry.example.com/app@sha256:abc123"

    def create(self, spec):
        self.calls.append(("create", spec.name))
        if self.on_create:
            self.on_create(spec)
        self._maybe_fail("create", spec.name)
        if spec.name in self.containers:
            raise RuntimeClientError(f"Conflict. The container name {spec.name} is already in use")
        for entry in self.running().values():
            if entry["spec"].host_port == spec.host_port:
                raise RuntimeClientError(f"Bind for 0.0.0.0:{spec.host_port} failed: port is already allocated")
        self.containers[spec.name] = {"spec": spec, "state": "running"}

        running_staging = [
            entry
            for entry in self.running().values()
            if entry["spec"].labels.get(LABEL_ROLE) == Role.STAGING.value
        ]
        self.max_running_staging = max(self.max_running_staging, len(running_staging))

        return ContainerInstance(
            name=spec.name,
            role=Role(spec.labels.get(LABEL_ROLE, Role.STAGING.value)),
            port=spec.host_port,
            image=spec.image,
        )

    def start(self, name):
        self.calls.append(("start", name))
        self._maybe_fail("start", name)
        self._require(name)["state"] = "running"

    def inspect_health(self, name):
        self.health_polls[name] = self.health_polls.get(name, 0) + 1
        entry = self.containers.get(name)
        if entry is None or entry["state"] != "running":
            return HealthState.UNHEALTHY
        script = self.health_script.get(entry["spec"].labels.get(LABEL_ROLE))
        if not script:
            return HealthState.HEALTHY
        if len(script) > 1:
            return script.pop(0)
        return script[0]

    def inspect_config(self, name):
        entry = self.containers.get(name)
        return entry["spec"] if entry else None

    def stop(self, name, grace_seconds):
        self.calls.append(("stop", name))
        self._maybe_fail("stop", name)
        self._require(name)["state"] = "exited"

    def remove(self, name, force=False):
        self.calls.append(("remove", name))
        self._maybe_fail("remove", name)
        entry = self._require(name)
        if entry["state"] == "running" and not force:
            raise RuntimeClientError(f"You cannot remove a running container {name}")
        del self.containers[name]

    def logs(self, name, tail):
        return "server starting\nError: connect ECONNREFUSED"

    def list_by_name_prefix(self, prefix):
        instances = []
        for name, entry in self.containers.items():
            if not name.startswith(prefix):
                continue
            spec = entry["spec"]
            role = Role(spec.labels.get(LABEL_ROLE, Role.STAGING.value))
            if role == Role.STAGING and entry["state"] != "running":
                role = Role.RETIRING
            instances.append(
                ContainerInstance(
                    name=name,
                    role=role,
                    port=spec.host_port,
                    image=spec.image,
                    state=entry["state"],
                )
            )
        return instances

    def resource_usage(self, name):
        if self.containers.get(name, {}).get("state") != "running":
            return None
        return {"cpu": "0.50%", "memory": "42MiB / 512MiB"}

    def prune_images(self, older_than_hours):
        self.calls.append(("prune_images", older_than_hours))
        return 0

    def prune_volumes(self):
        self.calls.append(("prune_volumes",))
        return 0


@pytest.fixture
def fake_runtime():
    return FakeRuntime()


@pytest.fixture
def no_sleep(monkeypatch):
    monkeypatch.setattr(time, "sleep", lambda *_args, **_kwargs: None)
