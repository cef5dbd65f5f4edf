"""Docker runtime client for bluegreen."""

import json
import os
import re
import tempfile
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional

from bluegreen.constants import LABEL_IMAGE, LABEL_ROLE
from bluegreen.errors import RuntimeClientError
from bluegreen.models import (
    ContainerInstance,
    ContainerSpec,
    HealthCheckSpec,
    HealthState,
    ResourceLimits,
    Role,
    SecurityOptions,
)

_PORT_PATTERN = re.compile(r":(\d+)->")
_TERMINAL_STATES = {"exited", "dead", "removing"}


class DockerRuntimeClient:
    """Container lifecycle operations over the docker CLI."""

    def __init__(self, command_runner, logger):
        self.runner = command_runner
        self.logger = logger

    def ping(self) -> str:
        result = self.runner.run(["docker", "info", "--format", "{{.ServerVersion}}"])
        version = result.stdout.strip()
        self.logger.debug("Docker daemon verified (server %s)", version)
        return version

    def ensure_network(self, name: str):
        result = self.runner.run(
            ["docker", "network", "ls", "--filter", f"name=^{name}$", "--format", "{{.Name}}"]
        )
        if name in result.stdout.split():
            return
        self.logger.info("Creating network: %s", name)
        self.runner.run(["docker", "network", "create", name])

    def login(self, registry: Optional[str], username: str, password: str):
        cmd = ["docker", "login", "--username", username, "--password-stdin"]
        if registry:
            cmd.append(registry)
        self.runner.run(cmd, input_text=password)

    def pull(self, image: str):
        self.runner.run(["docker", "pull", image])

    def image_digest(self, image: str) -> Optional[str]:
        result = self.runner.run(["docker", "image", "inspect", image], log_output=False)
        data = self._parse_inspect(result.stdout, image)
        digests = data.get("RepoDigests") or []
        if digests:
            return digests[0]
        return data.get("Id")

    def build_run_args(self, spec: ContainerSpec, env_file: Optional[str] = None) -> List[str]:
        """docker run arguments for `spec`. Environment values only travel through `env_file`."""
        limits = spec.limits
        security = spec.security
        args = [
            "docker",
            "run",
            "-d",
            "--name",
            spec.name,
            "--restart",
            security.restart_policy,
            f"--memory={limits.memory}",
            f"--memory-swap={limits.memory}",
            f"--cpus={limits.cpus}",
            "--pids-limit",
            str(limits.pids_limit),
        ]
        if spec.network:
            args += ["--network", spec.network]
        if security.no_new_privileges:
            args += ["--security-opt", "no-new-privileges:true"]
        for capability in security.cap_drop:
            args += ["--cap-drop", capability]
        for capability in security.cap_add:
            args += ["--cap-add", capability]
        if security.read_only:
            args.append("--read-only")
        for mount in security.tmpfs:
            args += ["--tmpfs", mount]

        if spec.health:
            args += [
                f"--health-cmd={spec.health.command}",
                f"--health-interval={spec.health.interval}",
                f"--health-timeout={spec.health.timeout}",
                f"--health-retries={spec.health.retries}",
            ]
            if spec.health.start_period:
                args.append(f"--health-start-period={spec.health.start_period}")

        for key, value in sorted(spec.labels.items()):
            args += ["--label", f"{key}={value}"]
        if env_file:
            args += ["--env-file", env_file]

        args += ["-p", f"{spec.host_port}:{spec.container_port}", spec.image]
        return args

    def create(self, spec: ContainerSpec) -> ContainerInstance:
        env_file = self._write_env_file(spec.env) if spec.env else None
        try:
            self.runner.run(self.build_run_args(spec, env_file=env_file))
        finally:
            if env_file:
                os.remove(env_file)
        return ContainerInstance(
            name=spec.name,
            role=Role(spec.labels.get(LABEL_ROLE, Role.STAGING.value)),
            port=spec.host_port,
            created_at=datetime.now(timezone.utc).isoformat(),
            image=spec.image,
        )

    def start(self, name: str):
        self.runner.run(["docker", "start", name])

    def inspect_health(self, name: str) -> HealthState:
        result = self.runner.run(
            [
                "docker",
                "inspect",
                "--format",
                "{{.State.Status}}|{{if .State.Health}}{{.State.Health.Status}}{{end}}",
                name,
            ],
            check=False,
        )
        if result.returncode != 0:
            if "no such" in (result.stderr or "").lower():
                return HealthState.UNHEALTHY
            return HealthState.UNKNOWN

        status, _, health = result.stdout.strip().partition("|")
        if status in _TERMINAL_STATES:
            return HealthState.UNHEALTHY
        try:
            return HealthState(health)
        except ValueError:
            return HealthState.UNKNOWN

    def inspect_config(self, name: str) -> Optional[ContainerSpec]:
        result = self.runner.run(["docker", "inspect", name], check=False, log_output=False)
        if result.returncode != 0:
            return None

        data = self._parse_inspect(result.stdout, name)
        config = data.get("Config") or {}
        host_config = data.get("HostConfig") or {}

        host_port, container_port = self._first_port_binding(host_config.get("PortBindings") or {})
        env = {}
        for entry in config.get("Env") or []:
            key, _, value = entry.partition("=")
            env[key] = value

        networks = (data.get("NetworkSettings") or {}).get("Networks") or {}
        network = next(iter(networks), None) or host_config.get("NetworkMode")
        if network in ("default", "bridge"):
            network = None

        return ContainerSpec(
            name=data.get("Name", name).lstrip("/"),
            image=config.get("Image", ""),
            host_port=host_port,
            container_port=container_port,
            env=env,
            limits=self._limits_from_host_config(host_config),
            security=self._security_from_host_config(host_config),
            health=self._health_from_config(config.get("Healthcheck")),
            labels=dict(config.get("Labels") or {}),
            network=network,
        )

    def stop(self, name: str, grace_seconds: int):
        self.runner.run(
            ["docker", "stop", "--time", str(grace_seconds), name],
            timeout=grace_seconds + 30,
        )

    def remove(self, name: str, force: bool = False):
        cmd = ["docker", "rm"]
        if force:
            cmd.append("-f")
        self.runner.run(cmd + [name])

    def logs(self, name: str, tail: int) -> str:
        result = self.runner.run(["docker", "logs", "--tail", str(tail), name], check=False)
        return "\n".join(part.strip() for part in (result.stdout, result.stderr) if part and part.strip())

    def resource_usage(self, name: str) -> Optional[Dict[str, str]]:
        result = self.runner.run(
            ["docker", "stats", "--no-stream", "--format", "{{json .}}", name],
            check=False,
        )
        if result.returncode != 0 or not result.stdout.strip():
            return None
        try:
            row = json.loads(result.stdout.strip().splitlines()[0])
        except json.JSONDecodeError:
            self.logger.debug("Unexpected docker stats output for %s", name)
            return None
        return {"cpu": row.get("CPUPerc", "-"), "memory": row.get("MemUsage", "-")}

    def list_by_name_prefix(self, prefix: str) -> List[ContainerInstance]:
        result = self.runner.run(
            ["docker", "ps", "-a", "--filter", f"name=^{prefix}", "--format", "{{json .}}"]
        )
        instances = []
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line:
                continue
            try:
                row = json.loads(line)
            except json.JSONDecodeError as exc:
                raise RuntimeClientError(f"Unexpected docker ps output: {line}") from exc

            name = row.get("Names", "").split(",")[0]
            if not name.startswith(prefix):
                continue
            state = row.get("State", "unknown")
            labels = self._parse_labels(row.get("Labels", ""))
            role_value = labels.get(LABEL_ROLE)
            if role_value in {role.value for role in Role}:
                role = Role(role_value)
            else:
                role = Role.PRODUCTION if name == prefix else Role.STAGING
            if role == Role.STAGING and state not in ("running", "restarting"):
                role = Role.RETIRING

            port_match = _PORT_PATTERN.search(row.get("Ports", "") or "")
            instances.append(
                ContainerInstance(
                    name=name,
                    role=role,
                    port=int(port_match.group(1)) if port_match else None,
                    created_at=row.get("CreatedAt"),
                    image=labels.get(LABEL_IMAGE) or row.get("Image"),
                    state=state,
                )
            )
        return instances

    def prune_images(self, older_than_hours: int) -> int:
        result = self.runner.run(
            ["docker", "image", "prune", "-f", "--filter", f"until={older_than_hours}h"]
        )
        return sum(1 for line in result.stdout.splitlines() if line.lower().startswith("deleted:"))

    def prune_volumes(self) -> int:
        result = self.runner.run(["docker", "volume", "prune", "-f"])
        count = 0
        for line in result.stdout.splitlines():
            line = line.strip()
            if not line or line.endswith(":") or line.startswith("Total reclaimed"):
                continue
            count += 1
        return count

    @staticmethod
    def _parse_inspect(output: str, name: str) -> Dict[str, Any]:
        try:
            data = json.loads(output)
        except json.JSONDecodeError as exc:
            raise RuntimeClientError(f"Unexpected docker inspect output for {name}") from exc
        if isinstance(data, list):
            data = data[0] if data else {}
        if not isinstance(data, dict):
            raise RuntimeClientError(f"Unexpected docker inspect output for {name}")
        return data

    @staticmethod
    def _write_env_file(env: Dict[str, str]) -> str:
        for key, value in env.items():
            if "\n" in key or "\n" in str(value):
                raise RuntimeClientError(f"Environment variable {key!r} must not contain newlines.")
        fd, path = tempfile.mkstemp(prefix="bluegreen-", suffix=".env")
        with os.fdopen(fd, "w", encoding="utf-8") as file_obj:
            for key, value in sorted(env.items()):
                file_obj.write(f"{key}={value}\n")
        return path

    @staticmethod
    def _parse_labels(raw: str) -> Dict[str, str]:
        labels = {}
        for item in raw.split(","):
            key, sep, value = item.partition("=")
            if sep:
                labels[key.strip()] = value.strip()
        return labels

    @staticmethod
    def _first_port_binding(bindings: Dict[str, Any]):
        for container_port, host_bindings in bindings.items():
            if not host_bindings:
                continue
            host_port = host_bindings[0].get("HostPort")
            if host_port:
                return int(host_port), int(container_port.split("/")[0])
        raise RuntimeClientError("Container has no published port binding.")

    @staticmethod
    def _limits_from_host_config(host_config: Dict[str, Any]) -> ResourceLimits:
        defaults = ResourceLimits()
        memory = host_config.get("Memory") or 0
        nano_cpus = host_config.get("NanoCpus") or 0
        pids_limit = host_config.get("PidsLimit") or 0
        return ResourceLimits(
            memory=f"{memory // (1024 * 1024)}m" if memory else defaults.memory,
            cpus=f"{nano_cpus / 1e9:g}" if nano_cpus else defaults.cpus,
            pids_limit=pids_limit if pids_limit > 0 else defaults.pids_limit,
        )

    @staticmethod
    def _security_from_host_config(host_config: Dict[str, Any]) -> SecurityOptions:
        tmpfs = host_config.get("Tmpfs") or {}
        restart = (host_config.get("RestartPolicy") or {}).get("Name") or "unless-stopped"
        return SecurityOptions(
            no_new_privileges="no-new-privileges:true" in (host_config.get("SecurityOpt") or []),
            read_only=bool(host_config.get("ReadonlyRootfs")),
            cap_drop=tuple(host_config.get("CapDrop") or ()),
            cap_add=tuple(host_config.get("CapAdd") or ()),
            tmpfs=tuple(f"{path}:{options}" if options else path for path, options in tmpfs.items()),
            restart_policy=restart,
        )

    @staticmethod
    def _health_from_config(healthcheck: Optional[Dict[str, Any]]) -> Optional[HealthCheckSpec]:
        if not healthcheck or not healthcheck.get("Test"):
            return None
        test = healthcheck["Test"]
        if test[0] == "NONE":
            return None
        command = test[1] if test[0] == "CMD-SHELL" else " ".join(test[1:])

        def seconds(key: str, default: str) -> str:
            value = healthcheck.get(key) or 0
            return f"{int(value / 1e9)}s" if value else default

        start_period = healthcheck.get("StartPeriod") or 0
        return HealthCheckSpec(
            command=command,
            interval=seconds("Interval", "30s"),
            timeout=seconds("Timeout", "30s"),
            retries=healthcheck.get("Retries") or 3,
            start_period=f"{int(start_period / 1e9)}s" if start_period else None,
        )
