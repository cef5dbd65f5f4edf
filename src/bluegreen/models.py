"""Shared domain models for bluegreen."""

from dataclasses import asdict, dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Any, Dict, List, Optional, Tuple

from .constants import REDACTED, SECRET_MARKERS


class HealthState(str, Enum):
    UNKNOWN = "unknown"
    STARTING = "starting"
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"


class HealthVerdict(str, Enum):
    HEALTHY = "healthy"
    UNHEALTHY = "unhealthy"
    TIMEOUT = "timeout"


class Role(str, Enum):
    STAGING = "staging"
    PRODUCTION = "production"
    RETIRING = "retiring"

    @property
    def rank(self) -> int:
        return _ROLE_ORDER.index(self)


_ROLE_ORDER = [Role.STAGING, Role.PRODUCTION, Role.RETIRING]


class Stage(str, Enum):
    IDLE = "idle"
    AUTHENTICATING = "authenticating"
    PULLING = "pulling"
    STAGING = "staging"
    HEALTH_CHECKING = "health_checking"
    PROMOTING = "promoting"
    RETIRING_OLD = "retiring_old"
    CLEANING = "cleaning"
    DONE = "done"
    ROLLED_BACK = "rolled_back"
    FAILED = "failed"


class Outcome(str, Enum):
    SUCCESS = "success"
    ROLLED_BACK = "rolled-back"
    FAILED = "failed"


@dataclass(frozen=True)
class ResourceLimits:
    memory: str = "512m"
    cpus: str = "0.5"
    pids_limit: int = 100


@dataclass(frozen=True)
class SecurityOptions:
    no_new_privileges: bool = True
    read_only: bool = True
    cap_drop: Tuple[str, ...] = ("ALL",)
    cap_add: Tuple[str, ...] = ("NET_BIND_SERVICE",)
    tmpfs: Tuple[str, ...] = (
        "/tmp:rw,noexec,nosuid,size=64m",
        "/app/tmp:rw,noexec,nosuid,size=64m",
    )
    restart_policy: str = "unless-stopped"


@dataclass(frozen=True)
class HealthCheckSpec:
    """Parameters of the runtime's own health probe for a container."""

    command: str = "curl -f http://localhost:3000/health || exit 1"
    interval: str = "10s"
    timeout: str = "5s"
    retries: int = 3
    start_period: Optional[str] = "30s"


STAGING_HEALTH_CHECK = HealthCheckSpec()
PRODUCTION_HEALTH_CHECK = HealthCheckSpec(interval="30s", timeout="10s", retries=5, start_period=None)
DEFAULT_CONTAINER_ENV = {"NODE_ENV": "production", "LOG_LEVEL": "info"}


@dataclass(frozen=True)
class ReleaseRequest:
    """What to release. Immutable once accepted."""

    image: str
    env: Dict[str, str] = field(default_factory=dict)
    limits: ResourceLimits = field(default_factory=ResourceLimits)
    staging_port: int = 3001
    production_port: int = 80
    container_port: int = 3000

    def __post_init__(self):
        if not self.image or not self.image.strip():
            raise ValueError("Image reference must not be empty.")
        for label, port in (
            ("staging port", self.staging_port),
            ("production port", self.production_port),
            ("container port", self.container_port),
        ):
            if not 0 < int(port) < 65536:
                raise ValueError(f"Invalid {label}: {port}")
        if self.staging_port == self.production_port:
            raise ValueError("Staging port must differ from the production port.")


@dataclass(frozen=True)
class ContainerSpec:
    """Everything needed to (re)create one container."""

    name: str
    image: str
    host_port: int
    container_port: int
    env: Dict[str, str] = field(default_factory=dict)
    limits: ResourceLimits = field(default_factory=ResourceLimits)
    security: SecurityOptions = field(default_factory=SecurityOptions)
    health: Optional[HealthCheckSpec] = None
    labels: Dict[str, str] = field(default_factory=dict)
    network: Optional[str] = None

    def to_record(self) -> Dict[str, Any]:
        """Serializable view with secret-looking environment values redacted."""
        data = asdict(self)
        data["env"] = redact_env(self.env)
        return data


@dataclass
class ContainerInstance:
    name: str
    role: Role
    port: Optional[int] = None
    created_at: Optional[str] = None
    image: Optional[str] = None
    health: HealthState = HealthState.UNKNOWN
    state: str = "running"

    @property
    def is_running(self) -> bool:
        return self.state in ("running", "restarting")

    def advance(self, role: Role):
        if role.rank < self.role.rank:
            raise ValueError(
                f"Container {self.name} cannot move from {self.role.value} back to {role.value}."
            )
        self.role = role


@dataclass(frozen=True)
class DeploySettings:
    """Release policy and collaborator configuration passed into the orchestrator."""

    service_name: str = "app-container"
    network: Optional[str] = "app-network"
    registry: Optional[str] = None
    registry_username_secret: str = "DOCKER_USERNAME"
    registry_password_secret: str = "DOCKER_TOKEN"
    skip_registry_login: bool = False
    secrets_file: Optional[str] = None
    pull_attempts: int = 3
    pull_backoff_seconds: float = 5.0
    staging_health: HealthCheckSpec = STAGING_HEALTH_CHECK
    production_health: HealthCheckSpec = PRODUCTION_HEALTH_CHECK
    default_env: Dict[str, str] = field(default_factory=lambda: dict(DEFAULT_CONTAINER_ENV))
    health_poll_interval: float = 2.0
    health_max_attempts: int = 30
    promotion_settle_seconds: float = 5.0
    promotion_poll_interval: float = 2.0
    promotion_max_attempts: int = 30
    grace_seconds: int = 30
    log_tail_lines: int = 50
    verify_paths: Tuple[str, ...] = ("/health", "/")
    verify_host: str = "localhost"
    verify_timeout: float = 5.0
    retention_count: int = 2
    image_max_age_hours: int = 24
    prune_volumes: bool = False
    security: SecurityOptions = field(default_factory=SecurityOptions)
    state_dir: str = ".bluegreen"
    notify_webhook_secret: Optional[str] = "SLACK_WEBHOOK_URL"
    dry_run: bool = False


@dataclass
class DeploymentRecord:
    """Audit entry for one attempted release."""

    release_id: str
    service: str
    image: str
    image_digest: Optional[str] = None
    outcome: Optional[Outcome] = None
    exit_code: Optional[int] = None
    error: Optional[str] = None
    previous_production: Optional[Dict[str, Any]] = None
    emergency_restored: Optional[bool] = None
    transitions: List[Dict[str, Any]] = field(default_factory=list)

    def add_transition(self, stage: Stage, detail: Optional[str] = None):
        self.transitions.append(
            {
                "stage": stage.value,
                "at": datetime.now(timezone.utc).isoformat(),
                "detail": detail,
            }
        )

    @property
    def stage(self) -> Stage:
        if not self.transitions:
            return Stage.IDLE
        return Stage(self.transitions[-1]["stage"])

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["outcome"] = self.outcome.value if self.outcome else None
        return data


def redact_env(env: Dict[str, str]) -> Dict[str, str]:
    redacted = {}
    for key, value in env.items():
        if any(marker in key.upper() for marker in SECRET_MARKERS):
            redacted[key] = REDACTED
        else:
            redacted[key] = value
    return redacted
