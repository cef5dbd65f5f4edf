import logging
import os

import click
from rich.logging import RichHandler

from .constants import DEFAULT_CONFIG_FILE, DEFAULT_STATE_DIR
from .core import DeploymentOrchestrator, DeployError
from .models import DEFAULT_CONTAINER_ENV, DeploySettings, HealthCheckSpec, ReleaseRequest, ResourceLimits
from .services.config_loader import ConfigLoader


def _resolve_option(cli_value, config, key, default=None):
    if cli_value is not None:
        return cli_value
    if key in config:
        return config[key]
    return default


def _parse_env_pairs(pairs):
    env = {}
    for pair in pairs:
        if "=" not in pair:
            raise click.BadParameter(f"Expected KEY=VALUE, got '{pair}'.", param_hint="--env")
        key, value = pair.split("=", 1)
        if not key:
            raise click.BadParameter(f"Empty variable name in '{pair}'.", param_hint="--env")
        env[key] = value
    return env


logging.basicConfig(
    level="INFO",
    format="%(message)s",
    datefmt="[%X]",
    handlers=[RichHandler(rich_tracebacks=True, show_level=False, show_path=False)],
)


@click.command()
@click.option("--image", envvar="DOCKER_IMAGE", required=False, help="Image reference to release.")
@click.option(
    "--name",
    envvar="CONTAINER_NAME",
    required=False,
    help="Service name; also the production container name (default: app-container).",
)
@click.option(
    "--config",
    required=False,
    type=click.Path(),
    help=f"Path to a YAML configuration file. Defaults to {DEFAULT_CONFIG_FILE} if present.",
)
@click.option(
    "--env",
    "env_pairs",
    multiple=True,
    help="Container environment variable as KEY=VALUE. Repeatable.",
)
@click.option("--staging-port", envvar="STAGING_PORT", type=int, default=None, help="Host port for staging (default: 3001).")
@click.option(
    "--production-port",
    envvar="PRODUCTION_PORT",
    type=int,
    default=None,
    help="Host port for production (default: 80).",
)
@click.option("--container-port", envvar="PORT", type=int, default=None, help="Port the application listens on (default: 3000).")
@click.option("--memory-limit", envvar="MEMORY_LIMIT", default=None, help="Container memory limit (default: 512m).")
@click.option("--cpu-limit", envvar="CPU_LIMIT", default=None, help="Container CPU limit (default: 0.5).")
@click.option("--pids-limit", type=int, default=None, help="Container process limit (default: 100).")
@click.option("--network", envvar="NETWORK_NAME", default=None, help="Container network (default: app-network).")
@click.option("--registry", default=None, help="Registry host to authenticate against (default: Docker Hub).")
@click.option(
    "--skip-registry-login",
    is_flag=True,
    default=None,
    help="Do not log in before pulling (public images or an existing login).",
)
@click.option(
    "--secrets-file",
    type=click.Path(),
    default=None,
    help="Dotenv file holding registry credentials and the notification webhook.",
)
@click.option("--health-cmd", default=None, help="Command the runtime runs inside the container to probe health.")
@click.option(
    "--health-check-delay",
    envvar="HEALTH_CHECK_DELAY",
    type=float,
    default=None,
    help="Seconds between health polls (default: 2).",
)
@click.option(
    "--health-check-retries",
    envvar="HEALTH_CHECK_RETRIES",
    type=int,
    default=None,
    help="Maximum number of health polls (default: 30).",
)
@click.option(
    "--health-check-timeout",
    envvar="HEALTH_CHECK_TIMEOUT",
    type=int,
    default=None,
    help="Timeout in seconds of a single runtime health probe (default: 5).",
)
@click.option("--pull-attempts", type=int, default=None, help="Image pull attempts (default: 3).")
@click.option("--pull-backoff-seconds", type=float, default=None, help="Seconds between pull attempts (default: 5).")
@click.option(
    "--graceful-shutdown-timeout",
    envvar="GRACEFUL_SHUTDOWN_TIMEOUT",
    type=int,
    default=None,
    help="Seconds a container gets to stop before it is killed (default: 30).",
)
@click.option(
    "--retention-count",
    envvar="RETENTION_COUNT",
    type=int,
    default=None,
    help="Stopped releases to keep for inspection (default: 2).",
)
@click.option("--prune-volumes", is_flag=True, default=None, help="Also prune unused volumes during cleanup.")
@click.option(
    "--state-dir",
    type=click.Path(),
    default=None,
    help=f"Directory for deployment history and locks (default: {DEFAULT_STATE_DIR}).",
)
@click.option("--verbose", is_flag=True, default=None, help="Enable verbose logging")
@click.option("--log-file", type=click.Path(), help="Path to log file")
@click.option(
    "--dry-run",
    is_flag=True,
    default=None,
    help="Print the release plan without touching the container runtime.",
)
def main(
    image,
    name,
    config,
    env_pairs,
    staging_port,
    production_port,
    container_port,
    memory_limit,
    cpu_limit,
    pids_limit,
    network,
    registry,
    skip_registry_login,
    secrets_file,
    health_cmd,
    health_check_delay,
    health_check_retries,
    health_check_timeout,
    pull_attempts,
    pull_backoff_seconds,
    graceful_shutdown_timeout,
    retention_count,
    prune_volumes,
    state_dir,
    verbose,
    log_file,
    dry_run,
):
    """Release a container image with a blue-green swap on this host."""
    logger = logging.getLogger("bluegreen")

    try:
        config_loader = ConfigLoader()
        resolved_config = config
        if resolved_config is None:
            default_config_path = os.path.join(os.getcwd(), DEFAULT_CONFIG_FILE)
            if os.path.exists(default_config_path):
                resolved_config = default_config_path

        config_values = config_loader.load(resolved_config)
    except DeployError as exc:
        raise click.ClickException(str(exc)) from exc

    image = _resolve_option(image, config_values, "image")
    name = _resolve_option(name, config_values, "name", default="app-container")
    env = {str(key): str(value) for key, value in (config_values.get("env") or {}).items()}
    env.update(_parse_env_pairs(env_pairs))
    staging_port = int(_resolve_option(staging_port, config_values, "staging_port", default=3001))
    production_port = int(_resolve_option(production_port, config_values, "production_port", default=80))
    container_port = int(_resolve_option(container_port, config_values, "container_port", default=3000))
    memory_limit = str(_resolve_option(memory_limit, config_values, "memory_limit", default="512m"))
    cpu_limit = str(_resolve_option(cpu_limit, config_values, "cpu_limit", default="0.5"))
    pids_limit = int(_resolve_option(pids_limit, config_values, "pids_limit", default=100))
    network = _resolve_option(network, config_values, "network", default="app-network")
    registry = _resolve_option(registry, config_values, "registry")
    skip_registry_login = bool(
        _resolve_option(skip_registry_login, config_values, "skip_registry_login", default=False)
    )
    secrets_file = _resolve_option(secrets_file, config_values, "secrets_file")
    health_cmd = _resolve_option(
        health_cmd,
        config_values,
        "health_cmd",
        default=f"curl -f http://localhost:{container_port}/health || exit 1",
    )
    health_check_delay = float(
        _resolve_option(health_check_delay, config_values, "health_check_delay", default=2.0)
    )
    health_check_retries = int(
        _resolve_option(health_check_retries, config_values, "health_check_retries", default=30)
    )
    health_check_timeout = int(
        _resolve_option(health_check_timeout, config_values, "health_check_timeout", default=5)
    )
    pull_attempts = int(_resolve_option(pull_attempts, config_values, "pull_attempts", default=3))
    pull_backoff_seconds = float(
        _resolve_option(pull_backoff_seconds, config_values, "pull_backoff_seconds", default=5.0)
    )
    graceful_shutdown_timeout = int(
        _resolve_option(graceful_shutdown_timeout, config_values, "graceful_shutdown_timeout", default=30)
    )
    production_health_interval = str(config_values.get("production_health_interval", "30s"))
    production_health_timeout = str(config_values.get("production_health_timeout", "10s"))
    production_health_retries = int(config_values.get("production_health_retries", 5))
    default_env = {
        str(key): str(value)
        for key, value in (config_values.get("default_env", DEFAULT_CONTAINER_ENV) or {}).items()
    }
    promotion_settle_seconds = float(config_values.get("promotion_settle_seconds", 5.0))
    log_tail_lines = int(config_values.get("log_tail_lines", 50))
    verify_paths = tuple(config_values.get("verify_paths", ("/health", "/")))
    retention_count = int(_resolve_option(retention_count, config_values, "retention_count", default=2))
    image_max_age_hours = int(config_values.get("image_max_age_hours", 24))
    prune_volumes = bool(_resolve_option(prune_volumes, config_values, "prune_volumes", default=False))
    notify_webhook_secret = config_values.get("notify_webhook_secret", "SLACK_WEBHOOK_URL")
    state_dir = _resolve_option(state_dir, config_values, "state_dir", default=DEFAULT_STATE_DIR)
    verbose = bool(_resolve_option(verbose, config_values, "verbose", default=False))
    log_file = _resolve_option(log_file, config_values, "log_file")
    dry_run = bool(_resolve_option(dry_run, config_values, "dry_run", default=False))

    if not image:
        raise click.ClickException("Missing required option '--image' (or DOCKER_IMAGE, or provide it in config).")

    if verbose:
        logging.getLogger().setLevel(logging.DEBUG)
        logger.setLevel(logging.DEBUG)
    else:
        logger.setLevel(logging.INFO)

    if log_file:
        file_handler = logging.FileHandler(log_file)
        file_handler.setLevel(logging.DEBUG if verbose else logging.INFO)
        file_handler.setFormatter(logging.Formatter("%(asctime)s [%(levelname)s] %(message)s"))
        logger.addHandler(file_handler)

    try:
        request = ReleaseRequest(
            image=image,
            env=env,
            limits=ResourceLimits(memory=memory_limit, cpus=cpu_limit, pids_limit=pids_limit),
            staging_port=staging_port,
            production_port=production_port,
            container_port=container_port,
        )
        settings = DeploySettings(
            service_name=name,
            network=network,
            registry=registry,
            skip_registry_login=skip_registry_login,
            secrets_file=secrets_file,
            pull_attempts=pull_attempts,
            pull_backoff_seconds=pull_backoff_seconds,
            staging_health=HealthCheckSpec(
                command=health_cmd,
                interval="10s",
                timeout=f"{health_check_timeout}s",
                retries=3,
                start_period="30s",
            ),
            production_health=HealthCheckSpec(
                command=health_cmd,
                interval=production_health_interval,
                timeout=production_health_timeout,
                retries=production_health_retries,
                start_period=None,
            ),
            default_env=default_env,
            health_poll_interval=health_check_delay,
            health_max_attempts=health_check_retries,
            promotion_settle_seconds=promotion_settle_seconds,
            promotion_poll_interval=health_check_delay,
            promotion_max_attempts=health_check_retries,
            grace_seconds=graceful_shutdown_timeout,
            log_tail_lines=log_tail_lines,
            verify_paths=verify_paths,
            retention_count=retention_count,
            image_max_age_hours=image_max_age_hours,
            prune_volumes=prune_volumes,
            state_dir=state_dir,
            notify_webhook_secret=notify_webhook_secret,
            dry_run=dry_run,
        )
    except ValueError as exc:
        raise click.ClickException(str(exc)) from exc

    orchestrator = DeploymentOrchestrator(request=request, settings=settings)
    raise SystemExit(orchestrator.run())


if __name__ == "__main__":
    main()
