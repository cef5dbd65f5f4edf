"""Configuration loader for bluegreen."""

from pathlib import Path
from typing import Any, Dict, Optional

import yaml

from bluegreen.errors import DeployError


class ConfigLoader:
    """Loads YAML configuration files for CLI defaults."""

    SUPPORTED_KEYS = {
        "image",
        "name",
        "env",
        "staging_port",
        "production_port",
        "container_port",
        "memory_limit",
        "cpu_limit",
        "pids_limit",
        "network",
        "registry",
        "skip_registry_login",
        "secrets_file",
        "health_cmd",
        "health_check_delay",
        "health_check_timeout",
        "health_check_retries",
        "production_health_interval",
        "production_health_timeout",
        "production_health_retries",
        "default_env",
        "pull_attempts",
        "pull_backoff_seconds",
        "graceful_shutdown_timeout",
        "promotion_settle_seconds",
        "log_tail_lines",
        "verify_paths",
        "retention_count",
        "image_max_age_hours",
        "prune_volumes",
        "notify_webhook_secret",
        "state_dir",
        "log_file",
        "verbose",
        "dry_run",
    }

    def load(self, config_path: Optional[str]) -> Dict[str, Any]:
        if not config_path:
            return {}

        path = Path(config_path)
        if not path.exists():
            raise DeployError(f"Config file not found: {config_path}")

        try:
            parsed = yaml.safe_load(path.read_text(encoding="utf-8"))
        except (yaml.YAMLError, OSError) as exc:
            raise DeployError(f"Invalid config file '{config_path}': {exc}") from exc

        if parsed is None:
            return {}
        if not isinstance(parsed, dict):
            raise DeployError("Config file must contain a YAML mapping at the root.")

        unknown = sorted(set(parsed.keys()) - self.SUPPORTED_KEYS)
        if unknown:
            unknown_list = ", ".join(unknown)
            raise DeployError(f"Unknown configuration keys: {unknown_list}")

        for key in ("env", "default_env"):
            env = parsed.get(key)
            if env is not None and not isinstance(env, dict):
                raise DeployError(f"Config key '{key}' must be a mapping of variable names to values.")

        verify_paths = parsed.get("verify_paths")
        if verify_paths is not None and not isinstance(verify_paths, list):
            raise DeployError("Config key 'verify_paths' must be a list of URL paths.")

        return parsed
