"""Actionable error catalog for bluegreen."""

from typing import Dict

_ERROR_MESSAGES: Dict[str, Dict[str, str]] = {
    "runtime_unreachable": {
        "what": "Docker daemon is not running or not accessible: {detail}",
        "next": "Start the Docker daemon or check that this user can reach the Docker socket.",
    },
    "missing_credential": {
        "what": "Registry credential `{name}` is missing.",
        "next": "Export it, add it to the secrets file, or pass `--skip-registry-login` for public images.",
    },
    "login_rejected": {
        "what": "Registry login to {registry} was rejected.",
        "next": "Check that the registry token is valid and has pull permission.",
    },
    "deployment_locked": {
        "what": "Another deployment of `{service}` is in progress (lock held by pid {pid}).",
        "next": "Wait for it to finish. Remove {path} only if that process is gone.",
    },
    "pull_failed": {
        "what": "Failed to pull {image} after {attempts} attempts.",
        "next": "Check registry reachability and that the tag exists.",
    },
    "staging_rejected": {
        "what": "The runtime rejected staging container {name}.",
        "next": "Check that port {port} is free and the image starts locally.",
    },
    "health_check_failed": {
        "what": "Staging container {name} did not become healthy ({verdict}).",
        "next": "Inspect the log lines above; the previous production instance is still serving.",
    },
    "endpoint_check_failed": {
        "what": "Staging container {name} failed endpoint verification: {detail}",
        "next": "Check the application's HTTP routes on port {port}.",
    },
    "promotion_failed": {
        "what": "Promotion of {name} failed: {detail}",
        "next": "The previous production instance was restored. Fix the cause and redeploy.",
    },
    "manual_intervention": {
        "what": "Production container {name} failed after the previous instance was removed: {detail}",
        "next": "Redeploy the previous image ({image}) manually; its recorded configuration is in the log and in the deployment record.",
    },
}


def actionable_error(code: str, **kwargs: object) -> str:
    if code not in _ERROR_MESSAGES:
        raise KeyError(f"Unknown error catalog key: {code}")

    template = _ERROR_MESSAGES[code]
    what = template["what"].format(**kwargs)
    next_step = template["next"].format(**kwargs)
    return f"{what} Suggested action: {next_step}"
