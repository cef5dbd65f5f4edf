"""Registry authentication and image pull service for bluegreen."""

import time
from typing import Optional, Tuple

from bluegreen.errors import CredentialNotFound, PreflightError, PullError, RuntimeClientError
from bluegreen.errors_catalog import actionable_error


class RegistryAuthenticator:
    """Exchanges stored credentials for an authenticated, retried pull."""

    def __init__(
        self,
        runtime,
        secrets,
        logger,
        console,
        registry: Optional[str] = None,
        username_secret: str = "DOCKER_USERNAME",
        password_secret: str = "DOCKER_TOKEN",
    ):
        self.runtime = runtime
        self.secrets = secrets
        self.logger = logger
        self.console = console
        self.registry = registry
        self.username_secret = username_secret
        self.password_secret = password_secret

    def credentials(self) -> Tuple[str, str]:
        try:
            username = self.secrets.get_credential(self.username_secret)
            password = self.secrets.get_credential(self.password_secret)
        except CredentialNotFound as exc:
            raise PreflightError(actionable_error("missing_credential", name=exc.name)) from exc
        return username, password

    def authenticate(self):
        username, password = self.credentials()
        registry_label = self.registry or "the default registry"
        self.console.print(f"[blue]Authenticating to {registry_label}...[/blue]")
        self.logger.info("Authenticating to %s as %s", registry_label, username)
        try:
            self.runtime.login(self.registry, username, password)
        except RuntimeClientError as exc:
            raise PullError(actionable_error("login_rejected", registry=registry_label)) from exc

    def pull(self, image: str, attempts: int = 3, backoff_seconds: float = 5.0):
        max_attempts = max(1, attempts)
        self.logger.info("Pulling image: %s", image)

        for attempt in range(1, max_attempts + 1):
            try:
                self.runtime.pull(image)
            except RuntimeClientError as exc:
                self.logger.warning("Pull attempt %s/%s failed: %s", attempt, max_attempts, exc.detail)
                if attempt < max_attempts:
                    time.sleep(backoff_seconds)
                    continue
                raise PullError(
                    actionable_error("pull_failed", image=image, attempts=max_attempts)
                ) from exc

            self.console.print(f"[green]Image pulled: {image}[/green]")
            return
