"""Domain errors for bluegreen."""

from typing import Any, Dict, Optional


class DeployError(RuntimeError):
    """Raised when a release cannot continue safely."""

    def __init__(self, message: str, stage: Optional[str] = None):
        super().__init__(message)
        self.stage = stage


class PreflightError(DeployError):
    """Nothing was touched: runtime unreachable, credentials missing, lock held."""


class CredentialNotFound(PreflightError):
    """A named credential is not available from the secrets store."""

    def __init__(self, name: str):
        super().__init__(f"Credential '{name}' was not found in the secrets store.")
        self.name = name


class PullError(DeployError):
    """The image could not be pulled within the allowed attempts."""


class StagingError(DeployError):
    """The runtime rejected creation of the staging instance."""


class HealthCheckFailure(DeployError):
    """The staging instance never proved itself healthy."""

    def __init__(self, message: str, stage: Optional[str] = None, log_tail: str = ""):
        super().__init__(message, stage=stage)
        self.log_tail = log_tail


class PromotionFailure(DeployError):
    """The swap failed and the previous production instance is still serving."""


class ManualInterventionRequired(DeployError):
    """The swap failed after the previous production instance was removed."""

    def __init__(
        self,
        message: str,
        stage: Optional[str] = None,
        previous_config: Optional[Dict[str, Any]] = None,
        emergency_restored: bool = False,
    ):
        super().__init__(message, stage=stage)
        self.previous_config = previous_config
        self.emergency_restored = emergency_restored


class CleanupFailure(DeployError):
    """Reclaiming old resources failed. Never changes the release outcome."""


class RuntimeClientError(RuntimeError):
    """A container runtime operation failed.

    `detail` is a short reason without the command line, safe to show in
    records and notifications.
    """

    def __init__(self, message: str, detail: Optional[str] = None):
        super().__init__(message)
        self.detail = detail or message
