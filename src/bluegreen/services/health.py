"""Health polling service for bluegreen."""

import time
from typing import Callable, Optional

from bluegreen.models import ContainerInstance, HealthState, HealthVerdict


class HealthMonitor:
    """Polls a container's runtime health signal until it settles."""

    def __init__(self, runtime, logger, checkpoint: Optional[Callable[[], None]] = None):
        self.runtime = runtime
        self.logger = logger
        self.checkpoint = checkpoint

    def await_healthy(
        self,
        instance: ContainerInstance,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
    ) -> HealthVerdict:
        for attempt in range(1, max_attempts + 1):
            if self.checkpoint:
                self.checkpoint()

            state = self.runtime.inspect_health(instance.name)
            instance.health = state

            if state == HealthState.HEALTHY:
                self.logger.info("Container %s is healthy", instance.name)
                return HealthVerdict.HEALTHY
            if state == HealthState.UNHEALTHY:
                self.logger.error("Container %s is unhealthy", instance.name)
                return HealthVerdict.UNHEALTHY
            if state == HealthState.STARTING:
                self.logger.debug(
                    "Health check in progress for %s (%s/%s)", instance.name, attempt, max_attempts
                )
            else:
                self.logger.warning("Unknown health status for %s", instance.name)

            if attempt < max_attempts:
                time.sleep(poll_interval)

        self.logger.error(
            "Health check timeout for %s after %s attempts", instance.name, max_attempts
        )
        return HealthVerdict.TIMEOUT
