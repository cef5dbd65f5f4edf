"""Production identity swap for bluegreen."""

import json
import time
from typing import Optional

from bluegreen.errors import ManualInterventionRequired, PromotionFailure, RuntimeClientError
from bluegreen.errors_catalog import actionable_error
from bluegreen.models import ContainerInstance, ContainerSpec, HealthVerdict, Role


class TrafficSwitch:
    """Moves the production name and port from the old instance to the new one.

    This is the only writer of the production port binding. The old instance is
    stopped and removed first because both cannot hold the port at once; the
    staging instance is then recreated on the production port and must report
    healthy again before the swap counts as done.
    """

    def __init__(
        self,
        runtime,
        monitor,
        logger,
        console,
        grace_seconds: int = 30,
        settle_seconds: float = 5.0,
        poll_interval: float = 2.0,
        max_attempts: int = 30,
    ):
        self.runtime = runtime
        self.monitor = monitor
        self.logger = logger
        self.console = console
        self.grace_seconds = grace_seconds
        self.settle_seconds = settle_seconds
        self.poll_interval = poll_interval
        self.max_attempts = max_attempts

    def promote(
        self,
        staging: ContainerInstance,
        production_spec: ContainerSpec,
        old: Optional[ContainerInstance] = None,
        previous_spec: Optional[ContainerSpec] = None,
    ) -> ContainerInstance:
        self.console.print("[blue]Switching traffic to new container...[/blue]")

        old_removed = False
        if old is not None:
            self._retire_old(old, production_spec)
            old_removed = True

        try:
            self.logger.info("Stopping staging container %s", staging.name)
            self.runtime.stop(staging.name, self.grace_seconds)
            staging.advance(Role.RETIRING)

            self.logger.info(
                "Starting production container %s on port %s",
                production_spec.name,
                production_spec.host_port,
            )
            production = self.runtime.create(production_spec)
            production.advance(Role.PRODUCTION)

            time.sleep(self.settle_seconds)
            verdict = self.monitor.await_healthy(
                production,
                poll_interval=self.poll_interval,
                max_attempts=self.max_attempts,
            )
            if verdict != HealthVerdict.HEALTHY:
                raise RuntimeClientError(f"production health check returned {verdict.value}")
        except RuntimeClientError as exc:
            self._discard(production_spec.name)
            if old_removed:
                self._escalate(production_spec, previous_spec, exc.detail)
            raise PromotionFailure(
                actionable_error("promotion_failed", name=production_spec.name, detail=exc.detail),
            ) from exc

        self.console.print("[green]Traffic switched successfully.[/green]")
        return production

    def _retire_old(self, old: ContainerInstance, production_spec: ContainerSpec):
        self.logger.info(
            "Gracefully shutting down old container %s (timeout: %ss)",
            old.name,
            self.grace_seconds,
        )
        try:
            self.runtime.stop(old.name, self.grace_seconds)
            self.runtime.remove(old.name)
        except RuntimeClientError as exc:
            self.logger.error("Could not retire old container %s: %s", old.name, exc.detail)
            self._restore_old(old, production_spec, exc.detail)
            raise PromotionFailure(
                actionable_error("promotion_failed", name=production_spec.name, detail=exc.detail),
            ) from exc

        old.advance(Role.RETIRING)
        self.logger.info("Old container %s removed", old.name)

    def _restore_old(self, old: ContainerInstance, production_spec: ContainerSpec, detail: str):
        try:
            self.runtime.start(old.name)
        except RuntimeClientError as exc:
            self.logger.critical("Could not restart old container %s: %s", old.name, exc.detail)
            raise ManualInterventionRequired(
                actionable_error(
                    "manual_intervention",
                    name=production_spec.name,
                    detail=f"{detail}; restart of {old.name} failed: {exc.detail}",
                    image=old.image or "unknown",
                ),
            ) from exc
        self.logger.warning("Old container %s restored to serving state", old.name)

    def _discard(self, name: str):
        try:
            self.runtime.remove(name, force=True)
        except RuntimeClientError as exc:
            self.logger.warning("Could not remove failed container %s: %s", name, exc.detail)

    def _escalate(
        self,
        production_spec: ContainerSpec,
        previous_spec: Optional[ContainerSpec],
        detail: str,
    ):
        previous_config = previous_spec.to_record() if previous_spec else None
        self.logger.critical(
            "MANUAL INTERVENTION REQUIRED: %s failed after the previous instance was removed (%s).",
            production_spec.name,
            detail,
        )
        if previous_config:
            self.logger.critical(
                "Last known configuration of the previous instance:\n%s",
                json.dumps(previous_config, indent=2, sort_keys=True),
            )

        restored = self._emergency_restore(previous_spec)
        raise ManualInterventionRequired(
            actionable_error(
                "manual_intervention",
                name=production_spec.name,
                detail=detail,
                image=previous_spec.image if previous_spec else "unknown",
            ),
            previous_config=previous_config,
            emergency_restored=restored,
        )

    def _emergency_restore(self, previous_spec: Optional[ContainerSpec]) -> bool:
        if previous_spec is None:
            self.logger.critical("No recorded configuration for the previous instance; nothing to restore.")
            return False

        self.logger.warning("Attempting emergency re-creation of %s", previous_spec.name)
        try:
            self.runtime.create(previous_spec)
        except RuntimeClientError as exc:
            self.logger.critical("Emergency re-creation of %s failed: %s", previous_spec.name, exc.detail)
            return False

        self.logger.warning("Emergency re-creation of %s started; verify it manually.", previous_spec.name)
        return True
