"""Cleanup of superseded containers and images."""

import re
from typing import List

from bluegreen.errors import CleanupFailure, RuntimeClientError
from bluegreen.models import Role


class ResourceReclaimer:
    """Prunes stopped releases beyond the retention policy.

    Every step runs even when an earlier one fails; the failures are reported
    together as a CleanupFailure at the end.
    """

    def __init__(self, runtime, logger, service_name: str, production_port: int):
        self.runtime = runtime
        self.logger = logger
        self.service_name = service_name
        self.production_port = production_port
        self.release_pattern = re.compile(rf"^{re.escape(service_name)}-(\d+)$")

    def reclaim(self, retention_count: int = 2, max_age_hours: int = 24, prune_volumes: bool = False) -> int:
        self.logger.info("Cleaning up old resources...")
        failures: List[str] = []
        pruned = self._prune_containers(max(0, retention_count), failures)

        try:
            images = self.runtime.prune_images(max_age_hours)
            pruned += images
            self.logger.debug("Pruned %s dangling images older than %sh", images, max_age_hours)
        except RuntimeClientError as exc:
            self.logger.warning("Image prune failed: %s", exc)
            failures.append(f"image prune: {exc}")

        if prune_volumes:
            try:
                pruned += self.runtime.prune_volumes()
            except RuntimeClientError as exc:
                self.logger.warning("Volume prune failed: %s", exc)
                failures.append(f"volume prune: {exc}")

        if failures:
            raise CleanupFailure(
                f"{len(failures)} cleanup step(s) failed after pruning {pruned} resources: "
                + "; ".join(failures)
            )

        self.logger.info("Cleanup completed (%s resources pruned)", pruned)
        return pruned

    def _prune_containers(self, retention_count: int, failures: List[str]) -> int:
        try:
            instances = self.runtime.list_by_name_prefix(self.service_name)
        except RuntimeClientError as exc:
            self.logger.warning("Could not list containers for %s: %s", self.service_name, exc)
            failures.append(f"container listing: {exc}")
            return 0

        candidates = []
        for instance in instances:
            match = self.release_pattern.match(instance.name)
            if not match or self._is_protected(instance):
                continue
            candidates.append((int(match.group(1)), instance))

        candidates.sort(key=lambda item: item[0], reverse=True)

        removed = 0
        for _, instance in candidates[retention_count:]:
            try:
                self.runtime.remove(instance.name, force=True)
                removed += 1
                self.logger.info("Removed old container %s", instance.name)
            except RuntimeClientError as exc:
                self.logger.warning("Could not remove %s: %s", instance.name, exc)
                failures.append(f"{instance.name}: {exc}")
        return removed

    def _is_protected(self, instance) -> bool:
        return (
            instance.name == self.service_name
            or instance.role == Role.PRODUCTION
            or instance.port == self.production_port
            or instance.is_running
        )
