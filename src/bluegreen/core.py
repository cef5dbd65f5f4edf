import logging
import os
import time
from typing import Callable, Dict, List, Optional

from rich.console import Console
from rich.markup import escape
from rich.table import Table

from .constants import (
    EXIT_CANCELLED,
    EXIT_FAILURE,
    EXIT_MANUAL_INTERVENTION,
    EXIT_SUCCESS,
    LABEL_IMAGE,
    LABEL_ROLE,
    LABEL_SERVICE,
    LABEL_VERSION,
)
from .errors import (
    CleanupFailure,
    DeployError,
    HealthCheckFailure,
    ManualInterventionRequired,
    PreflightError,
    PromotionFailure,
    RuntimeClientError,
    StagingError,
)
from .errors_catalog import actionable_error
from .models import (
    ContainerInstance,
    ContainerSpec,
    DeploySettings,
    DeploymentRecord,
    HealthCheckSpec,
    HealthVerdict,
    Outcome,
    ReleaseRequest,
    Role,
    Stage,
)
from .services.cancellation import CancellationGuard
from .services.command_runner import CommandRunner
from .services.docker_runtime import DockerRuntimeClient
from .services.health import HealthMonitor
from .services.lock import DeploymentLock
from .services.notifier import Notifier
from .services.reclaimer import ResourceReclaimer
from .services.records import DeploymentRecordService
from .services.registry import RegistryAuthenticator
from .services.report import ReportService
from .services.secrets import SecretsService
from .services.traffic import TrafficSwitch
from .services.verification import EndpointVerifier

console = Console()
logger = logging.getLogger("bluegreen")


class DeploymentOrchestrator:
    """Runs one blue-green release of a service as a sequence of stages."""

    def __init__(
        self,
        request: ReleaseRequest,
        settings: Optional[DeploySettings] = None,
        runtime=None,
        secrets=None,
        notifier: Optional[Notifier] = None,
        verifier: Optional[EndpointVerifier] = None,
        guard: Optional[CancellationGuard] = None,
    ):
        self.request = request
        self.settings = settings or DeploySettings()
        self.service_name = self.settings.service_name
        self.release_id = self._build_release_id()
        self.staging_name = f"{self.service_name}-{self.release_id}"

        self.command_runner = CommandRunner(logger=logger)
        self.runtime = runtime or DockerRuntimeClient(self.command_runner, logger)
        self.secrets = secrets or SecretsService(secrets_file=self.settings.secrets_file)
        self.guard = guard or CancellationGuard(logger)
        self.monitor = HealthMonitor(self.runtime, logger, checkpoint=self.guard.checkpoint)
        self.authenticator = RegistryAuthenticator(
            runtime=self.runtime,
            secrets=self.secrets,
            logger=logger,
            console=console,
            registry=self.settings.registry,
            username_secret=self.settings.registry_username_secret,
            password_secret=self.settings.registry_password_secret,
        )
        self.verifier = verifier or EndpointVerifier(
            logger,
            host=self.settings.verify_host,
            timeout=self.settings.verify_timeout,
        )
        self.traffic_switch = TrafficSwitch(
            runtime=self.runtime,
            monitor=self.monitor,
            logger=logger,
            console=console,
            grace_seconds=self.settings.grace_seconds,
            settle_seconds=self.settings.promotion_settle_seconds,
            poll_interval=self.settings.promotion_poll_interval,
            max_attempts=self.settings.promotion_max_attempts,
        )
        self.reclaimer = ResourceReclaimer(
            self.runtime,
            logger,
            service_name=self.service_name,
            production_port=self.request.production_port,
        )
        self.records = DeploymentRecordService(
            os.path.join(self.settings.state_dir, self.service_name, "deployments.json"),
            logger,
        )
        self.lock = DeploymentLock(self.settings.state_dir, self.service_name, logger)
        self.notifier = notifier
        self.report_service = ReportService(console)

        self.record = DeploymentRecord(
            release_id=self.release_id,
            service=self.service_name,
            image=self.request.image,
        )
        self.staging: Optional[ContainerInstance] = None
        self.staging_requested = False
        self.old: Optional[ContainerInstance] = None
        self.previous_spec: Optional[ContainerSpec] = None
        self.production: Optional[ContainerInstance] = None
        self.promoted = False
        self._record_started = False

    @staticmethod
    def _build_release_id() -> str:
        return str(time.time_ns() // 1_000_000)

    def build_container_spec(self, name: str, port: int, role: Role, health: HealthCheckSpec) -> ContainerSpec:
        env = dict(self.settings.default_env)
        env.update(self.request.env)
        env.setdefault("PORT", str(self.request.container_port))
        return ContainerSpec(
            name=name,
            image=self.request.image,
            host_port=port,
            container_port=self.request.container_port,
            env=env,
            limits=self.request.limits,
            security=self.settings.security,
            health=health,
            labels={
                LABEL_SERVICE: self.service_name,
                LABEL_ROLE: role.value,
                LABEL_VERSION: self.release_id,
                LABEL_IMAGE: self.request.image,
            },
            network=self.settings.network,
        )

    def _transition(self, stage: Stage, detail: Optional[str] = None):
        self.record.add_transition(stage, detail)
        if self._record_started:
            self.records.save(self.record)
        logger.debug("Stage -> %s", stage.value)

    def _run_stage(self, stage: Stage, callback: Callable, *args, **kwargs):
        self._transition(stage)
        try:
            return callback(*args, **kwargs)
        except DeployError as exc:
            if exc.stage is None:
                exc.stage = stage.value
            raise

    def _resolve_notifier(self) -> Notifier:
        if self.notifier is not None:
            return self.notifier
        webhook_url = None
        if self.settings.notify_webhook_secret:
            webhook_url = self.secrets.find_credential(self.settings.notify_webhook_secret)
        return Notifier(logger, webhook_url=webhook_url)

    def authenticate(self):
        console.print("[blue]Verifying Docker daemon...[/blue]")
        try:
            self.runtime.ping()
        except RuntimeClientError as exc:
            raise PreflightError(actionable_error("runtime_unreachable", detail=exc.detail)) from exc

        if self.settings.skip_registry_login:
            logger.warning("Registry login skipped; assuming a public image or an existing login.")
            return
        self.authenticator.authenticate()

    def pull_image(self):
        self.authenticator.pull(
            self.request.image,
            attempts=self.settings.pull_attempts,
            backoff_seconds=self.settings.pull_backoff_seconds,
        )
        try:
            self.record.image_digest = self.runtime.image_digest(self.request.image)
        except RuntimeClientError as exc:
            logger.warning("Could not read digest of %s: %s", self.request.image, exc)

    def stage_instance(self):
        try:
            instances = self.runtime.list_by_name_prefix(self.service_name)
        except RuntimeClientError as exc:
            raise StagingError(f"Could not list containers of {self.service_name}: {exc.detail}") from exc

        for instance in instances:
            if instance.role == Role.STAGING and instance.is_running and instance.name != self.service_name:
                logger.warning("Removing orphaned staging container %s", instance.name)
                try:
                    self.runtime.remove(instance.name, force=True)
                except RuntimeClientError as exc:
                    raise StagingError(
                        f"Could not remove orphaned staging container {instance.name}: {exc.detail}"
                    ) from exc

        self.old = next((i for i in instances if i.name == self.service_name), None)
        if self.old is not None:
            logger.info("Found current production container: %s", self.old.name)
            try:
                self.previous_spec = self.runtime.inspect_config(self.old.name)
            except RuntimeClientError as exc:
                logger.warning("Could not record configuration of %s: %s", self.old.name, exc)
            if self.previous_spec is not None:
                self.record.previous_production = self.previous_spec.to_record()

        try:
            if self.settings.network:
                self.runtime.ensure_network(self.settings.network)
            spec = self.build_container_spec(
                self.staging_name,
                self.request.staging_port,
                Role.STAGING,
                self.settings.staging_health,
            )
            console.print(f"[blue]Starting new container: {self.staging_name}[/blue]")
            self.staging_requested = True
            self.staging = self.runtime.create(spec)
        except RuntimeClientError as exc:
            logger.error("Runtime rejected %s: %s", self.staging_name, exc.detail)
            raise StagingError(
                actionable_error(
                    "staging_rejected",
                    name=self.staging_name,
                    port=self.request.staging_port,
                )
            ) from exc

    def check_health(self):
        console.print("[yellow]Container started, waiting for health check...[/yellow]")
        verdict = self.monitor.await_healthy(
            self.staging,
            poll_interval=self.settings.health_poll_interval,
            max_attempts=self.settings.health_max_attempts,
        )
        if verdict != HealthVerdict.HEALTHY:
            log_tail = self._capture_logs(self.staging.name)
            raise HealthCheckFailure(
                actionable_error("health_check_failed", name=self.staging.name, verdict=verdict.value),
                log_tail=log_tail,
            )

        if not self.settings.verify_paths:
            return
        console.print("[blue]Verifying application endpoints...[/blue]")
        failure = self.verifier.verify(self.request.staging_port, self.settings.verify_paths)
        if failure:
            log_tail = self._capture_logs(self.staging.name)
            raise HealthCheckFailure(
                actionable_error(
                    "endpoint_check_failed",
                    name=self.staging.name,
                    detail=failure,
                    port=self.request.staging_port,
                ),
                log_tail=log_tail,
            )
        console.print("[green]Application verification successful.[/green]")

    def _capture_logs(self, name: str) -> str:
        try:
            log_tail = self.runtime.logs(name, self.settings.log_tail_lines)
        except RuntimeClientError as exc:
            logger.warning("Could not read logs of %s: %s", name, exc)
            return ""
        if log_tail:
            logger.error("Last %s log lines of %s:\n%s", self.settings.log_tail_lines, name, log_tail)
        return log_tail

    def promote(self):
        production_spec = self.build_container_spec(
            self.service_name,
            self.request.production_port,
            Role.PRODUCTION,
            self.settings.production_health,
        )
        self.production = self.traffic_switch.promote(
            self.staging,
            production_spec,
            old=self.old,
            previous_spec=self.previous_spec,
        )
        self.promoted = True

    def retire_old(self):
        try:
            self.runtime.stop(self.staging_name, self.settings.grace_seconds)
            self.runtime.remove(self.staging_name)
        except RuntimeClientError as exc:
            logger.warning("Could not retire %s: %s", self.staging_name, exc)
            return
        logger.info("Retired staging container %s", self.staging_name)

    def clean(self):
        try:
            self.reclaimer.reclaim(
                retention_count=self.settings.retention_count,
                max_age_hours=self.settings.image_max_age_hours,
                prune_volumes=self.settings.prune_volumes,
            )
        except CleanupFailure as exc:
            logger.warning("Cleanup incomplete (release unaffected): %s", exc)

    def rollback(self):
        if self.promoted or not self.staging_requested:
            return
        console.print("[yellow]Cleaning up failed deployment...[/yellow]")
        try:
            self.runtime.remove(self.staging_name, force=True)
            logger.info("Removed failed container: %s", self.staging_name)
        except RuntimeClientError as exc:
            logger.warning("Could not remove staging container %s: %s", self.staging_name, exc)
        if self.staging is not None:
            self.staging.advance(Role.RETIRING)

    def print_plan(self):
        table = Table(title="Release plan (dry run)", show_header=False)
        table.add_column("Field", style="bold")
        table.add_column("Value")
        table.add_row("Service", self.service_name)
        table.add_row("Image", self.request.image)
        table.add_row("Staging container", f"{self.staging_name} on port {self.request.staging_port}")
        table.add_row("Production container", f"{self.service_name} on port {self.request.production_port}")
        table.add_row("Limits", f"memory={self.request.limits.memory} cpus={self.request.limits.cpus}")
        table.add_row("Network", self.settings.network or "-")
        table.add_row(
            "Stages",
            " -> ".join(
                stage.value
                for stage in (
                    Stage.AUTHENTICATING,
                    Stage.PULLING,
                    Stage.STAGING,
                    Stage.HEALTH_CHECKING,
                    Stage.PROMOTING,
                    Stage.RETIRING_OLD,
                    Stage.CLEANING,
                )
            ),
        )
        console.print(table)

    def _list_instances(self) -> List[ContainerInstance]:
        try:
            return self.runtime.list_by_name_prefix(self.service_name)
        except RuntimeClientError:
            return []

    def _resource_usage(self, instances: List[ContainerInstance]) -> Dict[str, Dict[str, str]]:
        usage = {}
        for instance in instances:
            if not instance.is_running:
                continue
            try:
                stats = self.runtime.resource_usage(instance.name)
            except RuntimeClientError as exc:
                logger.debug("Could not read resource usage of %s: %s", instance.name, exc.detail)
                continue
            if stats:
                usage[instance.name] = stats
        return usage

    def run(self) -> int:
        if self.settings.dry_run:
            self.print_plan()
            return EXIT_SUCCESS

        exit_code = EXIT_FAILURE
        outcome = Outcome.FAILED
        terminal = Stage.FAILED
        error: Optional[str] = None
        event = "deployment_failed"

        try:
            logger.info("Starting blue-green deployment of %s (%s)", self.service_name, self.request.image)
            self.guard.install()
            self.lock.acquire()
            self.records.begin(self.record)
            self._record_started = True
            last_release = self.records.last_successful()
            if last_release:
                logger.info(
                    "Last successful release: %s (%s)", last_release.get("release_id"), last_release.get("image")
                )
            self.notifier = self._resolve_notifier()
            self.notifier.notify(
                "deployment_started",
                {"service": self.service_name, "image": self.request.image, "version": self.release_id},
            )

            self._run_stage(Stage.AUTHENTICATING, self.authenticate)
            self._run_stage(Stage.PULLING, self.pull_image)
            self._run_stage(Stage.STAGING, self.stage_instance)
            self._run_stage(Stage.HEALTH_CHECKING, self.check_health)
            with self.guard.shield():
                self._run_stage(Stage.PROMOTING, self.promote)
            self._run_stage(Stage.RETIRING_OLD, self.retire_old)
            if self.guard.cancel_requested:
                logger.warning("Cancellation was requested during the swap; skipping cleanup.")
            else:
                self._run_stage(Stage.CLEANING, self.clean)

            console.print("[bold green]Deployment completed successfully![/bold green]")
            exit_code = EXIT_SUCCESS
            outcome = Outcome.SUCCESS
            terminal = Stage.DONE
            event = "deployment_succeeded"
            return exit_code

        except KeyboardInterrupt:
            console.print("[bold red]Deployment interrupted.[/bold red]")
            exit_code = EXIT_CANCELLED
            event = "deployment_cancelled"
            if self.promoted:
                error = "Deployment cancelled after the swap; the new release stays live."
                logger.warning(error)
                outcome = Outcome.SUCCESS
                terminal = Stage.DONE
                return exit_code
            error = "Deployment cancelled by signal."
            logger.warning(error)
            self.rollback()
            outcome = Outcome.ROLLED_BACK
            terminal = Stage.ROLLED_BACK
            return exit_code
        except PreflightError as exc:
            error = self._report_error(exc)
            return exit_code
        except ManualInterventionRequired as exc:
            error = self._report_error(exc, critical=True)
            if exc.previous_config:
                self.record.previous_production = exc.previous_config
            self.record.emergency_restored = exc.emergency_restored
            if exc.emergency_restored:
                console.print(
                    f"[yellow]The previous image was re-created as {escape(self.service_name)}; verify it before redeploying.[/yellow]"
                )
            else:
                console.print("[bold red]The previous instance could not be re-created automatically.[/bold red]")
            exit_code = EXIT_MANUAL_INTERVENTION
            event = "manual_intervention_required"
            return exit_code
        except PromotionFailure as exc:
            error = self._report_error(exc)
            self.rollback()
            outcome = Outcome.ROLLED_BACK
            terminal = Stage.ROLLED_BACK
            event = "deployment_rolled_back"
            return exit_code
        except DeployError as exc:
            error = self._report_error(exc)
            if isinstance(exc, HealthCheckFailure) and exc.log_tail:
                console.print("[red]Recent container logs:[/red]")
                console.print(exc.log_tail, style="red", markup=False)
            self.rollback()
            terminal = Stage.FAILED if exc.stage == Stage.AUTHENTICATING.value else Stage.ROLLED_BACK
            return exit_code
        except Exception as exc:
            console.print(f"[bold red]Unexpected error:[/bold red] {escape(str(exc))}")
            logger.exception("Unexpected error")
            error = str(exc)
            self.rollback()
            terminal = Stage.ROLLED_BACK if not self.promoted else Stage.FAILED
            return exit_code
        finally:
            self._finish(terminal, outcome, exit_code, error, event)

    def _report_error(self, exc: DeployError, critical: bool = False) -> str:
        stage = exc.stage or "run"
        message = f"[{stage}] {exc}"
        console.print(f"[bold red]Error:[/bold red] {escape(message)}")
        if critical:
            logger.critical(message)
        else:
            logger.error(message)
        return message

    def _finish(self, terminal: Stage, outcome: Outcome, exit_code: int, error: Optional[str], event: str):
        self.record.outcome = outcome
        self.record.exit_code = exit_code
        self.record.error = error
        self._transition(terminal, error)

        if self.notifier is not None:
            self.notifier.notify(
                event,
                {
                    "service": self.service_name,
                    "image": self.request.image,
                    "version": self.release_id,
                    "outcome": outcome.value,
                    "error": error,
                },
            )

        if self._record_started:
            instances = self._list_instances()
            self.report_service.render(self.record, instances, self._resource_usage(instances))

        self.guard.restore()
        self.lock.release()
