"""End-of-release report rendering."""

from typing import Dict, List, Optional

from rich.markup import escape
from rich.table import Table

from bluegreen.models import ContainerInstance, DeploymentRecord


class ReportService:
    """Prints a summary of the release and the service's containers."""

    def __init__(self, console):
        self.console = console

    def render(
        self,
        record: DeploymentRecord,
        instances: List[ContainerInstance],
        usage: Optional[Dict[str, Dict[str, str]]] = None,
    ):
        summary = Table(title="Deployment Report", show_header=False)
        summary.add_column("Field", style="bold")
        summary.add_column("Value")
        summary.add_row("Service", record.service)
        summary.add_row("Image", record.image)
        summary.add_row("Digest", record.image_digest or "-")
        summary.add_row("Version", record.release_id)
        summary.add_row("Outcome", record.outcome.value if record.outcome else "-")
        if record.error:
            summary.add_row("Error", escape(record.error))
        if record.emergency_restored is not None:
            summary.add_row("Emergency restore", "started" if record.emergency_restored else "not possible")
        self.console.print(summary)

        stages = Table(title="Transitions")
        stages.add_column("Stage")
        stages.add_column("At")
        stages.add_column("Detail")
        for transition in record.transitions:
            stages.add_row(transition["stage"], transition["at"], escape(transition.get("detail") or ""))
        self.console.print(stages)

        if not instances:
            return

        containers = Table(title="Containers")
        containers.add_column("Name")
        containers.add_column("Role")
        containers.add_column("State")
        containers.add_column("Port")
        containers.add_column("CPU")
        containers.add_column("Memory")
        usage = usage or {}
        for instance in instances:
            stats = usage.get(instance.name, {})
            containers.add_row(
                instance.name,
                instance.role.value,
                instance.state,
                str(instance.port) if instance.port else "-",
                stats.get("cpu", "-"),
                stats.get("memory", "-"),
            )
        self.console.print(containers)
