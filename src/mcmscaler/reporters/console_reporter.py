# src/mcmscaler/reporters/console_reporter.py
"""
A reporter that displays node groups and template nodes in the console.
"""

import logging
from typing import List

from rich.console import Console
from rich.table import Table

from ..models.pool import PoolStatus
from ..provider.template import TemplateNodeInfo

logger = logging.getLogger(__name__)


class ConsoleReporter:
    """
    Renders node group state to the console using the 'rich' library.
    """

    def __init__(self):
        self.console = Console()

    def report(self, data: List[PoolStatus]):
        """
        Displays one row per node group with its bounds and target size.
        """
        if not data:
            self.console.print("No node groups configured.", style="yellow")
            return

        table = Table(title="Node Groups", header_style="bold magenta")
        table.add_column("Name", style="cyan")
        table.add_column("Namespace", style="cyan")
        table.add_column("Min", justify="right")
        table.add_column("Max", justify="right")
        table.add_column("Target", style="green", justify="right")

        for item in sorted(data, key=lambda s: (s.namespace, s.name)):
            target_style = "red" if not item.min_size <= item.target_size <= item.max_size else "green"
            table.add_row(
                item.name,
                item.namespace,
                str(item.min_size),
                str(item.max_size),
                f"[{target_style}]{item.target_size}[/{target_style}]",
            )
        self.console.print(table)

    def report_template(self, info: TemplateNodeInfo):
        """
        Displays the capacity, labels and taints of a template node.
        """
        node = info.node
        table = Table(title=f"Template node {node.metadata.name}", header_style="bold magenta", show_lines=True)
        table.add_column("Kind", style="cyan")
        table.add_column("Key")
        table.add_column("Value", style="green")

        for key, value in sorted(node.status.capacity.items()):
            table.add_row("capacity", key, value)
        for key, value in sorted(node.metadata.labels.items()):
            table.add_row("label", key, value)
        for taint in node.spec.taints or []:
            table.add_row("taint", taint.key, f"{taint.value}:{taint.effect}")
        self.console.print(table)
