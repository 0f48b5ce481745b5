"""``roundflow topics``: list every routed topic and its handler."""

from __future__ import annotations

from rich.console import Console
from rich.table import Table

from roundflow.core.runtime import RoundflowRuntime

console = Console()


def topics_cmd() -> None:
    """Show the routing table: topic, handler and payload model."""
    runtime = RoundflowRuntime()
    routes = runtime.dispatcher.routes

    table = Table(title=f"Routed Topics ({len(routes)})")
    table.add_column("Topic", style="cyan")
    table.add_column("Handler", style="green")
    table.add_column("Payload")

    for route in routes:
        table.add_row(route.topic, route.name, route.payload_model.__name__)

    console.print(table)
