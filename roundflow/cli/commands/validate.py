"""``roundflow validate``: check an envelope file against the routing table.

Decodes the envelope exactly as the dispatcher would and reports whether it
would be delivered, dropped as undecodable, or dropped as unrouted.
"""

from __future__ import annotations

from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel

from roundflow.core.runtime import RoundflowRuntime
from roundflow.errors import EnvelopeValidationError

console = Console()


def validate_cmd(
    path: Path = typer.Argument(
        ...,
        exists=True,
        dir_okay=False,
        readable=True,
        help="JSON file holding one envelope.",
    ),
) -> None:
    """Validate the envelope in PATH; exits 1 if it would be dropped."""
    runtime = RoundflowRuntime()
    dispatcher = runtime.dispatcher

    try:
        envelope = dispatcher.receive(path.read_bytes())
    except EnvelopeValidationError as exc:
        console.print(f"[bold red]Invalid envelope:[/bold red] {exc}")
        raise typer.Exit(code=1)

    if not dispatcher.has_route(envelope.topic):
        console.print(
            f"[yellow]No handler for topic[/yellow] [cyan]{envelope.topic}[/cyan]"
        )
        raise typer.Exit(code=1)

    try:
        payload = dispatcher.decode_payload(envelope)
    except EnvelopeValidationError as exc:
        console.print(f"[bold red]Payload rejected:[/bold red] {exc}")
        raise typer.Exit(code=1)

    console.print(
        Panel(
            f"[bold]Topic:[/bold] {envelope.topic}\n"
            f"[bold]Payload:[/bold] {type(payload).__name__}\n"
            f"[bold]Correlation:[/bold] {envelope.correlation_id}",
            title="[green]Envelope OK[/green]",
            border_style="green",
        )
    )
