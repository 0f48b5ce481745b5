"""``roundflow demo``: run a round end to end on the in-process bus.

Creates a round, has two players RSVP (one with a tag, one without), starts
the round, imports a CSV scorecard and lets the sagas finalize it, printing
every topic published along the way.
"""

from __future__ import annotations

import base64
import uuid
from collections import Counter

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from roundflow.core.runtime import RoundflowRuntime
from roundflow.models import topics
from roundflow.models.events import (
    CreateRoundRequestedPayload,
    ParticipantJoinRequestPayload,
    RoundStartRequestedPayload,
    ScorecardUploadedPayload,
)
from roundflow.models.rounds import Response
from roundflow.services.collaborators import NameMatcher, StaticTagDirectory

console = Console()

DEMO_SCORECARD = b"Player,Total\nPar,54\nAlice Smith,52\nBob Jones,58\nGuest Player,61\n"


def demo_cmd(
    guild_id: str = typer.Option("demo-guild", "--guild", help="Guild to run the demo in."),
    with_import: bool = typer.Option(
        True,
        "--import/--no-import",
        help="Finish the round with a scorecard import.",
    ),
) -> None:
    """Run a complete round with sample data."""
    runtime = RoundflowRuntime(
        responders=[
            StaticTagDirectory({"alice": 7}),
            NameMatcher({"Alice Smith": "alice", "Bob Jones": "bob"}),
        ]
    )

    console.print()
    console.print(
        Panel(
            "[bold]Roundflow Demo[/bold]\n\n"
            "Create -> RSVP -> start -> import scorecard -> finalize.",
            border_style="cyan",
            padding=(1, 2),
        )
    )

    runtime.submit(
        topics.ROUND_CREATION_REQUESTED,
        CreateRoundRequestedPayload(
            guild_id=guild_id,
            title="Sunday Singles",
            location="Riverside Park",
            start_time="in 2 hours",
            user_id="organizer",
        ),
    )
    runtime.run_until_idle()
    rounds = runtime.repository.list_rounds(guild_id)
    if not rounds:
        console.print("[bold red]Round creation failed.[/bold red]")
        raise typer.Exit(code=1)
    round_id = rounds[0].round_id
    console.print(f"[bold green]Round created:[/bold green] {round_id}")

    for user_id in ("alice", "bob"):
        runtime.submit(
            topics.ROUND_PARTICIPANT_JOIN_REQUESTED,
            ParticipantJoinRequestPayload(
                guild_id=guild_id,
                round_id=round_id,
                user_id=user_id,
                response=Response.ACCEPT,
            ),
        )
    runtime.run_until_idle()

    runtime.submit(
        topics.ROUND_START_REQUESTED,
        RoundStartRequestedPayload(guild_id=guild_id, round_id=round_id),
    )
    runtime.run_until_idle()

    if with_import:
        runtime.submit(
            topics.SCORECARD_UPLOADED,
            ScorecardUploadedPayload(
                import_id=str(uuid.uuid4()),
                guild_id=guild_id,
                round_id=round_id,
                user_id="organizer",
                file_name="scorecard.csv",
                file_data=base64.b64encode(DEMO_SCORECARD),
            ),
        )
        runtime.run_until_idle()

    counts = Counter(e.topic for e in runtime.published())
    table = Table(title="Published Topics")
    table.add_column("Topic", style="cyan")
    table.add_column("Count", justify="right")
    for topic, count in counts.items():
        table.add_row(topic, str(count))
    console.print(table)

    final = runtime.repository.get_round(guild_id, round_id)
    participants = Table(title=f"Round {final.title!r} ({final.state.value})")
    participants.add_column("User", style="cyan")
    participants.add_column("Response")
    participants.add_column("Tag", justify="right")
    participants.add_column("Score", justify="right")
    for p in final.participants:
        participants.add_row(
            p.user_id,
            p.response.value,
            "-" if p.tag_number is None else str(p.tag_number),
            "-" if p.score is None else str(p.score),
        )
    console.print(participants)

    dead = runtime.bus.dead_letters
    if dead:
        console.print(f"[bold red]{len(dead)} envelope(s) dead-lettered.[/bold red]")
        raise typer.Exit(code=1)
