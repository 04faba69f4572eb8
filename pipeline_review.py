"""
Review mixin for the Onboarding Pipeline.

Interactive screening-hit disposition: the operator marks every candidate
hit as a confirmed match, a false positive or unresolved, optionally forces
peer review, then finalises the entity into its first queue.
"""

import asyncio
from typing import Callable, Optional

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from logger import get_logger
from models import GateResult, MatchStatus

logger = get_logger(__name__)

console = Console(force_terminal=True, legacy_windows=True)

REVIEW_HELP = """
[bold]Screening Review Commands:[/bold]

  [cyan]decide <hit> <outcome>[/cyan]  Disposition a hit: match | false-positive | unresolved
  [cyan]status[/cyan]                  Show hits and their dispositions
  [cyan]force[/cyan]                   Toggle forced peer review (overrides automated approval)
  [cyan]finalize[/cyan]                Compute final risk and route the entity
  [cyan]help[/cyan]                    Show this help message
""".strip()

OUTCOME_ALIASES = {
    "m": MatchStatus.MATCHED,
    "match": MatchStatus.MATCHED,
    "matched": MatchStatus.MATCHED,
    "u": MatchStatus.UNMATCHED,
    "unmatched": MatchStatus.UNMATCHED,
    "fp": MatchStatus.UNMATCHED,
    "false-positive": MatchStatus.UNMATCHED,
    "r": MatchStatus.UNABLE_TO_RESOLVE,
    "unresolved": MatchStatus.UNABLE_TO_RESOLVE,
    "unable": MatchStatus.UNABLE_TO_RESOLVE,
}

_STATUS_STYLES = {
    MatchStatus.POTENTIAL: "yellow",
    MatchStatus.MATCHED: "red",
    MatchStatus.UNMATCHED: "green",
    MatchStatus.UNABLE_TO_RESOLVE: "magenta",
}


def parse_outcome(text: str) -> Optional[MatchStatus]:
    """Map an operator's outcome word to a disposition, None if unrecognised."""
    return OUTCOME_ALIASES.get(text.strip().lower())


class ReviewMixin:
    """Interactive screening-hit disposition."""

    async def run_interactive_review(
        self,
        entity_id: str,
        force_peer_review: bool = False,
        input_fn: Callable[[str], str] = input,
    ) -> Optional[GateResult]:
        """
        Run the disposition loop until the entity is finalised.

        Returns the finalisation GateResult, or None if the operator quit.
        """
        entity = self.get(entity_id)

        console.print(f"\n[bold yellow]Screening Review: {entity.name}[/bold yellow]")
        console.print(Panel(REVIEW_HELP, title="Review Session", border_style="yellow"))
        self._display_hits(entity_id)

        while True:
            try:
                user_input = await asyncio.get_event_loop().run_in_executor(
                    None, lambda: input_fn("[review] > ")
                )
            except (EOFError, KeyboardInterrupt):
                console.print("\n[yellow]Review cancelled - entity left in Pending Screening[/yellow]")
                return None

            user_input = user_input.strip()
            if not user_input:
                continue

            cmd_lower = user_input.lower()

            if cmd_lower == "help":
                console.print(REVIEW_HELP)

            elif cmd_lower == "status":
                self._display_hits(entity_id)

            elif cmd_lower == "force":
                force_peer_review = not force_peer_review
                state = "on" if force_peer_review else "off"
                console.print(f"  Forced peer review: [bold]{state}[/bold]")

            elif cmd_lower == "finalize":
                gate = self.finalize(entity_id, force_peer_review=force_peer_review)
                if gate.allowed:
                    console.print(f"[bold green]{gate.reason}[/bold green]\n")
                    return gate
                console.print(f"  [red]{gate.reason}[/red]")

            elif cmd_lower.startswith("decide "):
                self._handle_decide(entity_id, user_input)

            else:
                console.print(f"  [red]Unknown command: {user_input}[/red] (type [cyan]help[/cyan])")

    def _handle_decide(self, entity_id: str, user_input: str) -> bool:
        """Handle a decide command: decide <hit_id> <outcome>."""
        session = self.screening(entity_id)
        parts = user_input.split(None, 2)
        if len(parts) < 3:
            console.print("  [red]Usage: decide <hit_id> <match|false-positive|unresolved>[/red]")
            console.print(f"  Available: {', '.join(h.id for h in session.hits)}")
            return False

        hit_id = parts[1]
        outcome = parse_outcome(parts[2])
        if outcome is None:
            console.print(f"  [red]Invalid outcome '{parts[2]}'[/red]")
            console.print("  Valid outcomes: match, false-positive, unresolved")
            return False

        try:
            hit = self.disposition_hit(entity_id, hit_id, outcome)
        except KeyError:
            console.print(f"  [red]Unknown hit: {hit_id}[/red]")
            console.print(f"  Available: {', '.join(h.id for h in session.hits)}")
            return False

        console.print(f"  [green]Recorded:[/green] {hit.name} -> {hit.status.value}")
        remaining = len(session.pending_hits)
        if remaining:
            console.print(f"  {remaining} hit(s) still pending")
        return True

    def _display_hits(self, entity_id: str):
        """Show the screening hits and the service's risk view."""
        session = self.screening(entity_id)
        result = session.result

        console.print(
            f"  Service risk: [bold]{result.risk_level.value}[/bold] ({result.risk_score})"
            f" - {result.screening_result.summary or 'no summary'}"
        )
        if not session.hits:
            console.print("  No screening hits. Type [cyan]finalize[/cyan] to proceed.\n")
            return

        table = Table(title="Screening Hits", show_lines=False)
        table.add_column("ID", style="cyan", width=10)
        table.add_column("Name", ratio=2)
        table.add_column("Type", width=14)
        table.add_column("Score", justify="right", width=6)
        table.add_column("Source", width=12)
        table.add_column("Status", width=18)

        for hit in session.hits:
            style = _STATUS_STYLES[hit.status]
            table.add_row(
                hit.id, hit.name, hit.type.value, str(hit.score),
                hit.list_source or "-", f"[{style}]{hit.status.value}[/{style}]",
            )

        console.print(table)
        console.print(f"\n  {len(session.pending_hits)} of {len(session.hits)} hit(s) awaiting disposition")
