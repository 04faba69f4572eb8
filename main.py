#!/usr/bin/env python3
"""
Client Onboarding Compliance Engine

Policy-driven document requirements, screening-hit disposition and
lifecycle routing for client onboarding.
Rules decide what evidence is needed. Humans decide the hits.

Usage:
    python main.py --demo ind-low
    python main.py --client test_cases/co_high.json
    python main.py --client test_cases/ind_high.json --non-interactive
    python main.py --search "that arms company in Iran" --demo co-high
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

from rich.console import Console
from rich.panel import Panel
from rich.table import Table

# Load .env file before other imports
from config import get_config
from logger import setup_logging

from agents import set_api_key
from exceptions import OnboardingError
from models import EntityProfile, MatchStatus, VerificationStatus
from pipeline import OnboardingPipeline


# Use legacy_windows mode for better Windows compatibility
console = Console(force_terminal=True, legacy_windows=True)

DEMO_SCENARIOS = {
    "ind-low": "ind_low.json",
    "ind-high": "ind_high.json",
    "co-low": "co_low.json",
    "co-high": "co_high.json",
}


def create_parser() -> argparse.ArgumentParser:
    """Create the CLI argument parser."""
    parser = argparse.ArgumentParser(
        prog="onboarding",
        description="Client Onboarding Compliance Engine - Rules decide the evidence. Humans decide the hits.",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
    %(prog)s --demo ind-low                              # Clean individual, automated approval
    %(prog)s --demo co-high                              # Sanctioned company, interactive disposition
    %(prog)s --client test_cases/ind_high.json --non-interactive
    %(prog)s --demo co-low --force-peer-review

The system will:
  1. Validate intake and derive the required documents from the policy document
  2. Upload and forensically verify every required document
  3. Run risk analysis and screening
  4. Pause for screening-hit disposition (interactive)
  5. Compute the final risk and route the client to its first queue
        """
    )

    parser.add_argument(
        "--client",
        help="Path to client JSON file (type, name, region, tax_info, attributes)"
    )

    parser.add_argument(
        "--demo",
        choices=sorted(DEMO_SCENARIOS),
        help="Run one of the built-in demo scenarios"
    )

    parser.add_argument(
        "-q", "--quiet",
        action="store_true",
        help="Suppress progress output"
    )

    parser.add_argument(
        "--version",
        action="version",
        version="%(prog)s 1.0.0"
    )

    parser.add_argument(
        "--api-key",
        help="Anthropic API key (can also use ANTHROPIC_API_KEY env var)"
    )

    parser.add_argument(
        "--non-interactive",
        action="store_true",
        help="Do not prompt for hit disposition; unresolved hits are marked Unable to Resolve"
    )

    parser.add_argument(
        "--force-peer-review",
        action="store_true",
        help="Route a clean client to Peer Review instead of automated approval"
    )

    parser.add_argument(
        "--search",
        metavar="QUERY",
        help="After onboarding, run a natural-language search over the session's entities"
    )

    return parser


def load_client_file(args: argparse.Namespace) -> dict:
    """Resolve --demo / --client into a client document."""
    if args.demo:
        path = Path(__file__).parent / "test_cases" / DEMO_SCENARIOS[args.demo]
    else:
        path = Path(args.client)
    if not path.exists():
        raise FileNotFoundError(f"Client file not found: {path}")
    return json.loads(path.read_text(encoding="utf-8"))


def display_checklist(entity: EntityProfile):
    """Display the required documents and their verification state."""
    status_colors = {
        VerificationStatus.PENDING: "dim",
        VerificationStatus.SCANNING: "yellow",
        VerificationStatus.VERIFIED: "green",
        VerificationStatus.FLAGGED: "bold red",
    }

    table = Table(title=f"Required Documents ({len(entity.documents)})")
    table.add_column("Document", style="cyan")
    table.add_column("Category")
    table.add_column("Trigger", style="dim")
    table.add_column("Status")

    for doc in entity.documents:
        color = status_colors[doc.verification_status]
        table.add_row(
            doc.name, doc.category.value, doc.trigger_reason,
            f"[{color}]{doc.verification_status.value}[/{color}]",
        )

    console.print(table)
    if entity.active_policies:
        console.print(f"Active policies: {', '.join(entity.active_policies)}\n")


def display_summary(entity: EntityProfile):
    """Display the client's final routing."""
    risk_colors = {
        "Low": "green",
        "Medium": "yellow",
        "High": "red",
    }
    risk_level = entity.risk_level.value
    risk_color = risk_colors.get(risk_level, "white")

    info_lines = [
        f"[bold]{entity.name}[/bold]",
        f"Type: {entity.type.value}",
        f"Entity ID: {entity.id}",
        f"Risk Level: [{risk_color}]{risk_level}[/{risk_color}] ({entity.risk_score})",
        f"Status: [bold]{entity.status.value}[/bold]",
    ]
    if entity.approved_by:
        info_lines.append(f"Approved by: {entity.approved_by.value}")
    if entity.next_review_date:
        info_lines.append(f"Next periodic review: {entity.next_review_date:%Y-%m-%d}")
    if entity.enriched_data:
        info_lines.append(f"\n{entity.enriched_data}")

    console.print(Panel(
        "\n".join(info_lines),
        title="Onboarding Outcome",
        border_style="blue"
    ))

    if entity.risk_factors:
        table = Table(title="Risk Factors")
        table.add_column("Category", style="cyan")
        table.add_column("Description")
        table.add_column("Score", justify="right")
        table.add_column("Severity", style="dim")

        for rf in entity.risk_factors:
            table.add_row(rf.category, rf.description, str(rf.score), rf.severity.value)

        console.print(table)


async def main_async(args: argparse.Namespace) -> int:
    """Async main function."""
    verbose = not args.quiet

    config = get_config()
    # --quiet keeps warnings and errors only
    setup_logging(level=config.log_level if verbose else "WARNING")

    # Set API key
    api_key = args.api_key or config.api_key

    if api_key:
        set_api_key(api_key)
    else:
        console.print("[bold red]Error:[/bold red] No API key found.")
        console.print("Set ANTHROPIC_API_KEY in .env file or pass --api-key argument.")
        return 1

    if not (args.demo or args.client):
        console.print("[bold red]Error:[/bold red] Provide --client or --demo argument.")
        return 1

    if verbose:
        console.print(Panel.fit(
            "[bold blue]Client Onboarding Compliance Engine[/bold blue]\n"
            "Rules decide the evidence. Humans decide the hits.",
            border_style="blue"
        ))

    try:
        client_data = load_client_file(args)
        pipeline = OnboardingPipeline(verbose=verbose)

        if verbose:
            label = client_data.get("label")
            console.print(f"\nProcessing: [bold]{client_data.get('name', 'Unknown')}[/bold]"
                          + (f" [dim]({label})[/dim]" if label else "") + "\n")

        entity = pipeline.create_from_scenario(client_data)

        gate = pipeline.check_intake(entity.id)
        if not gate.allowed:
            console.print(f"[bold red]Intake incomplete:[/bold red] {gate.reason}")
            return 1

        gate = await pipeline.upload_all_documents(entity.id)
        if verbose:
            display_checklist(pipeline.get(entity.id))
        if not gate.allowed:
            console.print(f"[bold yellow]Documentation blocked:[/bold yellow] {gate.reason}")
            console.print("Remove and re-upload the flagged documents before screening.")
            return 2

        gate = await pipeline.submit_for_screening(entity.id)
        if not gate.allowed:
            console.print(f"[bold yellow]Screening blocked:[/bold yellow] {gate.reason}")
            return 2

        if args.non_interactive:
            for hit in pipeline.pending_hits(entity.id):
                pipeline.disposition_hit(entity.id, hit.id, MatchStatus.UNABLE_TO_RESOLVE)
            gate = pipeline.finalize(entity.id, force_peer_review=args.force_peer_review)
        elif pipeline.screening(entity.id).requires_disposition:
            gate = await pipeline.run_interactive_review(entity.id, force_peer_review=args.force_peer_review)
            if gate is None:
                return 130
        else:
            gate = pipeline.finalize(entity.id, force_peer_review=args.force_peer_review)

        if verbose:
            console.print()
            display_summary(pipeline.get(entity.id))

        if args.search:
            result = await pipeline.search(args.search)
            console.print(f"\n[bold]Search:[/bold] {args.search}")
            console.print(f"  Matches: {', '.join(result.matched_ids) or 'none'}")
            console.print(f"  [dim]{result.reason}[/dim]")

        console.print(f"\n[bold green]{gate.reason}[/bold green]")
        return 0

    except KeyboardInterrupt:
        console.print("\n[yellow]Onboarding cancelled by user[/yellow]")
        return 130

    except OnboardingError as e:
        console.print(f"\n[bold red]{e.code}:[/bold red] {e.message}")
        if config.verbose:
            console.print_exception()
        return 1

    except Exception as e:
        console.print(f"\n[bold red]Error:[/bold red] {e}")
        if config.verbose:
            console.print_exception()
        return 1


def main() -> int:
    """Main entry point."""
    parser = create_parser()
    args = parser.parse_args()

    return asyncio.run(main_async(args))


if __name__ == "__main__":
    sys.exit(main())
