"""Command-line interface for contact intake."""

import sys
import json
import asyncio
import argparse
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, Progress, TextColumn
from rich.prompt import Confirm, IntPrompt, Prompt
from rich.table import Table
from rich import box

from .company_search import CompanySearch
from .config import ConfigManager
from .dealcloud_client import DealCloudClient
from .dedupe import DeduplicationGate
from .error_handling import ContactCoreError, RecordValidationError, describe_error
from .logging_config import setup_logging
from .models import Config, Notification
from .pipeline import ContactPipeline
from .record_store import merge_options
from .resolvers import search_companies
from .utils import load_input_text, parse_edit, save_contacts, submission_overview

console = Console()

_LEVEL_STYLES = {"error": "bold red", "success": "bold green", "info": "cyan"}


def _load_config(args) -> Config:
    config = ConfigManager(config_path=args.config).load()
    if args.dry_run:
        config.processing.dry_run = True
    return config


def print_notification(notification: Notification):
    style = _LEVEL_STYLES.get(notification.level, "white")
    console.print(f"[{style}]{notification.title}[/{style}] {notification.description}")


def contacts_table(pipeline: ContactPipeline) -> Table:
    """Render the contact table with labels in place of codes."""
    table = Table(title="Contacts", box=box.ROUNDED, show_lines=False)
    table.add_column("#", style="dim", justify="right")
    for column in (
        "Anrede", "Title", "First Name", "Last Name", "Email",
        "Phone", "Employer", "Contact Type", "Job Title",
    ):
        table.add_column(column)

    for index, contact in enumerate(pipeline.store, start=1):
        employer = pipeline.employers.name_for(contact.Employer) or contact.Employer or ""
        table.add_row(
            str(index),
            contact.salutation_label,
            contact.ProfessionalTitle or "",
            contact.FirstName,
            contact.LastName,
            contact.Email,
            contact.BusinessPhone or "",
            employer,
            contact.contact_type_label,
            contact.JobTitle or "",
        )
    return table


async def choose_employer(pipeline: ContactPipeline, row: int, text: str) -> None:
    """Search companies by name and let the user pick the employer."""
    finder = CompanySearch(
        pipeline.client,
        delay=pipeline.config.search_debounce,
        limit=pipeline.config.search_limit,
    )
    finder.schedule(text)
    results = await finder.results()

    options = merge_options(pipeline.employers.options(), results)
    matches = [option for option in options if text.lower() in option[1].lower()]
    if not matches:
        console.print(f"[yellow]No company matches {text!r}[/yellow]")
        return

    for number, (company_id, name) in enumerate(matches, start=1):
        console.print(f"  {number}. {name} [dim]({company_id})[/dim]")
    choice = IntPrompt.ask("Employer", choices=[str(i) for i in range(1, len(matches) + 1)])

    company_id, name = matches[choice - 1]
    chosen = next((c for c in results if str(c.EntryId) == company_id), None)
    if chosen is None:
        pipeline.update_field(row, "Employer", company_id)
    else:
        pipeline.select_employer(row, chosen)


async def review_contacts(pipeline: ContactPipeline):
    """Show the table and apply edits until the user continues."""
    while True:
        console.print(contacts_table(pipeline))
        command = Prompt.ask(
            "Edit with [bold]<row> <field> <value>[/bold], or press Enter to continue",
            default="",
            show_default=False,
        )
        if not command.strip():
            return

        try:
            row, field, value = parse_edit(command)
            if field == "Employer" and value and not value.isdigit():
                await choose_employer(pipeline, row, value)
            else:
                pipeline.update_field(row, field, value or None)
        except (ValueError, RecordValidationError) as e:
            console.print(f"[red]{e}[/red]")


async def run_pipeline(args) -> int:
    """Generate, review, check and insert contacts from one input."""
    text = load_input_text(args.input)
    config = _load_config(args)

    if config.processing.dry_run:
        console.print("🔍 DRY RUN MODE - No contacts will be inserted")

    async with ContactPipeline.from_config(config, on_notify=print_notification) as pipeline:
        with Progress(
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            TextColumn("{task.percentage:>3.0f}%"),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=100)
            pipeline.on_progress = lambda pct, status: progress.update(
                task, completed=pct, description=status
            )
            contacts = await pipeline.generate(text)
        pipeline.on_progress = None

        if contacts is None:
            return 1
        if not contacts:
            console.print("No contacts found in the input")
            return 0

        if args.output:
            save_contacts(pipeline.store, args.output)
            console.print(f"💾 Contacts saved to: {args.output}")

        if not args.yes:
            await review_contacts(pipeline)

        reviewed = await pipeline.check_duplicates()
        if reviewed is None:
            return 1

        console.print("\n[bold]Submission overview[/bold]")
        for line in submission_overview(reviewed):
            style = "red" if line.startswith("-") else "green"
            console.print(f"[{style}]{line}[/{style}]")

        if not args.yes and not Confirm.ask("Submit contacts?", default=True):
            pipeline.cancel()
            console.print("Submission cancelled")
            return 0

        result = await pipeline.confirm()
        if result is None:
            return 1

        console.print(
            f"✅ Inserted {len(result.inserted)} contacts, skipped {len(result.skipped)} existing"
        )
        return 0


async def search(args) -> int:
    """Search companies by a single term."""
    config = _load_config(args)
    async with DealCloudClient(config.dealcloud) as client:
        companies = await search_companies(client, args.text, limit=args.limit)

    if not companies:
        console.print("No companies found")
        return 0

    table = Table(title=f"Companies matching {args.text!r}", box=box.ROUNDED)
    table.add_column("EntryId", justify="right")
    table.add_column("Company")
    for company in companies:
        table.add_row(str(company.EntryId), company.CompanyName)
    console.print(table)
    return 0


async def check_emails(args) -> int:
    """Report which of the given emails already exist."""
    config = _load_config(args)
    async with DealCloudClient(config.dealcloud) as client:
        existing = await DeduplicationGate(client).existing_emails(args.emails)

    for email in args.emails:
        if email in existing:
            console.print(f"[red]- {email}[/red] already exists")
        else:
            console.print(f"[green]+ {email}[/green] is new")
    return 0


def generate_config(args):
    """Generate a configuration template."""
    config_manager = ConfigManager(load_env_file=False)

    if args.output:
        config_manager.save_template(args.output)
        console.print(f"✅ Configuration template saved to: {args.output}")
    else:
        print(json.dumps(ConfigManager.DEFAULT_CONFIG, indent=2))

    return 0


def build_parser() -> argparse.ArgumentParser:
    common = argparse.ArgumentParser(add_help=False)
    common.add_argument("-c", "--config", help="Path to configuration file")
    common.add_argument(
        "--dry-run", action="store_true", help="Preview without inserting contacts"
    )
    common.add_argument("-v", "--verbose", action="store_true", help="Verbose output")
    common.add_argument(
        "--log-format", choices=["json", "text"], default="text", help="Log output format"
    )

    parser = argparse.ArgumentParser(
        prog="contactcore",
        description="Contact intake - turn free text into DealCloud contacts",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Extract contacts from a text file, review and insert them
  contactcore run people.txt

  # Read from stdin, insert without prompts
  cat people.txt | contactcore run - --yes

  # Look up a company
  contactcore search "Acme"

  # Check whether contacts exist
  contactcore check-emails jane@acme.com john@acme.com

  # Generate configuration template
  contactcore generate-config -o config.json
""",
    )

    subparsers = parser.add_subparsers(dest="command", help="Commands")

    run_parser = subparsers.add_parser(
        "run", parents=[common], help="Generate, review and insert contacts"
    )
    run_parser.add_argument("input", help="Path to input text file, or - for stdin")
    run_parser.add_argument("-o", "--output", help="Save generated contacts to file")
    run_parser.add_argument(
        "-y", "--yes", action="store_true", help="Skip editing and confirmation prompts"
    )

    search_parser = subparsers.add_parser("search", parents=[common], help="Search companies")
    search_parser.add_argument("text", help="Part of a company name")
    search_parser.add_argument("--limit", type=int, default=10, help="Maximum results")

    emails_parser = subparsers.add_parser(
        "check-emails", parents=[common], help="Check whether emails already exist"
    )
    emails_parser.add_argument("emails", nargs="+", help="Email addresses")

    config_parser = subparsers.add_parser(
        "generate-config", help="Generate configuration template"
    )
    config_parser.add_argument("-o", "--output", help="Save to file (default: print to stdout)")

    return parser


def main(argv: Optional[list] = None):
    """Main CLI entry point."""
    parser = build_parser()
    args = parser.parse_args(argv)

    if not args.command:
        parser.print_help()
        return 1

    verbose = getattr(args, "verbose", False)
    setup_logging(
        format=getattr(args, "log_format", "text"),
        level="DEBUG" if verbose else "WARNING",
    )

    try:
        if args.command == "run":
            return asyncio.run(run_pipeline(args))
        elif args.command == "search":
            return asyncio.run(search(args))
        elif args.command == "check-emails":
            return asyncio.run(check_emails(args))
        elif args.command == "generate-config":
            return generate_config(args)
    except KeyboardInterrupt:
        console.print("\n⚠️  Interrupted by user")
        return 1
    except ContactCoreError as e:
        console.print(f"\n❌ Error: {describe_error(e)}")
        return 1
    except (OSError, ValueError) as e:
        console.print(f"\n❌ Error: {e}")
        return 1

    return 0


if __name__ == "__main__":
    sys.exit(main())
