"""
shipreport - command-line entry point.

Runs the discovery recipe for the given filters and prints the report to
stdout. Progress and warnings go to stderr so the report can be piped.
"""

import argparse
import asyncio
import sys
from typing import Optional

from rich.console import Console
from rich.progress import BarColumn, MofNCompleteColumn, Progress, SpinnerColumn, TaskID, TextColumn

from shipreport.core.config import get_settings
from shipreport.core.constants import DEFAULT_DAYS, Audience, EventKind, OutputFormat, Voice
from shipreport.core.exceptions import ShipReportError
from shipreport.core.logging import get_logger, setup_logging
from shipreport.orchestration.context import StatusParams
from shipreport.repositories.cache_repo import InMemoryResponseCache
from shipreport.services.progress import ProgressEvent, ProgressHooks
from shipreport.services.status_service import StatusService

console = Console(stderr=True)
logger = get_logger(__name__)


def parse_args(argv: Optional[list[str]] = None) -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        prog="shipreport",
        description="Summarize what shipped from Bugzilla, Jira and GitHub",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Last week of a component
  shipreport --component "Firefox:Sidebar"

  # Whiteboard tag and a tracking bug, rendered as HTML
  shipreport --whiteboard "[fx-vpn]" --metabug 1869123 --format html

  # Bugzilla plus Jira and GitHub activity for a team
  shipreport --assignee dev@example.com --jira-project FXVPN \\
      --github-repo mozilla/example --github-activity
        """,
    )

    # Sources
    parser.add_argument(
        "--component",
        action="append",
        default=[],
        metavar="PRODUCT[:COMPONENT]",
        help="Bugzilla product, optionally with a component (repeatable)",
    )
    parser.add_argument("--metabug", action="append", type=int, default=[], help="Tracking bug id (repeatable)")
    parser.add_argument("--whiteboard", action="append", default=[], help="Whiteboard substring (repeatable)")
    parser.add_argument("--assignee", action="append", default=[], help="Assignee email (repeatable)")
    parser.add_argument("--jira-jql", action="append", default=[], help="Jira JQL query (repeatable)")
    parser.add_argument("--jira-project", action="append", default=[], help="Jira project key (repeatable)")
    parser.add_argument("--github-repo", action="append", default=[], help="GitHub owner/repo (repeatable)")

    # Generation options
    parser.add_argument(
        "--days",
        type=int,
        default=DEFAULT_DAYS,
        help=f"Window length in days, at least 1 (default: {DEFAULT_DAYS})",
    )
    parser.add_argument("--model", type=str, default=None, help="Summarizer model (default: OPENAI_MODEL or gpt-5)")
    parser.add_argument(
        "--format",
        choices=[f.value for f in OutputFormat],
        default=OutputFormat.MARKDOWN.value,
        help="Output format (default: md)",
    )
    parser.add_argument(
        "--voice",
        choices=[v.value for v in Voice],
        default=Voice.NORMAL.value,
        help="Narration style (default: normal)",
    )
    parser.add_argument(
        "--audience",
        choices=[a.value for a in Audience],
        default=Audience.TECHNICAL.value,
        help="Who the summary is for (default: technical)",
    )

    # Behaviour
    parser.add_argument("--no-cache", action="store_true", help="Bypass the upstream response cache")
    parser.add_argument("--no-patch-context", action="store_true", help="Skip commit patch context")
    parser.add_argument("--github-activity", action="store_true", help="Include GitHub commits and pull requests")
    parser.add_argument("--debug", action="store_true", help="Print diagnostics and debug logs")

    return parser.parse_args(argv)


def build_params(args: argparse.Namespace) -> StatusParams:
    """Build run parameters from CLI arguments."""
    return StatusParams(
        components=args.component,
        metabugs=args.metabug,
        whiteboards=args.whiteboard,
        assignees=args.assignee,
        jira_jql=args.jira_jql,
        jira_projects=args.jira_project,
        github_repos=args.github_repo,
        days=max(1, args.days),
        model=args.model,
        format=OutputFormat(args.format),
        voice=Voice(args.voice),
        audience=Audience(args.audience),
        include_patch_context=not args.no_patch_context,
        include_github_activity=args.github_activity,
        debug=args.debug,
    )


class ConsoleReporter:
    """Renders progress events on the stderr console."""

    def __init__(self, progress: Progress, task: TaskID) -> None:
        self.progress = progress
        self.task = task

    def __call__(self, event: ProgressEvent) -> None:
        data = event.data
        if event.kind == EventKind.INFO:
            self.progress.console.print(f"[dim]{data.get('msg', '')}[/dim]")
        elif event.kind == EventKind.WARN:
            self.progress.console.print(f"[yellow]Warning:[/yellow] {data.get('msg', '')}")
        elif event.kind == EventKind.PHASE:
            name = data.get("name", "")
            if data.get("failed"):
                self.progress.update(self.task, description=f"[red]✗[/red] {name}")
            elif data.get("complete"):
                self.progress.update(self.task, description=f"[green]✓[/green] {name}")
            else:
                self.progress.update(self.task, description=name, total=data.get("total"), completed=0)
        elif event.kind == EventKind.PROGRESS:
            self.progress.update(self.task, completed=data.get("current", 0), total=data.get("total"))


async def run_status(args: argparse.Namespace) -> int:
    """Run one status report and print it."""
    settings = get_settings()
    params = build_params(args)

    missing = settings.missing_credentials(need_jira=params.has_jira_inputs)
    if missing:
        console.print(f"[red]Error:[/red] Missing required environment variables: {', '.join(missing)}")
        return 1

    cache = InMemoryResponseCache(
        default_ttl_seconds=settings.cache.ttl_seconds,
        sweep_interval_seconds=settings.cache.sweep_interval_seconds,
        bypass=args.no_cache or settings.skip_cache,
    )
    service = StatusService(settings=settings, cache=cache)

    try:
        with Progress(
            SpinnerColumn(),
            TextColumn("[progress.description]{task.description}"),
            BarColumn(),
            MofNCompleteColumn(),
            console=console,
            transient=True,
        ) as progress:
            task = progress.add_task("Starting...", total=None)
            hooks = ProgressHooks(debug_enabled=args.debug, sink=ConsoleReporter(progress, task))
            report = await service.oneshot(params, hooks)
    except ShipReportError as e:
        logger.error("Status run failed", error_code=e.code, error_message=e.message)
        console.print(f"[red]Error:[/red] {e.message}")
        return 1
    except Exception as e:
        logger.exception("Status run failed")
        console.print(f"[red]Error:[/red] {e}")
        return 1

    print(report.output)
    if report.stats.get("trimmed_count"):
        console.print(f"[yellow]{report.stats['trimmed_count']} bug(s) were left out of the summary[/yellow]")
    return 0


def main(argv: Optional[list[str]] = None) -> int:
    """Main entry point."""
    args = parse_args(argv)
    setup_logging("DEBUG" if args.debug else "WARNING", stream=sys.stderr)

    try:
        return asyncio.run(run_status(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Cancelled by user[/yellow]")
        return 130


if __name__ == "__main__":
    sys.exit(main())
