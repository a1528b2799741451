"""
QualityPilot - Step execution engine for AI-authored browser tests
Main entry point for the application.
"""

import argparse
import asyncio
import json
import signal
import sys
from pathlib import Path
from typing import Dict, List, Optional, Tuple
from uuid import uuid4

from pydantic import ValidationError as PydanticValidationError
from rich.console import Console
from rich.markup import escape
from rich.panel import Panel
from rich.table import Table

from qualitypilot import __version__
from qualitypilot.agents.step_generator import OpenAIStepGenerator, StaticStepGenerator
from qualitypilot.config.settings import SUPPORTED_BROWSERS, get_settings
from qualitypilot.core.interfaces import StepGenerator
from qualitypilot.core.types import (
    EventType,
    Run,
    RunEvent,
    RunOptions,
    RunRequest,
    RunStatus,
    StepStatus,
    Viewport,
)
from qualitypilot.error_handling.exceptions import QualityPilotError
from qualitypilot.monitoring.logger import get_logger, setup_logging
from qualitypilot.orchestration.events import EventBus
from qualitypilot.orchestration.registry import ExecutionRegistry
from qualitypilot.orchestration.runner import StepRunner

console = Console()
logger = get_logger("main")

STATUS_COLORS = {
    StepStatus.COMPLETED: "green",
    StepStatus.FAILED: "red",
    StepStatus.SKIPPED: "yellow",
    StepStatus.RUNNING: "cyan",
    StepStatus.PENDING: "dim",
}


def parse_viewport(value: str) -> Viewport:
    """argparse type for WIDTHxHEIGHT."""
    try:
        width, height = value.lower().split("x", 1)
        return Viewport(width=int(width), height=int(height))
    except (ValueError, PydanticValidationError):
        raise argparse.ArgumentTypeError(
            f"Invalid viewport {value!r}; expected WIDTHxHEIGHT, e.g. 1280x720"
        )


def parse_credential(value: str) -> Tuple[str, str]:
    """argparse type for KEY=VALUE."""
    key, sep, secret = value.partition("=")
    if not sep or not key.strip():
        raise argparse.ArgumentTypeError("Credentials must be given as KEY=VALUE")
    return key.strip(), secret


def create_parser() -> argparse.ArgumentParser:
    """Create command line argument parser."""
    parser = argparse.ArgumentParser(
        description=f"QualityPilot - Step execution engine v{__version__}",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  # Generate steps with OpenAI and run them
  qualitypilot --url https://example.com --prompt "Log in and open settings" \\
      --credential email=me@example.com --credential password=secret

  # Run a fixed list of steps
  qualitypilot --url https://example.com --steps steps.json --headed
        """,
    )

    parser.add_argument("--version", action="store_true", help="Show version information")

    # Input options
    parser.add_argument("-p", "--prompt", help="Natural language test description")
    parser.add_argument("-u", "--url", help="URL the test starts from")
    parser.add_argument(
        "-s", "--steps",
        type=Path,
        help="JSON file with step definitions (skips AI step generation)",
    )
    parser.add_argument(
        "-c", "--credential",
        type=parse_credential,
        action="append",
        default=[],
        metavar="KEY=VALUE",
        help="Credential substituted into {{KEY}} placeholders (repeatable)",
    )

    # Browser options
    parser.add_argument(
        "--browser",
        choices=SUPPORTED_BROWSERS,
        help="Browser engine (default: from settings)",
    )
    parser.add_argument(
        "--headed",
        action="store_true",
        help="Show the browser window",
    )
    parser.add_argument(
        "--timeout",
        type=int,
        help="Default action timeout in milliseconds",
    )
    parser.add_argument(
        "--viewport",
        type=parse_viewport,
        help="Viewport size as WIDTHxHEIGHT (default: 1280x720)",
    )

    # Execution and output options
    parser.add_argument(
        "--no-scan",
        action="store_true",
        help="Do not scan the page before generating steps",
    )
    parser.add_argument(
        "--json-events",
        action="store_true",
        help="Print lifecycle events as JSON lines",
    )
    parser.add_argument(
        "--debug",
        action="store_true",
        help="Enable debug mode with verbose logging",
    )

    return parser


class EventRenderer:
    """Prints lifecycle events to the console."""

    def __init__(self, output: Console, json_events: bool = False):
        self.output = output
        self.json_events = json_events

    def __call__(self, event: RunEvent) -> None:
        if self.json_events:
            self.output.print(
                json.dumps(event.to_wire()), markup=False, highlight=False, soft_wrap=True
            )
            return

        data = event.data
        if event.type is EventType.TEST_STARTED:
            self.output.print(f"[bold cyan]Test started:[/bold cyan] {escape(str(data.get('prompt')))}")
        elif event.type is EventType.LOG:
            self.output.print(f"[dim]{escape(str(data.get('message')))}[/dim]")
        elif event.type is EventType.STEP_STARTED:
            step = data["step"]
            label = step.get("description") or step.get("action")
            self.output.print(f"[cyan]→ {step['id']}[/cyan] {escape(str(label))}")
        elif event.type is EventType.STEP_COMPLETED:
            self.output.print(f"  [green]✓ {data['step']['id']} completed[/green]")
        elif event.type is EventType.STEP_FAILED:
            self.output.print(f"  [red]✗ {data['step']['id']} failed:[/red] {escape(str(data.get('error')))}")
        elif event.type is EventType.SCREENSHOT:
            self.output.print(f"  [dim]screenshot captured for {data.get('stepId')}[/dim]")
        elif event.type is EventType.ERROR:
            self.output.print(f"[red]Error: {escape(str(data.get('message')))}[/red]")
        elif event.type is EventType.TEST_COMPLETED:
            self.output.print("[bold green]Test completed[/bold green]")
        elif event.type is EventType.TEST_FAILED:
            self.output.print(f"[bold red]Test failed:[/bold red] {escape(str(data.get('error')))}")


def build_generator(steps_file: Optional[Path]) -> StepGenerator:
    if steps_file is not None:
        return StaticStepGenerator.from_file(steps_file)
    return OpenAIStepGenerator()


def print_summary(run: Run) -> None:
    """Print a table of step outcomes."""
    table = Table(title="Test Execution Summary")
    table.add_column("Step")
    table.add_column("Action")
    table.add_column("Target")
    table.add_column("Status")
    table.add_column("Error", overflow="fold")

    for step in run.steps:
        color = STATUS_COLORS.get(step.status, "white")
        table.add_row(
            step.id,
            step.action,
            escape(step.target or ""),
            f"[{color}]{step.status.value}[/{color}]",
            escape(step.error or ""),
        )

    console.print(table)
    status_color = "green" if run.status is RunStatus.COMPLETED else "red"
    console.print(f"Status: [{status_color}]{run.status.value}[/{status_color}]")
    if run.duration_seconds is not None:
        console.print(f"Duration: {run.duration_seconds:.1f}s")
    if run.screenshots:
        console.print(f"Screenshots: [cyan]{len(run.screenshots)}[/cyan]")
    if run.video:
        console.print(f"Video: [cyan]{run.video}[/cyan]")


async def run_test(
    request: RunRequest,
    generator: StepGenerator,
    json_events: bool = False,
) -> Run:
    """Execute one run, cancelling cooperatively on Ctrl+C."""
    registry = ExecutionRegistry()
    bus = EventBus()
    bus.subscribe(EventRenderer(console, json_events=json_events))
    runner = StepRunner(step_generator=generator, registry=registry, events=bus)

    run = Run.from_request(str(uuid4()), request)

    loop = asyncio.get_running_loop()
    try:
        loop.add_signal_handler(signal.SIGINT, _request_cancel, registry, run.id)
    except (NotImplementedError, RuntimeError):
        logger.debug("Signal handlers unavailable; Ctrl+C will abort immediately")

    try:
        return await runner.run(run, request.credentials)
    finally:
        try:
            loop.remove_signal_handler(signal.SIGINT)
        except (NotImplementedError, RuntimeError):
            pass


def _request_cancel(registry: ExecutionRegistry, run_id: str) -> None:
    if registry.request_cancel(run_id):
        console.print("\n[yellow]Cancelling after the current step...[/yellow]")


def show_version() -> int:
    console.print(f"QualityPilot v{__version__}")
    return 0


async def async_main(args: Optional[List[str]] = None) -> int:
    """Async main entry point."""
    parser = create_parser()
    parsed_args = parser.parse_args(args)

    if parsed_args.version:
        return show_version()

    if not parsed_args.url or not (parsed_args.prompt or parsed_args.steps):
        parser.print_help()
        return 1

    settings = get_settings()
    if parsed_args.debug:
        settings.log_level = "DEBUG"
    if parsed_args.no_scan:
        settings.scan_page_before_generation = False

    setup_logging(
        log_level=settings.log_level,
        log_format=settings.log_format,
        log_file=settings.log_file,
    )
    settings.create_directories()

    credentials: Dict[str, str] = dict(parsed_args.credential)
    try:
        request = RunRequest(
            prompt=parsed_args.prompt or f"Steps from {parsed_args.steps}",
            url=parsed_args.url,
            credentials=credentials,
            options=RunOptions(
                browser=parsed_args.browser or settings.browser_kind,
                headless=not parsed_args.headed and settings.browser_headless,
                timeout=parsed_args.timeout,
                viewport=parsed_args.viewport,
            ),
        )
    except PydanticValidationError as e:
        console.print(f"[red]Invalid run request: {escape(str(e))}[/red]")
        return 1

    try:
        generator = build_generator(parsed_args.steps)
    except (QualityPilotError, ValueError) as e:
        console.print(f"[red]Error: {escape(str(e))}[/red]")
        return 1

    if not parsed_args.json_events:
        console.print(Panel.fit(
            f"[bold]QualityPilot[/bold] v{__version__}\n"
            f"URL: {request.url}\nBrowser: {request.options.browser.value}",
            border_style="cyan",
        ))

    run = await run_test(request, generator, json_events=parsed_args.json_events)

    if not parsed_args.json_events:
        print_summary(run)
    return 0 if run.status is RunStatus.COMPLETED else 1


def main(args: Optional[List[str]] = None) -> int:
    """
    Main entry point for QualityPilot.

    Args:
        args: Command line arguments

    Returns:
        Exit code (0 for a completed run, non-zero otherwise)
    """
    try:
        return asyncio.run(async_main(args))
    except KeyboardInterrupt:
        console.print("\n[yellow]Test execution interrupted by user[/yellow]")
        return 1
    except Exception as e:
        console.print(f"[red]Fatal error: {escape(str(e))}[/red]")
        return 1


if __name__ == "__main__":
    sys.exit(main())
