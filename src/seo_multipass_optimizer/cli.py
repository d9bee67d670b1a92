"""
Command-line interface for the SEO multi-pass optimizer.

Reads a content record from a JSON file, then either reports its SEO issues
(``detect``) or runs it through the integration layer (``optimize``).
"""

import json
import logging
import sys
from pathlib import Path
from typing import Optional

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.panel import Panel
from rich.table import Table

from .config import IntegrationConfig
from .exceptions import OptimizationError, ProviderError
from .integration import IntegrationResult, OptimizationIntegration
from .issue_detector import IssueDetector
from .models import Content, DetectionResult, IntegrationMode
from .optimizer import create_optimizer

console = Console()


def _configure_logging(verbose: bool) -> None:
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.WARNING,
        format="%(message)s",
        datefmt="[%X]",
        handlers=[RichHandler(console=Console(stderr=True), rich_tracebacks=True)],
        force=True,
    )


def _load_content(path: Path) -> Content:
    try:
        data = json.loads(path.read_text(encoding="utf-8"))
    except json.JSONDecodeError as e:
        raise click.BadParameter(f"{path} is not valid JSON: {e}", param_hint="INPUT")
    if not isinstance(data, dict):
        raise click.BadParameter(f"{path} must contain a JSON object", param_hint="INPUT")
    return Content.from_dict(data)


@click.group()
@click.version_option(package_name="seo-multipass-optimizer")
def main() -> None:
    """SEO Multi-Pass Optimizer - detect and correct SEO issues in content."""


@main.command()
@click.argument("input_file", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--keyword", "-k", type=str, help="Focus keyword (defaults to the record's focus_keyword).")
@click.option("--secondary", "-s", multiple=True, help="Secondary keyword. Repeat for several.")
@click.option("--json-output", is_flag=True, default=False, help="Print the detection result as JSON.")
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output.")
def detect(
    input_file: Path,
    keyword: Optional[str],
    secondary: tuple[str, ...],
    json_output: bool,
    verbose: bool,
) -> None:
    """
    Report SEO issues and the compliance score of a content record.

    Example:

        seo-multipass detect article.json --keyword "seo guide"
    """
    _configure_logging(verbose)
    content = _load_content(input_file)
    result = IssueDetector().detect_all_issues(content, keyword, list(secondary) or None)

    if json_output:
        click.echo(json.dumps(result.to_dict(), indent=2))
        return
    _display_detection(result)


@main.command()
@click.argument("input_file", metavar="INPUT", type=click.Path(exists=True, dir_okay=False, path_type=Path))
@click.option("--keyword", "-k", type=str, help="Focus keyword (defaults to the record's focus_keyword).")
@click.option("--secondary", "-s", multiple=True, help="Secondary keyword. Repeat for several.")
@click.option("--max-iterations", type=int, default=3, show_default=True, help="Maximum correction passes.")
@click.option("--target-score", type=float, default=95.0, show_default=True, help="Target compliance score (0-100).")
@click.option(
    "--mode",
    type=click.Choice([m.value for m in IntegrationMode]),
    default=IntegrationMode.SEAMLESS.value,
    show_default=True,
    help="seamless runs the loop, manual only proposes corrections, bypass returns the input.",
)
@click.option("--output", "-o", type=click.Path(dir_okay=False, path_type=Path), help="Write the result JSON here.")
@click.option("--model", type=str, envvar="SEO_MULTIPASS_MODEL", help="Model for the default provider.")
@click.option(
    "--api-key",
    type=str,
    envvar="ANTHROPIC_API_KEY",
    help="Anthropic API key. Can also be set via ANTHROPIC_API_KEY env var.",
)
@click.option("--verbose", "-v", is_flag=True, default=False, help="Enable verbose output.")
def optimize(
    input_file: Path,
    keyword: Optional[str],
    secondary: tuple[str, ...],
    max_iterations: int,
    target_score: float,
    mode: str,
    output: Optional[Path],
    model: Optional[str],
    api_key: Optional[str],
    verbose: bool,
) -> None:
    """
    Optimize a content record over multiple correction passes.

    Examples:

        seo-multipass optimize article.json --keyword "seo guide" -o optimized.json

        seo-multipass optimize article.json --mode manual
    """
    _configure_logging(verbose)
    content = _load_content(input_file)

    try:
        config = IntegrationConfig(
            mode=mode,
            max_iterations=max_iterations,
            target_compliance_score=target_score,
            model=model,
        )
    except ValueError as e:
        raise click.BadParameter(str(e))

    console.print(Panel.fit(
        f"[bold blue]SEO Multi-Pass Optimizer[/bold blue]\n"
        f"Mode: {config.mode.value}, up to {config.max_iterations} passes, target {config.target_compliance_score:g}",
        border_style="blue",
    ))

    integration = OptimizationIntegration(
        config,
        optimizer_factory=lambda cfg: create_optimizer(
            config=cfg.optimizer_config(), api_key=api_key, model=cfg.model
        ),
    )

    try:
        with console.status("[bold green]Optimizing content..."):
            result = integration.process_content(content, keyword, list(secondary) or None)
    except ProviderError as e:
        console.print(f"[red]Provider error:[/red] {e}")
        sys.exit(1)
    except OptimizationError as e:
        console.print(f"[red]Optimization error:[/red] {e}")
        sys.exit(1)

    _display_result(result, verbose)

    if output:
        output.write_text(json.dumps(result.to_dict(), indent=2), encoding="utf-8")
        console.print(f"\n[bold green]Saved:[/bold green] {output}")

    if result.status == "failed":
        sys.exit(1)


def _display_detection(result: DetectionResult) -> None:
    """Display detected issues."""
    console.print(f"\n[bold]Compliance score:[/bold] {result.compliance_score:.2f}")
    if not result.issues:
        console.print("[green]No issues found.[/green]")
        return

    table = Table(title=f"Issues ({result.total_issues})", show_header=True)
    table.add_column("Type", style="cyan")
    table.add_column("Severity", style="yellow")
    table.add_column("Field")
    table.add_column("Message")
    for issue in sorted(result.issues, key=lambda i: -i.priority):
        table.add_row(issue.type.value, issue.severity.value, issue.field, issue.message)
    console.print(table)


def _display_result(result: IntegrationResult, verbose: bool) -> None:
    """Display optimization summary."""
    meta = result.metadata
    console.print(f"\n[bold]Status:[/bold] {meta['status']}")
    if meta["reason"]:
        console.print(f"[dim]{meta['reason']}[/dim]")

    if result.optimization is not None:
        opt = result.optimization
        console.print(
            f"[bold]Score:[/bold] {opt.initial_score:.2f} -> {opt.compliance_score:.2f} "
            f"after {opt.passes} passes ({opt.termination_reason.value})"
        )
        if opt.pass_summaries:
            table = Table(title="Passes", show_header=True)
            table.add_column("Pass", justify="right")
            table.add_column("Before", justify="right")
            table.add_column("After", justify="right")
            table.add_column("Resolved", justify="right")
            table.add_column("Strategy", style="cyan")
            for record in opt.pass_summaries:
                table.add_row(
                    str(record["pass_number"]),
                    f"{record['before_score']:.2f}",
                    f"{record['after_score']:.2f}",
                    str(record["issues_resolved_count"]),
                    record["strategy_used"],
                )
            console.print(table)

    if result.detection is not None:
        _display_detection(result.detection)
        if result.prompts:
            console.print("\n[bold]Proposed corrections[/bold]")
            for index, prompt in enumerate(result.prompts, start=1):
                console.print(f"{index}. [cyan]{prompt.field}[/cyan] (priority {prompt.priority})")
                if verbose:
                    console.print(f"   [dim]{prompt.instruction}[/dim]")

    report = result.error_report
    if report and report.get("severity") != "info":
        console.print(f"\n[yellow]{report['summary']}[/yellow]")
        for recommendation in report.get("recommendations", []):
            console.print(f"  - {recommendation}")


def run_cli() -> None:
    """Entry point for the CLI."""
    main()


if __name__ == "__main__":
    run_cli()
