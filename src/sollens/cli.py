"""Command-line interface for the sollens tool."""

import json
import logging
from pathlib import Path

import click
from rich.console import Console
from rich.logging import RichHandler
from rich.markup import escape
from rich.table import Table
from rich.traceback import install

from .analyzers import AnthropicSemanticAnalyzer, CallGraphAnalyzer, NullSemanticAnalyzer
from .analyzers.line_differ import LineChange
from .analyzers.semantic_analysis import ContractVersion
from .core import ContractDiffEngine, DiffConfiguration, DiffResult
from .exceptions import SollensError
from .parsers import ContractModel, SolidityParser

# Set up rich error handling
install()
console = Console()

SEVERITY_STYLES = {
    "critical": "bold red",
    "high": "red",
    "medium": "yellow",
    "low": "cyan",
    "info": "dim",
    "none": "green",
}


def _configure_logging(verbose: bool):
    logging.basicConfig(
        level=logging.INFO if verbose else logging.WARNING,
        format="%(message)s",
        handlers=[RichHandler(console=Console(stderr=True), show_path=False)],
        force=True,
    )


def _read_source(path: str) -> str:
    try:
        return Path(path).read_text(encoding="utf-8")
    except (OSError, UnicodeDecodeError) as e:
        console.print(f"[red]❌ Error:[/red] cannot read {escape(path)}: {escape(str(e))}")
        raise click.Abort()


def _write_or_print(text: str, output):
    if output:
        Path(output).write_text(text)
        console.print(f"📄 Results saved to {output}")
    else:
        click.echo(text)


@click.group()
@click.version_option(package_name="sollens")
def cli():
    """Sollens - Structural analysis and version diffing for Solidity contracts

    USAGE:
        sollens parse Token.sol                     # Show the contract model
        sollens diff TokenV1.sol TokenV2.sol        # Compare two versions
        sollens diff A.sol B.sol --format json      # JSON output
        sollens diff A.sol B.sol --semantic         # Add Claude analysis (needs ANTHROPIC_API_KEY)
    """


@cli.command()
@click.argument('source_file', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']), default='text', help='Output format')
@click.option('--output', '-o', type=click.Path(), help='Output file for JSON results')
@click.option('--verbose', '-v', is_flag=True, help='Show informational log messages')
def parse(source_file, output_format, output, verbose):
    """Parse a Solidity file and show its functions, events, variables and modifiers."""
    _configure_logging(verbose)
    source = _read_source(source_file)

    try:
        model = SolidityParser().parse(source)
    except SollensError as e:
        console.print(f"[red]❌ Error:[/red] {escape(str(e))}")
        raise click.Abort()

    if output_format == 'json':
        _write_or_print(json.dumps(model.to_dict(), indent=2, default=str), output)
    else:
        _display_model(model)


@cli.command()
@click.argument('file_a', type=click.Path(exists=True, dir_okay=False))
@click.argument('file_b', type=click.Path(exists=True, dir_okay=False))
@click.option('--format', '-f', 'output_format', type=click.Choice(['text', 'json']), default='text', help='Output format')
@click.option('--lines', is_flag=True, help='Also show the line-by-line diff')
@click.option('--semantic/--no-semantic', default=False, help='Request semantic analysis from Claude')
@click.option('--timeout', type=float, default=30.0, show_default=True, help='Seconds to wait for semantic analysis')
@click.option('--output', '-o', type=click.Path(), help='Output file for JSON results')
@click.option('--verbose', '-v', is_flag=True, help='Show informational log messages')
def diff(file_a, file_b, output_format, lines, semantic, timeout, output, verbose):
    """Compare two versions of a Solidity contract."""
    _configure_logging(verbose)
    version_a = ContractVersion(address=file_a, name=Path(file_a).stem, source_code=_read_source(file_a), network="local")
    version_b = ContractVersion(address=file_b, name=Path(file_b).stem, source_code=_read_source(file_b), network="local")

    config = DiffConfiguration(analysis_timeout=timeout, include_text_diff=lines or output_format == 'json')
    analyzer = AnthropicSemanticAnalyzer(timeout=timeout) if semantic else NullSemanticAnalyzer()

    try:
        result = ContractDiffEngine(config, analyzer).compare_with_analysis(version_a, version_b)
    except SollensError as e:
        console.print(f"[red]❌ Error:[/red] {escape(str(e))}")
        raise click.Abort()

    if output_format == 'json':
        _write_or_print(json.dumps(result.to_dict(), indent=2, default=str), output)
    else:
        _display_diff(result, lines)


def _display_model(model: ContractModel):
    """Display a contract model using Rich."""
    console.print(f"\n📄 [bold]{escape(model.name)}[/bold] ({model.kind.value})")
    if model.pragma:
        console.print(f"  • Pragma: solidity {escape(model.pragma)}")
    if model.inherited_contracts:
        console.print(f"  • Inherits: {', '.join(model.inherited_contracts)}")
    for imp in model.imports:
        symbols = f" {{{', '.join(imp.symbols)}}}" if imp.symbols else ""
        console.print(f"  • Import: {escape(imp.path)}{escape(symbols)}")
    console.print(f"  • {model.total_lines} lines, total complexity {model.complexity}")
    graph = CallGraphAnalyzer().build_graph(model)
    counts = graph.summary()
    console.print(f"  • Call graph: {counts['nodes']} nodes, {counts['edges']} edges")

    if model.functions:
        table = Table(title="Functions")
        table.add_column("Name", style="cyan")
        table.add_column("Visibility", style="magenta")
        table.add_column("Mutability", style="magenta")
        table.add_column("Modifiers", style="yellow")
        table.add_column("Lines")
        table.add_column("Complexity", justify="right")
        table.add_column("Reaches", justify="right")
        for fn in model.functions:
            table.add_row(fn.key, fn.visibility, fn.mutability, ", ".join(fn.modifiers),
                          f"{fn.line_start}-{fn.line_end}", str(fn.complexity),
                          str(len(graph.reachable_from(fn.key))))
        console.print(table)

    if model.events:
        table = Table(title="Events")
        table.add_column("Name", style="cyan")
        table.add_column("Parameters")
        for ev in model.events:
            params = ", ".join(f"{p.type}{' indexed' if p.indexed else ''} {p.name}".strip() for p in ev.parameters)
            table.add_row(ev.name, escape(params))
        console.print(table)

    if model.variables:
        table = Table(title="State Variables")
        table.add_column("Name", style="cyan")
        table.add_column("Type")
        table.add_column("Visibility", style="magenta")
        table.add_column("Flags")
        for var in model.variables:
            flags = [flag for flag, on in (("constant", var.is_constant), ("immutable", var.is_immutable)) if on]
            table.add_row(var.name, escape(var.type), var.visibility, ", ".join(flags))
        console.print(table)

    if model.modifiers:
        table = Table(title="Modifiers")
        table.add_column("Name", style="cyan")
        table.add_column("Used by")
        for mod in model.modifiers:
            table.add_row(mod.name, ", ".join(graph.callers_of(mod.name)))
        console.print(table)

    console.print(f"\n✅ Parsed {len(model.functions)} functions, {len(model.events)} events, "
                  f"{len(model.variables)} variables")


def _display_diff(result: DiffResult, show_lines: bool):
    """Display a diff result using Rich."""
    console.print(f"\n🔍 [bold]{escape(result.contract_a.name)} → {escape(result.contract_b.name)}[/bold]")
    summary = result.summary
    console.print(f"  • {summary.total_changes} changes: {summary.added} added, {summary.removed} removed, "
                  f"{summary.modified} modified, {summary.breaking_changes} breaking")
    stats = result.stats
    console.print(f"  • Lines: +{stats.lines_added} -{stats.lines_removed} (~{stats.lines_modified} modified)")

    if result.changes:
        table = Table(title="Changes")
        table.add_column("Type", style="magenta")
        table.add_column("Category", style="cyan")
        table.add_column("Name")
        table.add_column("Impact")
        table.add_column("Description")
        for change in result.changes:
            impact_style = "red" if change.is_breaking else "green"
            table.add_row(change.type.value, change.category.value, escape(change.name),
                          f"[{impact_style}]{change.impact.value}[/{impact_style}]", escape(change.description))
        console.print(table)

    analysis = result.analysis
    if analysis is not None:
        if analysis.security_impacts:
            console.print("\n🛡️  [bold]Security Impacts[/bold]")
            for impact in analysis.security_impacts:
                style = SEVERITY_STYLES.get(impact.severity.value, "white")
                console.print(f"  • [{style}]{impact.severity.value.upper()}[/{style}] {escape(impact.change)}")
                console.print(f"    {escape(impact.impact)}")

        style = SEVERITY_STYLES.get(analysis.risk_level.value, "white")
        console.print(f"\n🎯 [bold]Risk level:[/bold] [{style}]{analysis.risk_level.value}[/{style}]")
        console.print(f"  {escape(analysis.summary)}")
        console.print("\n📋 [bold]Migration[/bold]")
        console.print(escape(analysis.migration_guide))

    if show_lines and result.text_diff:
        console.print("\n📝 [bold]Line diff[/bold]")
        for line in result.text_diff:
            if line.type is LineChange.ADDED:
                console.print(f"[green]+ {escape(line.content)}[/green]", highlight=False)
            elif line.type is LineChange.REMOVED:
                console.print(f"[red]- {escape(line.content)}[/red]", highlight=False)
            else:
                console.print(f"  {escape(line.content)}", highlight=False)

    if result.fallbacks:
        console.print(f"\n[yellow]⚠️  Degraded components: {', '.join(result.fallbacks)}[/yellow]")
    console.print("\n✅ Diff complete!")


if __name__ == '__main__':
    cli()
