#!/usr/bin/env python3
"""
Command Line Interface for the query engine.

MODES:
- ask   (default): plan, execute and summarize a question
- plan:  show the plan only, nothing is executed
- mine:  mine the configured codebase and print what was found
- stats: cache, schema and model-rotation statistics
- purge: drop stale cached plans and failures
"""
import sys
import json
import asyncio
import argparse

from rich.console import Console
from rich.panel import Panel
from rich.table import Table
from rich.syntax import Syntax
from rich import box

from configs import CACHE_RETENTION_DAYS, VERBOSE, ConfigurationError, validate_configuration
from models import QueryAnswer, QueryPlan
from query_engine import get_engine

console = Console()


# ============================================================
# RENDERING
# ============================================================

def print_plan(plan: QueryPlan, title: str = "Query Plan"):
    table = Table(title=title, box=box.ROUNDED, show_lines=False)
    table.add_column("#", style="cyan", justify="right")
    table.add_column("Entity", style="bold")
    table.add_column("Operation")
    table.add_column("Filters", style="yellow")
    table.add_column("Relations", style="magenta")
    table.add_column("Extract", style="green")

    for step in plan.steps:
        table.add_row(
            str(step.step),
            step.entity,
            step.operation,
            json.dumps(step.raw_filters(), default=str) if step.filters else "-",
            ", ".join(step.relations + step.linked_fields) or "-",
            step.extract or "-",
        )
    console.print(table)
    if plan.explanation:
        console.print(f"[dim]{plan.explanation}[/dim]")


def print_answer(answer: QueryAnswer, verbose: bool = False):
    source_style = {"cache": "green", "planner": "cyan", "fallback": "yellow"}[answer.plan_source.value]
    console.print(
        f"\n📝 [bold]{answer.query}[/bold]  "
        f"[{source_style}]plan from {answer.plan_source.value}[/{source_style}]  "
        f"entities: {', '.join(answer.entities) or '-'}"
    )
    print_plan(answer.plan)

    result = answer.result
    log_table = Table(box=box.SIMPLE)
    log_table.add_column("Step", justify="right")
    log_table.add_column("Entity")
    log_table.add_column("Status")
    log_table.add_column("Items", justify="right")
    log_table.add_column("Value / Error")
    log_table.add_column("ms", justify="right")
    for entry in result.execution_log:
        status = "[green]✓[/green]" if entry.success else "[red]✗[/red]"
        detail = entry.error.message if entry.error else ("" if entry.resolved_value is None else str(entry.resolved_value))
        log_table.add_row(str(entry.step), entry.entity, status, str(entry.item_count), detail, f"{entry.duration_ms:.0f}")
    console.print(log_table)

    border = "green" if result.success else "red"
    console.print(Panel(answer.summary or "(no output)", title="Result", border_style=border))

    if answer.failure_analysis is not None:
        console.print(Panel(answer.failure_analysis.suggestion, title="Suggestion", border_style="yellow"))

    if verbose and result.final_result is not None:
        raw = json.dumps(result.final_result.data, indent=2, default=str)
        console.print(Syntax(raw[:4000], "json", theme="monokai"))


def print_stats(stats: dict):
    for section, values in stats.items():
        table = Table(title=section, box=box.SIMPLE, show_header=False)
        table.add_column(style="cyan")
        table.add_column()
        if isinstance(values, dict):
            for key, value in values.items():
                table.add_row(str(key), json.dumps(value, default=str) if isinstance(value, (dict, list)) else str(value))
        else:
            table.add_row(section, str(values))
        console.print(table)


# ============================================================
# MODES
# ============================================================

async def ask_mode(query: str, entities=None, verbose: bool = False):
    engine = get_engine()
    try:
        answer = await engine.answer(query, entities)
        print_answer(answer, verbose=verbose)
        return answer.result.success
    finally:
        await engine.close()


async def plan_mode(query: str, entities=None):
    engine = get_engine()
    try:
        plan = await engine.plan(query, entities)
        print_plan(plan)
        enriched = engine.planner.enrich_plan(plan)
        for step in enriched.steps:
            console.print(f"  [dim]{step.description}[/dim]")
    finally:
        await engine.close()


async def mine_mode():
    engine = get_engine()
    try:
        await engine.context.ensure_initialized()
        print_stats({"codebase": engine.context.stats()})
        for model in engine.context.models.all_models():
            console.print(f"  [bold]{model.model_name}[/bold]: {', '.join(model.field_names[:12])}")
        for link in engine.context.links.all_links():
            console.print(f"  🔗 {link.source_entity} ↔ {link.target_entity}")
    finally:
        await engine.close()


async def stats_mode():
    engine = get_engine()
    try:
        await engine.initialize()
        print_stats(await engine.stats())
    finally:
        await engine.close()


async def purge_mode(days: int):
    engine = get_engine()
    try:
        await engine.initialize()
        print_stats({"purged": await engine.purge(days)})
    finally:
        await engine.close()


async def interactive_mode(verbose: bool = False):
    console.print("[bold blue]Query Engine[/bold blue] - type a question, or 'exit' to quit")
    engine = get_engine()
    try:
        while True:
            try:
                query = (await asyncio.to_thread(console.input, "\n[bold cyan]❯[/bold cyan] ")).strip()
            except EOFError:
                break
            if not query:
                continue
            if query.lower() in ("exit", "quit", "q"):
                break
            try:
                print_answer(await engine.answer(query), verbose=verbose)
            except Exception as e:
                console.print(f"[bold red]Error: {str(e)}[/bold red]")
    finally:
        await engine.close()


def main():
    """Main entry point for the CLI."""
    parser = argparse.ArgumentParser(
        description="Query Engine - plan and execute natural-language data questions",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python cli.py                                   # Interactive mode
  python cli.py -q "orders for customer John"     # Answer a single question
  python cli.py -q "..." --plan-only              # Show the plan, do not execute
  python cli.py -q "..." -e customer -e order     # Hint the entities
  python cli.py --mine                            # Mine the codebase
  python cli.py --stats                           # Cache / model statistics
  python cli.py --purge 7                         # Forget plans unused for a week
        """
    )
    parser.add_argument("-q", "--query", type=str, help="Process a single question and exit")
    parser.add_argument(
        "-e", "--entity",
        action="append",
        dest="entities",
        help="Entity hint (repeatable); skips keyword detection",
    )
    parser.add_argument("--plan-only", action="store_true", dest="plan_only", help="Generate the plan without executing it")
    parser.add_argument("--mine", action="store_true", help="Mine the codebase and print a summary")
    parser.add_argument("--stats", action="store_true", help="Show cache and model statistics")
    parser.add_argument(
        "--purge",
        nargs="?",
        type=int,
        const=CACHE_RETENTION_DAYS,
        metavar="DAYS",
        help=f"Purge cached plans and failures unused for DAYS days (default {CACHE_RETENTION_DAYS})",
    )
    parser.add_argument("-v", "--verbose", action="store_true", default=VERBOSE, help="Show raw result data")
    args = parser.parse_args()

    try:
        validate_configuration()
    except ConfigurationError as e:
        console.print(f"[bold red]{e}[/bold red]")
        sys.exit(2)

    try:
        if args.mine:
            asyncio.run(mine_mode())
        elif args.stats:
            asyncio.run(stats_mode())
        elif args.purge is not None:
            asyncio.run(purge_mode(args.purge))
        elif args.query and args.plan_only:
            asyncio.run(plan_mode(args.query, args.entities))
        elif args.query:
            ok = asyncio.run(ask_mode(args.query, args.entities, verbose=args.verbose))
            sys.exit(0 if ok else 1)
        else:
            asyncio.run(interactive_mode(verbose=args.verbose))
    except KeyboardInterrupt:
        sys.exit(130)
    except Exception as e:
        console.print(f"[bold red]Fatal error: {str(e)}[/bold red]")
        sys.exit(1)


if __name__ == "__main__":
    main()
