"""
Recall Graph CLI - feed session logs in, query the relation graph out
"""

from __future__ import annotations

import asyncio
import json
import logging
import sys

import click
from rich.console import Console
from rich.table import Table

from .settings import RecallGraphSettings

console = Console()


def _configure_logging(s: RecallGraphSettings) -> None:
    level = (s.log_level or "INFO").upper()
    logging.basicConfig(level=level, format="%(asctime)s %(levelname)s %(name)s: %(message)s")


def _run(s: RecallGraphSettings, action):
    """Open a runtime, run `action(runtime)` and always close it."""
    from .runtime import open_runtime

    async def _main():
        runtime = await open_runtime(s)
        try:
            return await action(runtime)
        finally:
            await runtime.aclose()

    return asyncio.run(_main())


@click.group()
@click.pass_context
def cli(ctx):
    """Recall Graph - memories and entity relations from coding sessions"""
    s = RecallGraphSettings()
    _configure_logging(s)
    ctx.obj = s


@cli.command("init-db")
@click.pass_obj
def init_db(s):
    """Create the primary store schema"""

    async def action(runtime):
        return type(runtime.store).__name__

    name = _run(s, action)
    console.print(f"[green]✓ Schema ready ({name})[/green]")


@cli.command("log-session")
@click.argument("summary", required=False)
@click.option("--source", default=None, help="Session source (defaults to the configured one)")
@click.pass_obj
def log_session(s, summary, source):
    """Record one exchange summary for later extraction (reads stdin when SUMMARY is omitted)"""
    text = summary if summary is not None else sys.stdin.read()
    text = text.strip()
    if not text:
        console.print("[red]No summary provided[/red]")
        raise SystemExit(1)

    async def action(runtime):
        return await runtime.store.add_session_log(source or s.session_source, text)

    rec = _run(s, action)
    console.print(f"[green]✓ Logged session {rec.id}[/green]")


@cli.command("extract-sessions")
@click.pass_obj
def extract_sessions(s):
    """Run the session extraction job once"""

    async def action(runtime):
        return await runtime.job.run()

    result = _run(s, action)
    console.print_json(json.dumps(result.to_dict()))


@cli.command()
@click.argument("name")
@click.pass_obj
def related(s, name):
    """Show entities directly related to NAME"""

    async def action(runtime):
        return await runtime.query.related(name)

    rels = _run(s, action)
    if not rels:
        console.print(f"[yellow]No relations for '{name}'[/yellow]")
        return

    table = Table(title=f"Related to '{name}'")
    table.add_column("Entity", style="cyan")
    table.add_column("Type", style="magenta")
    table.add_column("Relation", style="blue")
    table.add_column("Dir", style="green", width=8)
    table.add_column("Strength", justify="right")
    table.add_column("Mentions", justify="right")
    for r in rels:
        table.add_row(r.name, r.type or "-", r.relation, r.direction, f"{r.strength:.2f}", str(r.mention_count))
    console.print(table)


@cli.command()
@click.argument("name")
@click.option("--hops", default=2, help="Traversal depth (1-3)")
@click.pass_obj
def neighborhood(s, name, hops):
    """Show entities within HOPS relations of NAME"""

    async def action(runtime):
        return await runtime.query.neighborhood(name, max_hops=hops)

    found = _run(s, action)
    if not found:
        console.print(f"[yellow]No neighbors for '{name}'[/yellow]")
        return

    table = Table(title=f"Neighborhood of '{name}'")
    table.add_column("Hop", style="cyan", justify="right", width=4)
    table.add_column("Entity", style="green")
    table.add_column("Type", style="magenta")
    table.add_column("Relation", style="blue")
    table.add_column("Via", style="white")
    for n in found:
        table.add_row(str(n.hop), n.name, n.type or "-", n.relation, n.via or "-")
    console.print(table)


@cli.command()
@click.argument("query")
@click.option("--limit", default=10, help="Number of entities")
@click.pass_obj
def search(s, query, limit):
    """Search entities by name substring"""

    async def action(runtime):
        return await runtime.query.search(query, limit=limit)

    matches = _run(s, action)
    if not matches:
        console.print("[yellow]No entities found[/yellow]")
        return

    table = Table(title=f"Entities matching '{query}'")
    table.add_column("Entity", style="cyan")
    table.add_column("Type", style="magenta", width=14)
    table.add_column("Relations", style="white", overflow="fold")
    for m in matches:
        links = ", ".join(
            f"{'→' if link.direction == 'outgoing' else '←'} {link.relation} {link.related_entity}" for link in m.relations
        )
        table.add_row(m.name, m.type or "-", links or "-")
    console.print(table)


@cli.command()
@click.pass_obj
def health(s):
    """Check backlog and recall-store reachability"""
    from .jobs.health import check_pipeline_health

    async def action(runtime):
        return await check_pipeline_health(
            runtime.store,
            runtime.replicator,
            source=s.session_source,
            backlog_threshold=s.backlog_alert_threshold,
        )

    report = _run(s, action)
    table = Table(title=f"Pipeline health: {report.overall}")
    table.add_column("Check", style="cyan")
    table.add_column("Status", width=6)
    table.add_column("Detail", style="white", overflow="fold")
    colors = {"pass": "green", "fail": "red", "skip": "yellow"}
    for name, check in report.checks.items():
        color = colors.get(check.status, "white")
        table.add_row(name, f"[{color}]{check.status}[/{color}]", check.detail)
    console.print(table)
    for alert in report.alerts:
        console.print(f"[red]! {alert}[/red]")
    if report.alerts:
        raise SystemExit(1)


@cli.command()
@click.pass_obj
def serve(s):
    """Run the HTTP service"""
    from .service.server import serve as serve_http

    asyncio.run(serve_http(s))


@cli.command()
@click.pass_obj
def worker(s):
    """Consume queued exchanges and extract relations"""
    from .worker import run_worker

    if not s.redis_url:
        console.print("[red]RECALL_GRAPH_REDIS_URL is not set[/red]")
        raise SystemExit(1)

    async def action(runtime):
        await run_worker(runtime.exchange_queue, runtime.live)

    _run(s, action)


if __name__ == "__main__":
    cli()
