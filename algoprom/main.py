"""Entry point for the algoprom agent — `algoprom` console script."""

from __future__ import annotations

import argparse
import asyncio
import logging
import sys

import uvicorn
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

from algoprom.checks.output import Status
from algoprom.config import settings
from algoprom.engine.agent import Agent
from algoprom.errors import AlgopromError, AlgorithmError, ConfigError
from algoprom.store import AuditStore

console = Console()
logger = logging.getLogger(__name__)


def _configure_logging() -> None:
    logging.basicConfig(
        level=getattr(logging, settings.log_level.upper(), logging.INFO),
        format="%(asctime)s [%(name)s] %(levelname)s: %(message)s",
    )


def _banner(mode: str, agent: Agent) -> None:
    console.print(
        Panel.fit(
            f"[bold]algoprom[/bold] ({mode})\n"
            f"Config: {settings.config_file}\n"
            f"Audit DB: {settings.db_path}\n"
            f"Checks: {', '.join(c.name for c in agent.config.checks) or 'none'}",
            border_style="green",
        )
    )


async def _run_agent() -> None:
    agent = Agent.from_settings(settings)
    _banner("agent", agent)
    await agent.start(install_signal_handlers=True)
    try:
        await agent.lifecycle.wait()
    finally:
        agent.lifecycle.remove_signal_handlers()
        await agent.stop()


def run_agent() -> None:
    """Run the scheduler headless until SIGINT/SIGTERM."""
    asyncio.run(_run_agent())


def run_server() -> None:
    """Run the agent inside the API server (metrics + audit endpoints)."""
    console.print(Panel(f"Serving on {settings.api_host}:{settings.api_port}", style="bold green"))
    uvicorn.run(
        "algoprom.api.server:app",
        host=settings.api_host,
        port=settings.api_port,
        log_level=settings.log_level.lower(),
        reload=False,
    )


async def _run_once(name: str) -> int:
    agent = Agent.from_settings(settings)
    try:
        output = await agent.scheduler.run_now(name)
    except KeyError:
        console.print(f"[red]Unknown check: {name}[/red]")
        return 2
    except AlgorithmError as e:
        output = e.output
    except AlgopromError as e:
        console.print(f"[red]Run failed: {e}[/red]")
        return 1
    finally:
        await agent.stop()

    style = "green" if output.status == Status.SUCCESS else "red"
    console.print(Panel(
        output.combined_out or "(no output)",
        title=f"{name}: {output.status.value} (rc={output.rc})",
        border_style=style,
    ))
    if output.error:
        console.print(f"[dim]Error: {output.error}[/dim]")
    for key in output.action_keys:
        console.print(f"[dim]Action: {key}[/dim]")
    return 0 if output.status == Status.SUCCESS else 1


def show_history(name: str, limit: int) -> None:
    store = AuditStore(settings.db_path)
    try:
        runs = store.list_check_outputs(name, limit)
    finally:
        store.close()

    table = Table(title=f"Runs for {name}")
    table.add_column("Key")
    table.add_column("Timestamp")
    table.add_column("Status")
    table.add_column("RC", justify="right")
    table.add_column("Actions", justify="right")
    for key, out in runs:
        status = f"[green]{out.status.value}[/green]" if out.succeeded else f"[red]{out.status.value}[/red]"
        table.add_row(key, out.timestamp.isoformat(), status, str(out.rc), str(len(out.action_keys)))
    console.print(table)


def main() -> None:
    parser = argparse.ArgumentParser(description="algoprom — metric check agent")
    sub = parser.add_subparsers(dest="command")

    sub.add_parser("agent", help="Run the check scheduler (no HTTP)")
    sub.add_parser("serve", help="Run the scheduler with the metrics/audit API")

    once = sub.add_parser("run-once", help="Run a single check now")
    once.add_argument("check", help="Check name")

    hist = sub.add_parser("history", help="Show stored runs of a check")
    hist.add_argument("check", help="Check name")
    hist.add_argument("--limit", type=int, default=20)

    args = parser.parse_args()
    _configure_logging()

    try:
        if args.command == "agent":
            run_agent()
        elif args.command == "serve":
            run_server()
        elif args.command == "run-once":
            sys.exit(asyncio.run(_run_once(args.check)))
        elif args.command == "history":
            show_history(args.check, args.limit)
        else:
            parser.print_help()
            sys.exit(1)
    except ConfigError as e:
        console.print(f"[red]Configuration error: {e}[/red]")
        sys.exit(2)


if __name__ == "__main__":
    main()
