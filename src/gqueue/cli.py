from __future__ import annotations

import logging
import signal
import threading
from pathlib import Path

import click

from gqueue.config import QueueConfig
from gqueue.ids import IdAllocationError
from gqueue.locking import QueueBusyError
from gqueue.queue_store import QueueStore
from gqueue.scheduler import Scheduler
from gqueue.state import load_state, state_frame
from gqueue.submit import remove_job, submit_job

logger = logging.getLogger(__name__)


@click.group()
@click.option(
    "--config",
    "config_path",
    default=None,
    metavar="PATH",
    help="Path to YAML config file. Uses built-in defaults if omitted.",
)
@click.option(
    "--base-dir",
    "base_dir",
    default=None,
    metavar="DIR",
    help="Directory holding the queue, id counter and logs. Overrides config file.",
)
@click.option("--verbose", "-v", is_flag=True, help="Enable debug logging.")
@click.pass_context
def main(
    ctx: click.Context,
    config_path: str | None,
    base_dir: str | None,
    verbose: bool,
) -> None:
    """gqueue: priority queue and resource scheduler for long-running compute jobs."""
    logging.basicConfig(
        level=logging.DEBUG if verbose else logging.INFO,
        format="%(levelname)s %(name)s: %(message)s",
    )
    ctx.ensure_object(dict)
    overrides = {}
    if base_dir is not None:
        overrides["base_dir"] = Path(base_dir)
    if config_path:
        config = QueueConfig.from_yaml(config_path, **overrides)
    else:
        config = QueueConfig(**overrides)
    ctx.obj["config"] = config


@main.command()
@click.argument("job_path", metavar="PATH")
@click.argument("priority", type=int)
@click.pass_context
def submit(ctx: click.Context, job_path: str, priority: int) -> None:
    """Queue the job file PATH with PRIORITY (1 lowest, 10 highest)."""
    config: QueueConfig = ctx.obj["config"]
    try:
        job = submit_job(job_path, priority, config)
    except FileNotFoundError:
        raise click.ClickException("Job file does not exist.")
    except ValueError as exc:
        raise click.ClickException(str(exc))
    except (IdAllocationError, QueueBusyError) as exc:
        raise click.ClickException(f"Job queue is currently in use, please try again later ({exc}).")

    click.echo(f"Parsed nProcs: {job.cores}")
    click.echo(f"Parsed mem: {job.memory_gb}GB")
    click.echo(f"Job #{job.id} queued with priority {job.priority}.")


@main.command()
@click.argument("job_id", type=int)
@click.pass_context
def remove(ctx: click.Context, job_id: int) -> None:
    """Remove queued job JOB_ID before the daemon picks it up."""
    config: QueueConfig = ctx.obj["config"]
    try:
        removed = remove_job(job_id, config)
    except QueueBusyError:
        raise click.ClickException("Job queue is currently in use. Please try again later.")

    if not removed:
        raise click.ClickException(f"Job #{job_id} was not found in the queue.")
    click.echo(f"Job #{job_id} has been removed from the queue successfully.")


@main.command()
@click.option(
    "--interval",
    type=float,
    default=None,
    metavar="SECONDS",
    help="Seconds between ticks. Overrides config file.",
)
@click.option("--once", is_flag=True, help="Run a single tick and exit.")
@click.pass_context
def daemon(ctx: click.Context, interval: float | None, once: bool) -> None:
    """Run the admission scheduler until SIGINT/SIGTERM."""
    config: QueueConfig = ctx.obj["config"]
    scheduler = Scheduler.from_config(config)

    if once:
        started = scheduler.tick()
        click.echo(f"Started {len(started)} job(s); {len(scheduler.pending)} pending, "
                   f"{len(scheduler.running)} running.")
        return

    stop = threading.Event()

    def _handler(signum, frame):
        logger.info("received signal %d, stopping", signum)
        stop.set()

    for sig in (signal.SIGINT, signal.SIGTERM):
        signal.signal(sig, _handler)

    scheduler.run(stop, interval=interval)


@main.command()
@click.pass_context
def status(ctx: click.Context) -> None:
    """Show queued jobs and the jobs the daemon is holding."""
    config: QueueConfig = ctx.obj["config"]
    try:
        queued = QueueStore.from_config(config).peek()
    except QueueBusyError:
        raise click.ClickException("Job queue is currently in use. Please try again later.")
    pending, running = load_state(config)

    if not queued and not pending and not running:
        click.echo("No jobs queued or running.")
        return

    columns = ["id", "path", "priority", "submitted_at", "cores", "memory_gb"]
    if queued:
        click.echo("Queued (not yet seen by the daemon):")
        click.echo(state_frame(queued)[columns].to_string(index=False))
    held = [*pending, *running]
    if held:
        click.echo("Held by the daemon:")
        click.echo(
            state_frame(held)[columns + ["state", "session_name", "pid"]].to_string(index=False)
        )
