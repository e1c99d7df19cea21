#!/usr/bin/env -S uv run
"""
Multi-context simulation tool for queuethat

Replays several contexts sharing one store on a ManualClock: each context
enqueues tasks, the lease holder delivers them in batches, some batches
fail, and the holder can be made to vanish mid-batch. Reports how many
tasks were delivered, delivered twice, or never delivered.

Usage:
    uv run tools/simulate_contexts.py
    uv run tools/simulate_contexts.py --contexts 5 --tasks 2000 --failure-rate 0.2
    uv run tools/simulate_contexts.py --storage filesystem --crash-at 3000
    uv run tools/simulate_contexts.py --help
"""
# /// script
# requires-python = ">=3.11"
# dependencies = [
#     "pydantic>=2.0",
#     "structlog>=23.1",
#     "typer>=0.9.0",
#     "rich>=13.0",
# ]
# ///

from __future__ import annotations

import random
import sys
import tempfile
from collections import Counter
from dataclasses import dataclass, field
from datetime import timedelta
from pathlib import Path

import typer
from rich.console import Console
from rich.panel import Panel
from rich.table import Table

sys.path.insert(0, str(Path(__file__).parent.parent))

from queuethat import (  # noqa: E402
    InMemoryStorage,
    LocalFileSystemStorage,
    ManualClock,
    QueueThat,
    StoragePort,
    configure_logging,
    create_queue_that,
)

app = typer.Typer(
    help="Simulate several queuethat contexts sharing one store",
    add_completion=False,
)

STEP_MS = 50


# ---------------------------------------------------------------------------
# Data Classes
# ---------------------------------------------------------------------------


@dataclass
class SimulationConfig:
    """Configuration for one simulation run."""

    contexts: int = 3
    tasks: int = 500
    batch_size: int = 20
    failure_rate: float = 0.0
    latency_ms: int = 30
    crash_at_ms: int | None = None
    seed: int = 0


@dataclass
class SimulationResult:
    """Outcome of a simulation run."""

    enqueued: int
    elapsed_ms: int
    deliveries: Counter[int] = field(default_factory=Counter)
    batches_by_context: Counter[str] = field(default_factory=Counter)
    failed_batches: int = 0
    crashed: str | None = None

    @property
    def delivered(self) -> int:
        return len(self.deliveries)

    @property
    def duplicates(self) -> int:
        return sum(n - 1 for n in self.deliveries.values() if n > 1)

    @property
    def lost(self) -> int:
        return self.enqueued - self.delivered


# ---------------------------------------------------------------------------
# Simulation
# ---------------------------------------------------------------------------


class _Context:
    """One simulated context: a QueueThat whose process settles after a delay."""

    def __init__(
        self,
        name: str,
        storage: StoragePort,
        clock: ManualClock,
        config: SimulationConfig,
        result: SimulationResult,
        rng: random.Random,
    ) -> None:
        self.name = name
        self.clock = clock
        self.config = config
        self.result = result
        self.rng = rng
        self.crashed = False
        self.queue_that: QueueThat = create_queue_that(
            self.process,
            storage=storage,
            clock=clock,
            queue_id=name,
            batch_size=config.batch_size,
        )

    def process(self, batch: list[int], done) -> None:
        self.result.batches_by_context[self.name] += 1
        fail = self.rng.random() < self.config.failure_rate

        def _settle() -> None:
            if self.crashed:
                return
            if fail:
                self.result.failed_batches += 1
                done(RuntimeError("simulated failure"))
                return
            self.result.deliveries.update(batch)
            done()

        self.clock.call_later(timedelta(milliseconds=self.config.latency_ms), _settle)

    def crash(self) -> None:
        self.crashed = True
        self.queue_that.destroy()


def run_simulation(config: SimulationConfig, storage: StoragePort) -> SimulationResult:
    """
    Drive every context until the queue drains or a time limit passes.

    Tasks are enqueued round-robin, one per STEP_MS, from whichever
    contexts are still alive.
    """
    rng = random.Random(config.seed)
    clock = ManualClock()
    result = SimulationResult(enqueued=config.tasks, elapsed_ms=0)
    contexts = [
        _Context(f"ctx-{i}", storage, clock, config, result, rng)
        for i in range(config.contexts)
    ]

    limit_ms = config.tasks * STEP_MS + 120_000
    next_task = 0
    while result.elapsed_ms < limit_ms:
        if config.crash_at_ms is not None and result.crashed is None:
            if result.elapsed_ms >= config.crash_at_ms:
                owner = storage.get_active_queue()
                victim = next(
                    (c for c in contexts if owner is not None and c.name == owner.id),
                    contexts[0],
                )
                victim.crash()
                result.crashed = victim.name

        alive = [c for c in contexts if not c.crashed]
        if next_task < config.tasks and alive:
            alive[next_task % len(alive)].queue_that(next_task)
            next_task += 1
        elif next_task >= config.tasks and not storage.get_queue():
            if not any(c.queue_that.processing for c in alive):
                break

        clock.tick(STEP_MS)
        result.elapsed_ms += STEP_MS

    for c in contexts:
        c.queue_that.destroy()
    return result


# ---------------------------------------------------------------------------
# Output
# ---------------------------------------------------------------------------


def format_result(result: SimulationResult, storage_name: str) -> None:
    """Print the outcome of a run as Rich tables."""
    console = Console()
    console.print()
    console.print(
        Panel(
            f"[bold cyan]Simulation Results ({storage_name})[/bold cyan]",
            expand=False,
        )
    )

    summary = Table(show_header=True, header_style="bold magenta")
    summary.add_column("Metric", style="cyan", width=18)
    summary.add_column("Value", justify="right", style="green")
    summary.add_row("Enqueued", str(result.enqueued))
    summary.add_row("Delivered", str(result.delivered))
    summary.add_row("Duplicates", str(result.duplicates))
    summary.add_row("Lost", str(result.lost))
    summary.add_row("Failed batches", str(result.failed_batches))
    summary.add_row("Crashed context", result.crashed or "-")
    summary.add_row("Simulated time", f"{result.elapsed_ms / 1000:.1f}s")
    console.print(summary)

    per_context = Table(show_header=True, header_style="bold magenta")
    per_context.add_column("Context", style="cyan")
    per_context.add_column("Batches", justify="right")
    for name, count in sorted(result.batches_by_context.items()):
        per_context.add_row(name, str(count))
    console.print(per_context)
    console.print()


# ---------------------------------------------------------------------------
# CLI
# ---------------------------------------------------------------------------


@app.command()
def main(
    contexts: int = typer.Option(3, "--contexts", "-c", help="Number of contexts"),
    tasks: int = typer.Option(500, "--tasks", "-n", help="Tasks to enqueue"),
    batch_size: int = typer.Option(20, "--batch-size", "-b", help="Max batch size"),
    failure_rate: float = typer.Option(
        0.0, "--failure-rate", help="Probability that a batch fails (0..1)"
    ),
    latency_ms: int = typer.Option(
        30, "--latency", help="Simulated processing time per batch in ms"
    ),
    crash_at: int | None = typer.Option(
        None, "--crash-at", help="Kill the lease holder at this simulated ms"
    ),
    storage_name: str = typer.Option(
        "memory", "--storage", "-s", help="memory or filesystem"
    ),
    seed: int = typer.Option(0, "--seed", help="Random seed"),
    verbose: bool = typer.Option(False, "--verbose", "-v", help="Show debug logs"),
) -> None:
    """
    Simulate contexts sharing one queue and count delivered, duplicate
    and lost tasks.

    A crashed lease holder never settles its in-flight batch. Another
    context redelivers it once the lease expires, so a crash costs
    time rather than tasks.
    """
    configure_logging(level="DEBUG" if verbose else "WARNING")

    config = SimulationConfig(
        contexts=contexts,
        tasks=tasks,
        batch_size=batch_size,
        failure_rate=failure_rate,
        latency_ms=latency_ms,
        crash_at_ms=crash_at,
        seed=seed,
    )

    with tempfile.TemporaryDirectory() as temp_dir_str:
        if storage_name == "memory":
            storage: StoragePort = InMemoryStorage()
        elif storage_name == "filesystem":
            storage = LocalFileSystemStorage(Path(temp_dir_str) / "queue.json")
        else:
            print(f"Unknown storage: {storage_name}", file=sys.stderr)
            raise typer.Exit(code=2)

        result = run_simulation(config, storage)

    format_result(result, storage_name)
    if result.lost:
        raise typer.Exit(code=1)


if __name__ == "__main__":
    app()
