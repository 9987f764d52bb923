"""Compare running many small shell commands sequentially, through an
in-process ProcessPool, and through the TaskRunner sidecar, while the calling
process holds a configurable amount of memory."""

import subprocess
import sys
import time
from typing import Callable, List

import click

from taskrunner.core.models import ResultRecord
from taskrunner.core.settings import load_settings
from taskrunner.executor.pool import ProcessPool
from taskrunner.logging import setup_logging
from taskrunner.services.task_runner import TaskRunner

MB = 1024 * 1024


def make_tasks(count: int, simulate_sleep: bool) -> List[str]:
    tasks = []
    for i in range(count):
        if simulate_sleep:
            # sleep 1~10ms
            tasks.append(f"sleep {(i % 10 + 1) / 1000:.3f} && echo {i}")
        else:
            tasks.append(f"echo {i}")
    return tasks


def hold_memory(target_mb: int) -> List[bytes]:
    """Allocate ``target_mb`` of touched pages to inflate this process."""
    return [b"\x01" * MB for _ in range(target_mb)]


def run_for_loop(tasks: List[str], pool_size: int) -> int:
    total = 0
    for cmd in tasks:
        out = subprocess.run(cmd, shell=True, capture_output=True, text=True).stdout
        total += int(out or 0)
    return total


def run_pool_in_process(tasks: List[str], pool_size: int) -> int:
    total = 0

    def collect(job_id: str, status: int, stdout: str, stderr: str) -> None:
        nonlocal total
        total += int(stdout or 0)

    pool = ProcessPool(pool_size, load_settings().poll_interval_s)
    for i, cmd in enumerate(tasks):
        pool.submit(f"job{i}", cmd, collect)
    pool.wait_all()
    return total


def run_pool_in_sidecar(tasks: List[str], pool_size: int) -> int:
    total = 0

    def collect(result: ResultRecord, completed: int, count: int) -> None:
        nonlocal total
        total += int(result.stdout or 0)

    runner = TaskRunner(pool_size)
    for i, cmd in enumerate(tasks):
        runner.add(f"job{i}", cmd)
    runner.run(collect)
    return total


STRATEGIES = {
    "for_loop": run_for_loop,
    "pool_in_process": run_pool_in_process,
    "pool_in_sidecar": run_pool_in_sidecar,
}


def benchmark(name: str, strategy: Callable[[List[str], int], int], tasks: List[str], pool_size: int) -> bool:
    click.echo(f"test: {name}")
    start = time.monotonic()
    total = strategy(tasks, pool_size)
    elapsed = time.monotonic() - start
    click.echo(f"\ttime: {elapsed:.3f}s")
    click.echo(f"\tthroughput: {len(tasks) / elapsed:.3f} TPS")

    expected = (len(tasks) - 1) * len(tasks) // 2
    if total != expected:
        click.echo(f"\tWRONG RESULT: sum={total}, expected {expected}", err=True)
        return False
    return True


@click.command(name="taskrunner-benchmark")
@click.option("-n", "--tasks", "num_tasks", default=1000, show_default=True, type=click.IntRange(min=1), help="Number of tasks to generate.")
@click.option("-m", "--memory-mb", default=500, show_default=True, type=click.IntRange(min=0), help="Memory to hold in the calling process, in MB.")
@click.option("-p", "--pool-size", default=8, show_default=True, type=click.IntRange(min=1), help="Max concurrency used by the process pool.")
@click.option("--sleep/--no-sleep", "simulate_sleep", default=True, show_default=True, help="Simulate 1~10ms of work per task.")
@click.option(
    "--only",
    type=click.Choice(sorted(STRATEGIES)),
    multiple=True,
    help="Run only the given strategies (repeatable).",
)
def cli(num_tasks: int, memory_mb: int, pool_size: int, simulate_sleep: bool, only: tuple) -> None:
    """Benchmark the process pool inside and outside a memory-heavy process."""
    settings = load_settings()
    setup_logging("WARNING", settings.log_json)

    click.echo(">>>>> Config:")
    click.echo(f"\tPython version: {sys.version.split()[0]}")
    click.echo(f"\tSimulate memory usage: {memory_mb}MB")
    click.echo(f"\tTasks to generate: {num_tasks}")
    click.echo(f"\tProcess pool size: {pool_size}")
    click.echo(f"\tSimulate workload by sleep: {str(simulate_sleep).lower()}")

    click.echo(f">>>>> Increasing memory usage to {memory_mb}MB")
    ballast = hold_memory(memory_mb)
    click.echo(f"\tHeld chunks: {len(ballast)}")

    tasks = make_tasks(num_tasks, simulate_sleep)
    click.echo(">>>>> Benchmark started")
    ok = True
    for name in only or STRATEGIES:
        ok = benchmark(name, STRATEGIES[name], tasks, pool_size) and ok

    if not ok:
        sys.exit(1)


if __name__ == "__main__":
    cli()
