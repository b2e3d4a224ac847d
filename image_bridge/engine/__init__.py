"""Execution engine: background invocation, progress polling and metrics.

Usage:
    from image_bridge.engine import CommandRunner, RunRequest

    runner = CommandRunner()
    future = runner.start(RunRequest("blur 2", image_list, progress=print))
    outputs = future.result()
"""

from .runner import CommandRunner, RunnerState, RunRequest

__all__ = ["CommandRunner", "RunRequest", "RunnerState"]
