"""
External Process Execution

All external tools (ffprobe, ffmpeg, vmafossexec) run through run_command so
that they can be cancelled cooperatively. Cancellation is modelled with
CancelScope objects: a scope is cancelled explicitly, and a child scope also
reports cancelled once any ancestor is.

join_or_cancel runs a small set of named sub-operations concurrently under
one child scope, waits for all of them and re-raises the first failure.
The first failure cancels the siblings, whose running processes are
terminated.
"""

import logging
import subprocess
import threading
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Any, Callable, Dict, Optional, Sequence, Type

from .errors import Cancelled, ToolError

logger = logging.getLogger(__name__)

# Grace period between SIGTERM and SIGKILL for cancelled processes
TERMINATE_TIMEOUT = 5


class CancelScope:
    """Cooperative cancellation flag that can be nested."""

    def __init__(self, parent: Optional['CancelScope'] = None):
        self._event = threading.Event()
        self._parent = parent

    def cancel(self) -> None:
        self._event.set()

    @property
    def cancelled(self) -> bool:
        if self._event.is_set():
            return True
        return self._parent is not None and self._parent.cancelled

    def child(self) -> 'CancelScope':
        return CancelScope(parent=self)

    def raise_if_cancelled(self, what: str = 'operation') -> None:
        if self.cancelled:
            raise Cancelled(f"{what} cancelled")


def run_command(
    cmd: Sequence[str],
    scope: Optional[CancelScope] = None,
    error_cls: Type[ToolError] = ToolError,
    poll_interval: float = 0.2,
) -> subprocess.CompletedProcess:
    """
    Run an external command, capturing stdout and stderr as text.

    The exit status is not checked here; callers decide what a non-zero
    exit means and which error to raise with the captured stderr.

    Args:
        cmd: Command and arguments
        scope: Optional cancel scope polled while the process runs
        error_cls: Error raised when the executable cannot be started
        poll_interval: Seconds between cancellation checks

    Returns:
        CompletedProcess with returncode, stdout and stderr

    Raises:
        Cancelled: scope was cancelled before or while the command ran
        error_cls: executable not found or not runnable
    """
    tool = cmd[0]
    if scope is not None:
        scope.raise_if_cancelled(tool)

    logger.debug(f"Running: {' '.join(str(part) for part in cmd)}")

    try:
        proc = subprocess.Popen(
            list(cmd),
            stdout=subprocess.PIPE,
            stderr=subprocess.PIPE,
            encoding='utf-8',
            errors='replace',
        )
    except FileNotFoundError:
        raise error_cls(f"{tool} not found. Please install {tool} and make sure it is on PATH")
    except PermissionError as e:
        raise error_cls(f"{tool} could not be executed: {e}")

    if scope is None:
        stdout, stderr = proc.communicate()
        return subprocess.CompletedProcess(list(cmd), proc.returncode, stdout, stderr)

    while True:
        if scope.cancelled:
            _stop_process(proc)
            raise Cancelled(f"{tool} cancelled")
        try:
            stdout, stderr = proc.communicate(timeout=poll_interval)
            break
        except subprocess.TimeoutExpired:
            continue

    return subprocess.CompletedProcess(list(cmd), proc.returncode, stdout, stderr)


def _stop_process(proc: subprocess.Popen) -> None:
    """Terminate a running process, killing it if it ignores SIGTERM."""
    logger.debug(f"Stopping process {proc.pid}")
    proc.terminate()
    try:
        proc.communicate(timeout=TERMINATE_TIMEOUT)
    except subprocess.TimeoutExpired:
        proc.kill()
        proc.communicate()


def join_or_cancel(
    tasks: Dict[str, Callable[[CancelScope], Any]],
    scope: Optional[CancelScope] = None,
) -> Dict[str, Any]:
    """
    Run named tasks concurrently and wait for all of them.

    Each task receives the shared child scope. When a task raises, the
    child scope is cancelled so the remaining tasks stop early; the first
    exception is re-raised once every task has returned.

    Args:
        tasks: Mapping of task name to callable taking a CancelScope
        scope: Parent scope; cancelling it cancels every task

    Returns:
        Mapping of task name to the task's return value
    """
    if not tasks:
        return {}

    task_scope = scope.child() if scope is not None else CancelScope()
    results: Dict[str, Any] = {}
    first_error: Optional[BaseException] = None

    with ThreadPoolExecutor(max_workers=len(tasks), thread_name_prefix='subtask') as executor:
        futures = {executor.submit(fn, task_scope): name for name, fn in tasks.items()}
        for future in as_completed(futures):
            name = futures[future]
            try:
                results[name] = future.result()
            except Exception as e:
                if first_error is None:
                    first_error = e
                    logger.error(f"Error encountered in {name}: {e}")
                    task_scope.cancel()
                else:
                    logger.debug(f"{name} stopped after sibling failure: {e}")

    if first_error is not None:
        raise first_error
    return results
