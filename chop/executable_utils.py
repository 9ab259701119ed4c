"""Executable discovery and bounded command execution for chop.

Optimizers shell out to tools such as terser or svgo. They run through a
CommandRunner, which caps how many run at once and abandons any run that
exceeds the timeout, so one hung tool cannot stall the build.

Functions:
    find_executable: Locate an executable in PATH or node_modules.

Classes:
    CommandRunner: Bounded, time-limited runner for commands and blocking calls.
"""

from __future__ import annotations

import asyncio
import shutil
from collections.abc import Callable, Sequence
from pathlib import Path
from typing import Any, TypeVar

from .errors import OptimizerError

T = TypeVar("T")


def find_executable(name: str, project_root: Path | None = None) -> str | None:
    """Find an executable in PATH or local node_modules.

    Searches for an executable first in the system PATH, then in the
    project's local node_modules/.bin directory if a project root is provided.

    Args:
        name: Name of the executable to find (e.g., 'svgo', 'terser').
        project_root: Optional project root directory to search for
            local node_modules installations.

    Returns:
        Full path to the executable if found, None otherwise.

    Examples:
        >>> find_executable('terser', Path('/my/project'))  # With local lookup
        '/my/project/node_modules/.bin/terser'
    """
    found = shutil.which(name)
    if found:
        return found

    if project_root is not None:
        local = project_root / "node_modules" / ".bin" / name
        if local.exists():
            return str(local)

    return None


class CommandRunner:
    """Runs optimizer work with bounded concurrency and a timeout.

    Attributes:
        jobs: Maximum number of concurrent runs.
        timeout: Seconds before a run is abandoned; None disables it.
    """

    def __init__(self, jobs: int = 1, timeout: float | None = None):
        self.jobs = max(1, jobs)
        self.timeout = timeout
        self._semaphore = asyncio.Semaphore(self.jobs)

    async def run(self, cmd: Sequence[str], source: Path) -> None:
        """Run an external command and require a zero exit status.

        Args:
            cmd: Command and arguments.
            source: Asset the command works on, for error reports.

        Raises:
            OptimizerError: On a non-zero exit, a missing binary, or a timeout.
        """
        async with self._semaphore:
            try:
                proc = await asyncio.create_subprocess_exec(
                    *cmd,
                    stdout=asyncio.subprocess.DEVNULL,
                    stderr=asyncio.subprocess.PIPE,
                )
            except OSError as exc:
                raise OptimizerError(
                    source, f"cannot start {cmd[0]}: {exc}", exc
                ) from exc
            try:
                _, stderr = await asyncio.wait_for(proc.communicate(), self.timeout)
            except asyncio.TimeoutError as exc:
                proc.kill()
                await proc.wait()
                raise OptimizerError(
                    source, f"{Path(cmd[0]).name} timed out after {self.timeout}s", exc
                ) from exc
        if proc.returncode != 0:
            detail = stderr.decode("utf-8", errors="replace").strip()
            raise OptimizerError(
                source,
                f"{Path(cmd[0]).name} exited with status {proc.returncode}: {detail}",
            )

    async def call(self, func: Callable[..., T], source: Path, *args: Any) -> T:
        """Run a blocking callable in a worker thread under the same limits.

        A timed-out call cannot be interrupted; its result is discarded.

        Raises:
            OptimizerError: If the callable raises or times out.
        """
        async with self._semaphore:
            try:
                return await asyncio.wait_for(
                    asyncio.to_thread(func, *args), self.timeout
                )
            except asyncio.TimeoutError as exc:
                raise OptimizerError(
                    source, f"optimizer timed out after {self.timeout}s", exc
                ) from exc
            except OptimizerError:
                raise
            except Exception as exc:
                raise OptimizerError(
                    source, f"{type(exc).__name__}: {exc}", exc
                ) from exc
