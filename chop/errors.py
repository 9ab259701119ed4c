"""Error types and the per-build error report for chop.

Every failure the build can hit is a BuildError carrying the path that
caused it. Only MalformedFrontmatterError escapes build_site; the other
categories are recorded in a BuildReport and the build carries on.

Key classes:
- BuildError: Base class with file context.
- ConfigError, MalformedFrontmatterError, RenderError, WriteError, OptimizerError.
- BuildReport: Aggregates recoverable errors per output target.
"""

from __future__ import annotations

from collections import Counter
from dataclasses import dataclass, field
from pathlib import Path


class BuildError(Exception):
    """Error during site build with file context.

    Attributes:
        source_path: Path to the file that caused the error.
        message: Human-readable error message.
        original_error: The original exception that was caught.
    """

    category = "build"

    def __init__(
        self,
        source_path: Path,
        message: str,
        original_error: Exception | None = None,
    ):
        self.source_path = source_path
        self.message = message
        self.original_error = original_error
        super().__init__(f"{source_path}: {message}")


class ConfigError(BuildError):
    """Config file exists but could not be parsed into a mapping."""

    category = "config"


class MalformedFrontmatterError(BuildError):
    """A content document does not follow the frontmatter layout."""

    category = "frontmatter"


class RenderError(BuildError):
    """Conversion or template rendering failed for one document.

    Attributes:
        target: Name of the output target being rendered.
    """

    category = "render"

    def __init__(
        self,
        source_path: Path,
        target: str,
        message: str,
        original_error: Exception | None = None,
    ):
        self.target = target
        super().__init__(source_path, message, original_error)


class WriteError(BuildError):
    """Writing one output file failed."""

    category = "write"


class OptimizerError(BuildError):
    """An optimizer failed or timed out for one asset."""

    category = "optimizer"


# Categories that never degrade into a usable output file.
FATAL_CATEGORIES = frozenset({"frontmatter", "render", "write"})


@dataclass
class BuildReport:
    """Collects recoverable errors raised while building.

    Errors are only recorded from the event loop thread, so no locking
    is needed.

    Attributes:
        errors: (target name, error) pairs in the order they were reported.
    """

    errors: list[tuple[str, BuildError]] = field(default_factory=list)

    def add(self, target: str, error: BuildError) -> None:
        self.errors.append((target, error))

    def for_target(self, target: str) -> list[BuildError]:
        return [error for name, error in self.errors if name == target]

    def counts(self) -> Counter:
        """Return the number of errors per category."""
        return Counter(error.category for _, error in self.errors)

    @property
    def error_count(self) -> int:
        return len(self.errors)

    @property
    def fatal_count(self) -> int:
        return sum(
            1 for _, error in self.errors if error.category in FATAL_CATEGORIES
        )

    def exit_code(self, strict: bool = False) -> int:
        """Return the process exit status for this build.

        Args:
            strict: Count optimizer errors as failures too.

        Returns:
            0 on success, 1 otherwise.
        """
        if self.fatal_count:
            return 1
        if strict and self.error_count:
            return 1
        return 0
