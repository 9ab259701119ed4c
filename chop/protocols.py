"""Protocol definitions for chop.

The build talks to its collaborators (converters, typographic
transforms, template engines, asset optimizers) only through these
interfaces, so each can be swapped or faked in tests.
"""

from __future__ import annotations

from abc import abstractmethod
from collections.abc import Mapping
from pathlib import Path
from typing import TYPE_CHECKING, Any, Protocol, runtime_checkable

if TYPE_CHECKING:
    from .executable_utils import CommandRunner


@runtime_checkable
class ContentConverter(Protocol):
    """Protocol for converting a document body to an output format.

    Attributes:
        markup: True when the output is HTML/XML.
    """

    markup: bool

    @abstractmethod
    def convert(self, text: str, link_prefix: str = "") -> str:
        """Convert Markdown text.

        Args:
            text: Document body.
            link_prefix: Prefix for root-relative URLs.

        Returns:
            Converted text.
        """
        ...


@runtime_checkable
class TextTransform(Protocol):
    """Protocol for typographic post-processing."""

    @abstractmethod
    def transform(self, text: str) -> str: ...


@runtime_checkable
class TemplateRenderer(Protocol):
    """Protocol for template engines.

    This keeps the render pipeline independent of Jinja2 itself.
    """

    @abstractmethod
    def parse(self, source: str) -> Any:
        """Compile template source.

        Raises:
            Exception: The engine's syntax error type on invalid source.
        """
        ...

    @abstractmethod
    def render(self, compiled: Any, variables: Mapping[str, Any]) -> str:
        """Render a compiled template with variables."""
        ...


@runtime_checkable
class AssetProcessor(Protocol):
    """Protocol for asset optimizers.

    An optimizer reads a source file and writes the optimized result to
    the destination path, raising OptimizerError on failure.
    """

    @abstractmethod
    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        """Optimize one asset.

        Args:
            source: Source asset path.
            dest: Destination path for the optimized asset.
            runner: Bounded runner for commands and blocking work.
        """
        ...
