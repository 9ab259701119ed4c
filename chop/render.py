"""Render pipeline for chop.

Renders the content documents of one output target in two phases:

1. Pages: every non-index document is converted and rendered through
   the default template. Each result lands in its own slot, so the page
   list keeps discovery order however the renders interleave.
2. Indexes: starts only after every page is done. Index documents are
   rendered through the index template with the complete page list
   available as `pages`.

Failures are recorded in the build report per document; they never
stop the other documents.

Key classes:
- RenderedPage: Variables of a rendered page, exposed to index templates.
- RenderPipeline: Runs both phases for one target.
"""

from __future__ import annotations

import asyncio
import logging
from collections.abc import Iterator, Mapping, Sequence
from pathlib import Path
from typing import Any

from jinja2 import TemplateSyntaxError

from .content import ContentFile
from .errors import BuildReport, RenderError, WriteError
from .protocols import TextTransform
from .renderers import ConverterChoice, ConverterRegistry, default_converter_registry
from .templates import Template, TemplateEngine, TemplateSet
from .typography import SmartPunctuation
from .utils import write_text_file

logger = logging.getLogger(__name__)


class RenderedPage(Mapping[str, Any]):
    """A rendered page as seen by index templates.

    A read-only mapping of the page's variables. Variables are also
    reachable as attributes, so `page.title`, `page["title"]` and
    `page.get("title")` all work.

    Attributes:
        source_path: Path of the source document.
        variables: All template variables, including content_rendered.
    """

    def __init__(self, source_path: Path, variables: dict[str, Any]):
        self.source_path = source_path
        self.variables = variables

    def __getattr__(self, name: str) -> Any:
        try:
            return self.__dict__["variables"][name]
        except KeyError:
            raise AttributeError(name) from None

    def __getitem__(self, key: str) -> Any:
        return self.variables[key]

    def __iter__(self) -> Iterator[str]:
        return iter(self.variables)

    def __len__(self) -> int:
        return len(self.variables)

    def __repr__(self) -> str:
        return f"RenderedPage({self.source_path})"


def _format_error_message(exc: Exception) -> str:
    """Format an exception into a user-friendly error message.

    Args:
        exc: The exception to format.

    Returns:
        A human-readable error message.
    """
    if isinstance(exc, TemplateSyntaxError):
        return f"Template syntax error on line {exc.lineno}: {exc.message}"

    error_type = type(exc).__name__
    error_msg = str(exc)

    if error_type == "UndefinedError":
        return f"Undefined variable: {error_msg}"
    if error_type == "TypeError":
        return f"Type error: {error_msg}"
    if error_type == "AttributeError":
        return f"Attribute error: {error_msg}"

    return f"{error_type}: {error_msg}"


class RenderPipeline:
    """Renders the documents of one output target.

    Attributes:
        target: Output target name.
        destination_dir: Root of the target's output tree.
        engine: Template engine of the target.
        templates: Resolved default and index templates.
        report: Build report receiving errors.
        link_prefix: Prefix for root-relative links.
        converters: Extension to converter table.
        raw_transform: Transform applied to the raw `content` variable.
    """

    def __init__(
        self,
        target: str,
        destination_dir: Path,
        engine: TemplateEngine,
        templates: TemplateSet,
        report: BuildReport,
        link_prefix: str = "",
        converters: ConverterRegistry | None = None,
        raw_transform: TextTransform | None = None,
    ):
        self.target = target
        self.destination_dir = destination_dir
        self.engine = engine
        self.templates = templates
        self.report = report
        self.link_prefix = link_prefix
        self.converters = converters or default_converter_registry
        self.raw_transform = raw_transform or SmartPunctuation()
        self.written = 0

    async def render_pages(self, files: Sequence[ContentFile]) -> list[RenderedPage]:
        """Render every non-index document through the default template.

        Returns:
            Rendered pages in discovery order; documents that failed to
            convert are left out.
        """
        documents = [f for f in files if not f.is_index]
        slots: list[RenderedPage | None] = [None] * len(documents)
        await asyncio.gather(
            *(
                self._render_page(position, document, slots)
                for position, document in enumerate(documents)
            )
        )
        return [page for page in slots if page is not None]

    async def render_indexes(
        self, files: Sequence[ContentFile], pages: Sequence[RenderedPage]
    ) -> None:
        """Render every index document with the complete page list."""
        indexes = [f for f in files if f.is_index]
        await asyncio.gather(
            *(self._render_index(document, list(pages)) for document in indexes)
        )

    async def _render_page(
        self,
        position: int,
        document: ContentFile,
        slots: list[RenderedPage | None],
    ) -> None:
        template = self.templates.default
        page = await self._prepare(document, template, document.template_variables())
        if page is None:
            return
        slots[position] = page
        if template.exists:
            await self._write(document, template, page.variables)

    async def _render_index(
        self, document: ContentFile, pages: list[RenderedPage]
    ) -> None:
        template = self.templates.index
        variables = document.template_variables()
        variables["pages"] = pages
        page = await self._prepare(document, template, variables)
        if page is not None and template.exists:
            await self._write(document, template, page.variables)

    async def _prepare(
        self, document: ContentFile, template: Template, variables: dict[str, Any]
    ) -> RenderedPage | None:
        choice = self.converters.converter_for(template.extension)
        try:
            return await asyncio.to_thread(self._convert, document, choice, variables)
        except Exception as exc:
            self._report_render_error(document.source_path, exc)
            return None

    def _convert(
        self,
        document: ContentFile,
        choice: ConverterChoice,
        variables: dict[str, Any],
    ) -> RenderedPage:
        text = choice.converter.convert(document.raw_content, self.link_prefix)
        if variables.get("templated"):
            text = self.engine.render_string(text, variables)
        variables["content_rendered"] = choice.transform.transform(text)
        variables["content"] = self.raw_transform.transform(document.raw_content)
        return RenderedPage(document.source_path, variables)

    async def _write(
        self, document: ContentFile, template: Template, variables: dict[str, Any]
    ) -> None:
        choice = self.converters.converter_for(template.extension)
        try:
            output = await asyncio.to_thread(
                self._render_template, template, choice, variables
            )
        except Exception as exc:
            self._report_render_error(document.source_path, exc)
            return
        path = self.output_path(document, template)
        if not path.resolve().is_relative_to(self.destination_dir.resolve()):
            self._report(
                WriteError(path, f"Output path escapes {self.destination_dir}")
            )
            return
        logger.info("[%s] Writing template '%s' to '%s'", self.target, template.path, path)
        try:
            await asyncio.to_thread(write_text_file, path, output)
        except OSError as exc:
            self._report(WriteError(path, f"Cannot write output: {exc}", exc))
            return
        self.written += 1

    def _render_template(
        self, template: Template, choice: ConverterChoice, variables: dict[str, Any]
    ) -> str:
        return choice.transform.transform(self.engine.render(template.compiled, variables))

    def output_path(self, document: ContentFile, template: Template) -> Path:
        """Return the file a document is written to for a template."""
        relative = document.site_path_unprefixed.lstrip("/") + template.extension
        return self.destination_dir / relative

    def _report_render_error(self, source_path: Path, exc: Exception) -> None:
        self._report(
            RenderError(source_path, self.target, _format_error_message(exc), exc)
        )

    def _report(self, error: RenderError | WriteError) -> None:
        logger.error("[%s] %s", self.target, error)
        self.report.add(self.target, error)
