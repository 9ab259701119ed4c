"""Site building functionality for chop.

This module drives a whole build: it loads the site config and every
content document, then builds each output target. A target is a
directory under the templates root (html, gemini, text...), and each
one produces its own tree under the destination root.

Targets share nothing mutable and run concurrently. Inside a target the
steps run in order:

    CLEANING -> TEMPLATES_RESOLVED -> PAGES_RENDERED -> INDEXES_RENDERED
    -> ASSETS_COPIED -> DONE

Static assets are copied alongside the page and index phases but must
finish before the target counts as done.

Key functions:
- build_site: Build the site and return a BuildResult.
"""

from __future__ import annotations

import asyncio
import logging
from dataclasses import dataclass, field
from enum import Enum
from pathlib import Path

from .asset_processors import AssetProcessorRegistry, create_default_registry
from .assets import (
    AssetCache,
    AssetPipeline,
    AssetStats,
    StaticAsset,
    discover_assets,
    merge_assets,
    sweep_partials,
)
from .config import BuildOptions, SiteConfig, load_config
from .content import ContentFile, ContentProcessor
from .errors import BuildError, BuildReport
from .executable_utils import CommandRunner
from .render import RenderPipeline
from .templates import TemplateEngine, TemplateResolver
from .typography import IdentityTransform, SmartPunctuation
from .utils import ensure_clean_dir

logger = logging.getLogger(__name__)


class TargetState(Enum):
    PENDING = "pending"
    CLEANING = "cleaning"
    TEMPLATES_RESOLVED = "templates_resolved"
    PAGES_RENDERED = "pages_rendered"
    INDEXES_RENDERED = "indexes_rendered"
    ASSETS_COPIED = "assets_copied"
    DONE = "done"


@dataclass(frozen=True)
class OutputTarget:
    """One named output format.

    Attributes:
        name: Directory name under the templates root.
        template_dir: Directory with the target's templates.
        destination_dir: Root of the target's output tree.
        static_dir: Target-specific static assets.
    """

    name: str
    template_dir: Path
    destination_dir: Path
    static_dir: Path

    @classmethod
    def from_options(cls, name: str, options: BuildOptions) -> OutputTarget:
        return cls(
            name=name,
            template_dir=options.templates_root / name,
            destination_dir=options.destination_root / name,
            static_dir=options.templates_root / name / options.static_name,
        )


@dataclass
class TargetResult:
    """Outcome of building one output target.

    Attributes:
        target: The output target.
        state: Last state reached.
        history: Every state entered, in order.
        pages: Number of rendered pages handed to index templates.
        written: Number of page and index files written.
        assets: Asset run statistics.
        errors: Errors reported for this target.
    """

    target: OutputTarget
    state: TargetState = TargetState.PENDING
    history: list[TargetState] = field(default_factory=list)
    pages: int = 0
    written: int = 0
    assets: AssetStats = field(default_factory=AssetStats)
    errors: list[BuildError] = field(default_factory=list)

    def enter(self, state: TargetState) -> None:
        logger.debug("[%s] %s", self.target.name, state.value)
        self.state = state
        self.history.append(state)

    @property
    def ok(self) -> bool:
        return self.state is TargetState.DONE and not self.errors


@dataclass
class BuildResult:
    """Result of a site build operation.

    Attributes:
        targets: Per-target results, sorted by target name.
        report: All recoverable errors of the build.
        content_files: Every parsed content document.
        site: Site configuration used.
    """

    targets: list[TargetResult]
    report: BuildReport
    content_files: list[ContentFile]
    site: SiteConfig


def list_output_targets(options: BuildOptions) -> list[OutputTarget]:
    """List output targets, one per directory under the templates root."""
    root = options.templates_root
    if not root.is_dir():
        return []
    return [
        OutputTarget.from_options(path.name, options)
        for path in sorted(root.iterdir())
        if path.is_dir()
    ]


class SiteBuilder:
    """Builds every output target of a project.

    Attributes:
        options: Build options.
        site: Site configuration.
        report: Collected recoverable errors.
    """

    def __init__(
        self,
        options: BuildOptions,
        site: SiteConfig | None = None,
        processor_registry: AssetProcessorRegistry | None = None,
    ):
        self.options = options
        self.site = site if site is not None else load_config(options.config_path)
        self.report = BuildReport()
        self.processor_registry = processor_registry or create_default_registry(
            options.project_root, options.max_image_width
        )

    async def build(self) -> BuildResult:
        """Run the build.

        Raises:
            MalformedFrontmatterError: If any content document is
                malformed. Nothing is written in that case.
        """
        processor = ContentProcessor(self.options, self.site)
        content_files = await asyncio.to_thread(processor.load)
        targets = list_output_targets(self.options)
        logger.info("Using outputs: %s", ", ".join(t.name for t in targets))

        runner = CommandRunner(self.options.jobs, self.options.optimizer_timeout)
        cache = AssetCache(self.options.cache_root, self.processor_registry, runner)
        site_assets = discover_assets(self.options.static_root, self.options.cache_root)

        results = await asyncio.gather(
            *(
                self._build_target(target, content_files, cache, site_assets)
                for target in targets
            )
        )
        return BuildResult(
            targets=list(results),
            report=self.report,
            content_files=content_files,
            site=self.site,
        )

    async def _build_target(
        self,
        target: OutputTarget,
        content_files: list[ContentFile],
        cache: AssetCache,
        site_assets: list[StaticAsset],
    ) -> TargetResult:
        result = TargetResult(target)
        result.enter(TargetState.CLEANING)
        await asyncio.to_thread(ensure_clean_dir, target.destination_dir)

        engine = TemplateEngine(target.template_dir)
        templates = await asyncio.to_thread(
            TemplateResolver(target.name, engine).resolve
        )
        for error in templates.errors:
            logger.error("[%s] %s", target.name, error)
            self.report.add(target.name, error)
        result.enter(TargetState.TEMPLATES_RESOLVED)

        assets = merge_assets(
            site_assets,
            discover_assets(target.static_dir, self.options.cache_root),
        )
        asset_task = asyncio.ensure_future(
            AssetPipeline(cache, self.report).run(
                target.name, assets, target.destination_dir
            )
        )

        raw_transform = (
            SmartPunctuation() if self.options.typography_raw_content else IdentityTransform()
        )
        pipeline = RenderPipeline(
            target.name,
            target.destination_dir,
            engine,
            templates,
            self.report,
            link_prefix=self.site.site_prefix,
            raw_transform=raw_transform,
        )
        try:
            pages = await pipeline.render_pages(content_files)
            result.pages = len(pages)
            result.enter(TargetState.PAGES_RENDERED)

            await pipeline.render_indexes(content_files, pages)
            result.enter(TargetState.INDEXES_RENDERED)
        finally:
            result.assets = await asset_task
        result.enter(TargetState.ASSETS_COPIED)

        result.written = pipeline.written
        result.errors = self.report.for_target(target.name)
        result.enter(TargetState.DONE)
        return result


def build_site(
    project_root: Path | None = None,
    options: BuildOptions | None = None,
    processor_registry: AssetProcessorRegistry | None = None,
) -> BuildResult:
    """Build the entire static site.

    Args:
        project_root: Root directory of the project; ignored when
            options are given.
        options: Build options; defaults derived from project_root.
        processor_registry: Optional custom optimizer table.

    Returns:
        BuildResult with per-target results and the error report.

    Raises:
        MalformedFrontmatterError: If a content document is malformed.
    """
    if options is None:
        if project_root is None:
            raise ValueError("build_site needs a project root or build options")
        options = BuildOptions(project_root=project_root)
    builder = SiteBuilder(options, processor_registry=processor_registry)
    try:
        return asyncio.run(builder.build())
    finally:
        # worker threads are joined by now
        sweep_partials(options.cache_root)
