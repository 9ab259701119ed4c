"""Asset optimizers for chop.

Each processor optimizes one kind of static asset, reading the source
and writing the optimized file to a destination path. Processors are
selected by extension through AssetProcessorRegistry; files with no
registered extension are copied verbatim.

External tools (terser, svgo, oxipng, jpegoptim) are used when found on
PATH or in node_modules; otherwise the in-process libraries do the work.

Key classes:
- JSProcessor: Minifies JavaScript (terser, else rjsmin).
- CSSProcessor: Minifies CSS (rcssmin).
- ImageProcessor: Downscales and optimizes PNG and JPEG (Pillow, then oxipng/jpegoptim).
- SVGProcessor: Optimizes SVG (svgo, else verbatim).
- CopyProcessor: Copies the file verbatim.
- AssetProcessorRegistry: Extension lookup table.
"""

from __future__ import annotations

import logging
import shutil
from abc import ABC, abstractmethod
from pathlib import Path

import rcssmin
import rjsmin
from PIL import Image

from .config import DEFAULT_MAX_IMAGE_WIDTH
from .executable_utils import CommandRunner, find_executable

logger = logging.getLogger(__name__)


def _copy(source: Path, dest: Path) -> None:
    shutil.copyfile(source, dest)


def _minify_js(source: Path, dest: Path) -> None:
    with open(source, encoding="utf-8") as f_in:
        minified = rjsmin.jsmin(f_in.read())
    with open(dest, "w", encoding="utf-8") as f_out:
        f_out.write(minified)


def _minify_css(source: Path, dest: Path) -> None:
    with open(source, encoding="utf-8") as f_in:
        minified = rcssmin.cssmin(f_in.read())
    with open(dest, "w", encoding="utf-8") as f_out:
        f_out.write(minified)


def _downscale_image(source: Path, dest: Path, max_width: int) -> None:
    """Scale an image down to max_width (keeping its aspect) and save it optimized."""
    with Image.open(source) as img:
        image_format = img.format
        if img.width > max_width:
            height = max(1, round(img.height * max_width / img.width))
            resized = img.resize((max_width, height), Image.Resampling.LANCZOS)
        else:
            resized = img.copy()
    save_kwargs: dict = {"optimize": True}
    if image_format == "JPEG":
        save_kwargs["quality"] = 85
    resized.save(dest, format=image_format, **save_kwargs)


class BaseAssetProcessor(ABC):
    """Base class for asset processors.

    Attributes:
        extensions: Lower-case extensions handled by this processor.
    """

    extensions: tuple[str, ...] = ()

    @abstractmethod
    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        """Optimize an asset file.

        Args:
            source: Source asset path.
            dest: Destination path for the optimized asset.
            runner: Bounded runner for commands and blocking calls.

        Raises:
            OptimizerError: If optimization fails or times out.
        """
        ...

    def ensure_dest_dir(self, dest: Path) -> None:
        """Ensure the parent directory of the destination exists."""
        dest.parent.mkdir(parents=True, exist_ok=True)


class CopyProcessor(BaseAssetProcessor):
    """Copies assets without modification."""

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        self.ensure_dest_dir(dest)
        await runner.call(_copy, source, source, dest)


class JSProcessor(BaseAssetProcessor):
    """Minifies JavaScript files.

    Uses terser when it is installed, rjsmin otherwise.
    """

    extensions = (".js",)

    def __init__(self, project_root: Path | None = None):
        self.project_root = project_root

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        self.ensure_dest_dir(dest)
        terser = find_executable("terser", self.project_root)
        if terser:
            await runner.run([terser, str(source), "-c", "-m", "-o", str(dest)], source)
            return
        await runner.call(_minify_js, source, source, dest)


class CSSProcessor(BaseAssetProcessor):
    """Minifies CSS files with rcssmin."""

    extensions = (".css",)

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        self.ensure_dest_dir(dest)
        await runner.call(_minify_css, source, source, dest)


class ImageProcessor(BaseAssetProcessor):
    """Downscales and optimizes PNG and JPEG images.

    Images wider than max_width are resized first. Pillow then saves an
    optimized copy, and oxipng or jpegoptim run over it when available.

    Attributes:
        max_width: Maximum image width in pixels.
        project_root: Project root for node_modules lookups.
    """

    extensions = (".png", ".jpg", ".jpeg")

    # Lossless second pass run in place on the optimized file.
    EXTERNAL_TOOLS = {
        ".png": ("oxipng", ["-o", "2", "--strip", "safe"]),
        ".jpg": ("jpegoptim", ["--strip-all", "--quiet"]),
        ".jpeg": ("jpegoptim", ["--strip-all", "--quiet"]),
    }

    def __init__(
        self,
        max_width: int = DEFAULT_MAX_IMAGE_WIDTH,
        project_root: Path | None = None,
    ):
        self.max_width = max_width
        self.project_root = project_root

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        self.ensure_dest_dir(dest)
        await runner.call(_downscale_image, source, source, dest, self.max_width)
        tool = self.EXTERNAL_TOOLS.get(source.suffix.lower())
        if tool is None:
            return
        name, args = tool
        binary = find_executable(name, self.project_root)
        if binary:
            await runner.run([binary, *args, str(dest)], source)


class SVGProcessor(BaseAssetProcessor):
    """Optimizes SVG files with svgo, copying them when svgo is missing."""

    extensions = (".svg",)

    def __init__(self, project_root: Path | None = None):
        self.project_root = project_root

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        self.ensure_dest_dir(dest)
        svgo = find_executable("svgo", self.project_root)
        if not svgo:
            logger.debug("svgo not found; copying %s unchanged", source)
            await runner.call(_copy, source, source, dest)
            return
        await runner.run([svgo, "-i", str(source), "-o", str(dest)], source)


class AssetProcessorRegistry:
    """Lookup table from file extension to asset processor.

    Attributes:
        fallback: Processor for extensions with no entry.
    """

    def __init__(self, fallback: BaseAssetProcessor | None = None):
        self.fallback = fallback or CopyProcessor()
        self._table: dict[str, BaseAssetProcessor] = {}

    def register(self, processor: BaseAssetProcessor) -> None:
        """Register a processor for each of its extensions.

        A later registration replaces an earlier one for the same extension.
        """
        for extension in processor.extensions:
            self._table[extension.lower()] = processor

    def get_processor(self, path: Path) -> BaseAssetProcessor:
        """Return the processor for a file, or the fallback."""
        return self._table.get(path.suffix.lower(), self.fallback)

    async def process(self, source: Path, dest: Path, runner: CommandRunner) -> None:
        await self.get_processor(source).process(source, dest, runner)


def create_default_registry(
    project_root: Path | None = None,
    max_image_width: int = DEFAULT_MAX_IMAGE_WIDTH,
) -> AssetProcessorRegistry:
    """Create a registry with the default processors.

    Args:
        project_root: Root directory of the project.
        max_image_width: Width above which images are scaled down.

    Returns:
        Configured AssetProcessorRegistry.
    """
    registry = AssetProcessorRegistry()
    registry.register(JSProcessor(project_root))
    registry.register(CSSProcessor())
    registry.register(ImageProcessor(max_image_width, project_root))
    registry.register(SVGProcessor(project_root))
    return registry
