"""Content discovery and processing for chop.

This module finds content documents in the project tree, parses their
frontmatter, resolves their site paths and builds ContentFile records.

Key classes:
- ContentFile: One parsed content document.
- FileContentLoader: Discovers content files.
- SitePathResolver: Computes prefixed and unprefixed site paths.
- ContentProcessor: Facade that loads every ContentFile of a project.
"""

from __future__ import annotations

import logging
from collections.abc import Mapping
from dataclasses import dataclass
from pathlib import Path, PurePosixPath
from typing import Any

from .config import BuildOptions, SiteConfig, merge_variables
from .errors import MalformedFrontmatterError
from .extractors import parse_frontmatter

logger = logging.getLogger(__name__)

INDEX_NAME = "index"


@dataclass(frozen=True)
class ContentFile:
    """A parsed content document.

    Attributes:
        source_path: Absolute path of the source file.
        variables: Frontmatter merged over the site variables.
        raw_content: Body text after the frontmatter.
        site_path: Site path including the site prefix.
        site_path_unprefixed: Site path without the prefix.
        is_index: Whether the source file is named index.
    """

    source_path: Path
    variables: Mapping[str, Any]
    raw_content: str
    site_path: str
    site_path_unprefixed: str
    is_index: bool

    def template_variables(self) -> dict[str, Any]:
        """Return a fresh variable dict as seen by templates."""
        variables = dict(self.variables)
        variables["content"] = self.raw_content
        variables["path"] = self.site_path
        variables["path_unprefixed"] = self.site_path_unprefixed
        return variables


class FileContentLoader:
    """Discovers content files under the project root.

    Directories named like the templates, destination, cache or static
    directories are skipped, as are hidden directories.

    Attributes:
        options: Build options describing the project layout.
    """

    def __init__(self, options: BuildOptions):
        self.options = options

    def iter_files(self) -> list[Path]:
        """List content files in a stable order.

        Returns:
            Sorted list of content file paths.
        """
        root = self.options.project_root
        excluded = self.options.excluded_dirs
        files: list[Path] = []
        for path in root.rglob(f"*{self.options.content_extension}"):
            rel = path.relative_to(root)
            if any(
                part in excluded or part.startswith(".") for part in rel.parts[:-1]
            ):
                continue
            if rel == Path(self.options.config_name) or not path.is_file():
                continue
            files.append(path)
        return sorted(files, key=lambda p: p.relative_to(root).as_posix())


class SitePathResolver:
    """Computes site paths for content documents.

    Attributes:
        content_root: Directory site paths are relative to.
        content_extension: Suffix stripped from file names.
        site_prefix: Prefix prepended to every site path.
    """

    def __init__(self, content_root: Path, content_extension: str, site_prefix: str = ""):
        self.content_root = content_root
        self.content_extension = content_extension
        self.site_prefix = site_prefix

    def unprefixed(self, source_path: Path, frontmatter: Mapping[str, Any]) -> str:
        """Return the site path without prefix.

        An explicit `path` in the frontmatter is used verbatim.
        """
        explicit = frontmatter.get("path")
        if explicit:
            return str(explicit)
        rel = source_path.relative_to(self.content_root)
        stem = self.strip_extension(rel.name)
        return "/" + str(PurePosixPath(rel.parent.as_posix(), stem))

    def resolve(
        self, source_path: Path, frontmatter: Mapping[str, Any]
    ) -> tuple[str, str]:
        """Return (site_path, site_path_unprefixed) for a document."""
        unprefixed = self.unprefixed(source_path, frontmatter)
        return f"{self.site_prefix}{unprefixed}", unprefixed

    def strip_extension(self, name: str) -> str:
        if name.endswith(self.content_extension):
            return name[: -len(self.content_extension)]
        return name

    def is_index(self, source_path: Path) -> bool:
        return self.strip_extension(source_path.name) == INDEX_NAME


class ContentProcessor:
    """Facade for loading every content document of a project.

    Attributes:
        options: Build options.
        site: Site configuration merged into every document.
    """

    def __init__(
        self,
        options: BuildOptions,
        site: SiteConfig,
        content_loader: FileContentLoader | None = None,
    ):
        self.options = options
        self.site = site
        self._content_loader = content_loader or FileContentLoader(options)
        self._path_resolver = SitePathResolver(
            options.project_root, options.content_extension, site.site_prefix
        )

    def load(self) -> list[ContentFile]:
        """Load and parse all content documents.

        Returns:
            ContentFile records in discovery order.

        Raises:
            MalformedFrontmatterError: On the first malformed document.
        """
        files = [self.build(path) for path in self._content_loader.iter_files()]
        logger.debug("Loaded %d content files", len(files))
        return files

    def build(self, path: Path) -> ContentFile:
        """Parse one content document into a ContentFile."""
        try:
            text = path.read_text(encoding="utf-8")
        except UnicodeDecodeError as exc:
            message = f"Not valid UTF-8: {exc.reason}"
            raise MalformedFrontmatterError(path, message, exc) from exc
        except OSError as exc:
            message = f"Cannot read file: {exc}"
            raise MalformedFrontmatterError(path, message, exc) from exc
        frontmatter, body = parse_frontmatter(text, path)
        site_path, unprefixed = self._path_resolver.resolve(path, frontmatter)
        return ContentFile(
            source_path=path.resolve(),
            variables=merge_variables(self.site.variables, frontmatter),
            raw_content=body,
            site_path=site_path,
            site_path_unprefixed=unprefixed,
            is_index=self._path_resolver.is_index(path),
        )
