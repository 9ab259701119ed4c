"""Configuration loading for chop.

Two kinds of configuration feed a build:

- SiteConfig: the site-wide template variables read from config.yaml.
  It is loaded once and handed to every component explicitly.
- BuildOptions: where things live on disk and how hard to work
  (worker count, optimizer timeout, image width).

Key functions:
- load_config: Load config.yaml into a SiteConfig, degrading to empty.
- merge_variables: Merge document variables over the site variables.
"""

from __future__ import annotations

import logging
import os
from collections.abc import Mapping
from dataclasses import dataclass, field
from pathlib import Path
from types import MappingProxyType
from typing import Any

import yaml

from .errors import ConfigError

logger = logging.getLogger(__name__)

DEFAULT_MAX_IMAGE_WIDTH = 1600
DEFAULT_OPTIMIZER_TIMEOUT = 60.0


@dataclass(frozen=True)
class SiteConfig:
    """Site-wide variables shared by every document and output target.

    Attributes:
        variables: Read-only mapping loaded from the config file.
    """

    variables: Mapping[str, Any] = field(
        default_factory=lambda: MappingProxyType({})
    )

    @classmethod
    def from_mapping(cls, data: Mapping[str, Any]) -> SiteConfig:
        return cls(MappingProxyType(dict(data)))

    @property
    def site_prefix(self) -> str:
        """Return the URL prefix prepended to site paths and links."""
        prefix = self.variables.get("site_prefix") or ""
        return str(prefix)


@dataclass(frozen=True)
class BuildOptions:
    """Filesystem layout and tuning knobs for one build.

    Attributes:
        project_root: Directory holding content, templates and config.
        content_extension: Suffix of content documents.
        config_name: Name of the site config file in the project root.
        templates_dir: Directory name of the templates root.
        destination_dir: Directory name of the build output.
        cache_dir: Directory name of the optimized asset cache.
        static_name: Name of static asset directories.
        jobs: Maximum number of concurrent optimizer jobs.
        optimizer_timeout: Seconds before an optimizer run is abandoned.
        max_image_width: Images wider than this are scaled down.
        typography_raw_content: Also apply smart punctuation to `content`.
    """

    project_root: Path
    content_extension: str = ".txt"
    config_name: str = "config.yaml"
    templates_dir: str = "templates"
    destination_dir: str = "dist"
    cache_dir: str = ".cache"
    static_name: str = "static"
    jobs: int = field(default_factory=lambda: os.cpu_count() or 1)
    optimizer_timeout: float = DEFAULT_OPTIMIZER_TIMEOUT
    max_image_width: int = DEFAULT_MAX_IMAGE_WIDTH
    typography_raw_content: bool = True

    @property
    def config_path(self) -> Path:
        return self.project_root / self.config_name

    @property
    def templates_root(self) -> Path:
        return self.project_root / self.templates_dir

    @property
    def destination_root(self) -> Path:
        return self.project_root / self.destination_dir

    @property
    def cache_root(self) -> Path:
        return self.project_root / self.cache_dir

    @property
    def static_root(self) -> Path:
        return self.project_root / self.static_name

    @property
    def excluded_dirs(self) -> frozenset[str]:
        """Directory names never searched for content."""
        return frozenset(
            Path(name).name
            for name in (
                self.templates_dir,
                self.destination_dir,
                self.cache_dir,
                self.static_name,
            )
        )


def load_config(config_path: Path) -> SiteConfig:
    """Load site variables from a YAML file.

    A missing file gives an empty config. A file that is not valid YAML,
    or whose top level is not a mapping, is reported as a warning and
    also gives an empty config.

    Args:
        config_path: Path to the config file.

    Returns:
        SiteConfig holding the loaded variables.
    """
    if not config_path.exists():
        return SiteConfig()
    try:
        data = _read_config(config_path)
    except ConfigError as exc:
        logger.warning("Ignoring config: %s", exc)
        return SiteConfig()
    return SiteConfig.from_mapping(data)


def _read_config(config_path: Path) -> dict[str, Any]:
    try:
        with open(config_path, encoding="utf-8") as f:
            loaded = yaml.safe_load(f)
    except (OSError, yaml.YAMLError) as exc:
        raise ConfigError(config_path, f"could not parse config: {exc}", exc) from exc
    if loaded is None:
        return {}
    if not isinstance(loaded, dict):
        raise ConfigError(
            config_path,
            f"expected a mapping at the top level, got {type(loaded).__name__}",
        )
    return loaded


def merge_variables(
    site: Mapping[str, Any], document: Mapping[str, Any]
) -> dict[str, Any]:
    """Merge document variables over site variables.

    Keys keep their first-seen order; document values win on conflict.

    Args:
        site: Site-wide variables.
        document: Frontmatter variables of one document.

    Returns:
        A new dict with the merged variables.
    """
    merged = dict(site)
    merged.update(document)
    return merged
