"""Static asset pipeline for chop.

Files under a `static` directory (one per output target, plus one for
the whole site) are optimized once into a shared cache and then copied
into each output tree.

The cache is keyed by the asset's base name. A cached file that exists
is trusted as-is: it is never re-optimized or compared with its source.
Delete the cache directory to force re-optimization.

Key components:
- StaticAsset: One discovered asset.
- AssetCache: Optimizes each cache entry at most once.
- AssetPipeline: Copies a target's assets, degrading to the source on failure.
- sweep_partials: Removes leftovers of abandoned in-thread optimizations.
"""

from __future__ import annotations

import asyncio
import logging
import os
from collections.abc import Iterable, Sequence
from dataclasses import dataclass
from pathlib import Path

from .asset_processors import AssetProcessorRegistry
from .errors import BuildReport, OptimizerError, WriteError
from .executable_utils import CommandRunner
from .utils import copy_file

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class StaticAsset:
    """A file under a static directory.

    Attributes:
        source_path: Path of the source file.
        relative_path: Path relative to its static directory.
        cached_path: Path of the optimized copy in the cache.
    """

    source_path: Path
    relative_path: Path
    cached_path: Path

    def destination(self, destination_dir: Path) -> Path:
        return destination_dir / self.relative_path


def discover_assets(static_dir: Path, cache_root: Path) -> list[StaticAsset]:
    """List every file under a static directory, recursively.

    Args:
        static_dir: Directory to search; a missing directory yields nothing.
        cache_root: Root of the optimized asset cache.

    Returns:
        Assets sorted by relative path.
    """
    if not static_dir.is_dir():
        return []
    assets = []
    for path in sorted(static_dir.rglob("*")):
        if not path.is_file():
            continue
        assets.append(
            StaticAsset(
                source_path=path,
                relative_path=path.relative_to(static_dir),
                cached_path=cache_root / path.name,
            )
        )
    return assets


def merge_assets(*groups: Iterable[StaticAsset]) -> list[StaticAsset]:
    """Merge asset groups; later groups win on the same relative path."""
    merged: dict[Path, StaticAsset] = {}
    for group in groups:
        for asset in group:
            merged[asset.relative_path] = asset
    return list(merged.values())


def _partial_path(cached: Path) -> Path:
    return cached.with_name(f".{cached.stem}.{os.getpid()}.partial{cached.suffix}")


def sweep_partials(cache_root: Path) -> int:
    """Delete partial files this process left in the cache.

    An in-thread optimizer that timed out keeps running and may write its
    partial file after the entry was abandoned. Call this once every
    worker thread has finished.

    Returns:
        Number of files removed.
    """
    if not cache_root.is_dir():
        return 0
    removed = 0
    for path in cache_root.glob(f".*.{os.getpid()}.partial*"):
        path.unlink(missing_ok=True)
        removed += 1
    if removed:
        logger.debug("Removed %d partial files from %s", removed, cache_root)
    return removed


class AssetCache:
    """Content cache of optimized assets, shared by all output targets.

    Within one build, concurrent requests for the same cache entry share
    a single optimization, and a failed entry is not retried.

    Attributes:
        cache_root: Directory holding optimized files.
        registry: Optimizer lookup table.
        runner: Bounded runner for optimizer work.
        optimizations: Number of optimizations started in this build.
    """

    def __init__(
        self,
        cache_root: Path,
        registry: AssetProcessorRegistry,
        runner: CommandRunner,
    ):
        self.cache_root = cache_root
        self.registry = registry
        self.runner = runner
        self.optimizations = 0
        self._inflight: dict[Path, asyncio.Task] = {}
        self._owners: dict[Path, Path] = {}

    async def ensure(self, asset: StaticAsset) -> bool:
        """Make sure the asset's cache entry exists.

        Args:
            asset: Asset to optimize.

        Returns:
            True on a cache hit (nothing optimized for this request).

        Raises:
            OptimizerError: If optimizing the entry failed.
        """
        cached = asset.cached_path
        owner = self._owners.setdefault(cached, asset.source_path)
        if owner != asset.source_path:
            logger.warning(
                "Cache entry %s is shared by %s and %s; both use the same optimized file",
                cached.name,
                owner,
                asset.source_path,
            )
        task = self._inflight.get(cached)
        if task is None:
            if cached.exists():
                return True
            self.optimizations += 1
            task = asyncio.ensure_future(self._optimize(asset))
            self._inflight[cached] = task
        await task
        return False

    async def _optimize(self, asset: StaticAsset) -> None:
        cached = asset.cached_path
        partial = _partial_path(cached)
        cached.parent.mkdir(parents=True, exist_ok=True)
        logger.debug("Optimizing %s", asset.source_path)
        try:
            await self.registry.process(asset.source_path, partial, self.runner)
            if not partial.exists():
                raise OptimizerError(asset.source_path, "optimizer produced no output")
            os.replace(partial, cached)
        except BaseException:
            partial.unlink(missing_ok=True)
            raise


@dataclass
class AssetStats:
    """Counts for one target's asset run."""

    copied: int = 0
    cache_hits: int = 0
    failed: int = 0


class AssetPipeline:
    """Copies static assets into one output target.

    Attributes:
        cache: Shared asset cache.
        report: Build report receiving optimizer and write errors.
    """

    def __init__(self, cache: AssetCache, report: BuildReport):
        self.cache = cache
        self.report = report

    async def run(
        self, target: str, assets: Sequence[StaticAsset], destination_dir: Path
    ) -> AssetStats:
        """Optimize (or reuse) and copy every asset.

        Args:
            target: Output target name, for error reports.
            assets: Assets to copy.
            destination_dir: Root of the target's output tree.

        Returns:
            AssetStats for this run.
        """
        stats = AssetStats()
        await asyncio.gather(
            *(self._process(target, asset, destination_dir, stats) for asset in assets)
        )
        return stats

    async def _process(
        self,
        target: str,
        asset: StaticAsset,
        destination_dir: Path,
        stats: AssetStats,
    ) -> None:
        copy_from = asset.cached_path
        try:
            if await self.cache.ensure(asset):
                stats.cache_hits += 1
        except OptimizerError as exc:
            logger.warning("[%s] %s; copying unoptimized source", target, exc)
            self.report.add(target, exc)
            stats.failed += 1
            copy_from = asset.source_path
        dest = asset.destination(destination_dir)
        try:
            await asyncio.to_thread(copy_file, copy_from, dest)
        except OSError as exc:
            error = WriteError(dest, f"Cannot copy asset: {exc}", exc)
            logger.error("[%s] %s", target, error)
            self.report.add(target, error)
            return
        stats.copied += 1
