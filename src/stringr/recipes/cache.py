# recipes/cache.py
from __future__ import annotations

import json
import os
import tarfile
import time
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, Iterable, List, Mapping, Tuple

from .. import settings
from ..actions import StepLog
from ..errors import RecipeError
from .base import require, split_list

# ---------------------------------------------------------------------
# Core idea
# ---------------------------------------------------------------------
# Key-addressed directory cache:
#   save:    tar.gz of the listed paths, stored as <cache_dir>/<key>.tar.gz
#            plus <key>.manifest.json for explainability
#   restore: extract <key>.tar.gz back into the working directory;
#            a miss is not an error
#
# Paths are archived relative to the working directory so they extract back
# to the same place.
# ---------------------------------------------------------------------


DEFAULT_CACHE_EXCLUDES = [
    "**/__pycache__/**",
    "**/*.pyc",
    "**/.DS_Store",
]


@dataclass(frozen=True)
class CacheHit:
    hit: bool
    key: str
    reason: str  # human readable


def _arcname(p: Path, root: Path) -> str:
    try:
        rel = p.resolve().relative_to(root.resolve())
    except ValueError:
        # outside the working directory: keep the path, minus the leading slash
        rel = Path(os.path.normpath(str(p)).lstrip("/\\"))
    return str(rel).replace("\\", "/")


def _iter_files_under(root: Path) -> Iterable[Path]:
    # deterministic traversal
    for p in sorted(root.rglob("*")):
        if p.is_file():
            yield p


def _matches_any_glob(rel: str, globs: List[str]) -> bool:
    rel_path = Path(rel)
    return any(rel_path.match(g) for g in globs)


def _tar_add_path(tar: tarfile.TarFile, root: Path, src: Path, *, exclude_globs: List[str]) -> int:
    """Add src (file/dir) to tar, skipping excluded files. Returns files added."""
    if src.is_file():
        rel = _arcname(src, root)
        if _matches_any_glob(rel, exclude_globs):
            return 0
        tar.add(str(src), arcname=rel, recursive=False)
        return 1

    added = 0
    for f in _iter_files_under(src):
        rel = _arcname(f, root)
        if _matches_any_glob(rel, exclude_globs):
            continue
        tar.add(str(f), arcname=rel, recursive=False)
        added += 1
    return added


class CacheStore:
    """
    File-based cache store:
      root/
        <key>.tar.gz
        <key>.manifest.json
    """

    def __init__(self, root: str | Path):
        self.root = Path(root).expanduser().resolve()

    def artifact_path(self, key: str) -> Path:
        return self.root / f"{key}.tar.gz"

    def manifest_path(self, key: str) -> Path:
        return self.root / f"{key}.manifest.json"

    def restore(self, key: str, *, dest: str | Path = ".") -> CacheHit:
        art = self.artifact_path(key)
        if not art.exists():
            return CacheHit(hit=False, key=key, reason=f"Cache miss: {key} not found")

        try:
            with tarfile.open(str(art), mode="r:gz") as tar:
                if hasattr(tarfile, "data_filter"):
                    tar.extractall(path=str(dest), filter="data")
                else:
                    tar.extractall(path=str(dest))
        except (tarfile.TarError, OSError) as e:
            raise RecipeError("CacheRestoreFailed", f"could not restore {art}: {e}", key=key) from e

        return CacheHit(hit=True, key=key, reason=f"Cache hit: restored from {art}")

    def save(
        self,
        key: str,
        paths: List[str],
        *,
        root: str | Path = ".",
        excludes: List[str] | None = None,
    ) -> Tuple[Path, Dict]:
        """
        Archive `paths` (relative to root) under `key`, replacing any
        previous archive atomically. Returns (artifact_path, manifest).
        """
        root_p = Path(root).resolve()
        exclude_globs = list(DEFAULT_CACHE_EXCLUDES) + list(excludes or [])
        self.root.mkdir(parents=True, exist_ok=True)

        art = self.artifact_path(key)
        tmp = art.with_suffix(".gz.tmp")
        manifest = {
            "key": key,
            "paths": list(paths),
            "excludes": exclude_globs,
            "generated_at_unix": int(time.time()),
        }
        try:
            # Build tar.gz in tmp, then atomic rename
            with tarfile.open(str(tmp), mode="w:gz") as tar:
                files = 0
                for entry in paths:
                    files += _tar_add_path(tar, root_p, root_p / entry, exclude_globs=exclude_globs)
            manifest["files"] = files
            tmp.replace(art)
            self.manifest_path(key).write_text(
                json.dumps(manifest, sort_keys=True, indent=2, ensure_ascii=False),
                encoding="utf-8",
            )
        except (tarfile.TarError, OSError) as e:
            raise RecipeError("CacheSaveFailed", f"could not write {art}: {e}", key=key) from e
        finally:
            if tmp.exists():
                tmp.unlink(missing_ok=True)

        return art, manifest


# ---------------------------------------------------------------------
# Recipe
# ---------------------------------------------------------------------

class CacheRecipe:
    """
    Save or restore a set of paths under a cache key.

    Supported parameters:
      action (required): "restore" or "save"
      key (required):    cache key, e.g. "node-modules-v1"
      paths (required):  comma separated paths
      cache_dir:         where archives live (default STRINGR_CACHE_DIR)
    """
    name = "cache"

    def run(self, params: Mapping[str, str], log: StepLog) -> None:
        action = require(params, "action", "MissingCacheAction")
        key = require(params, "key", "MissingCacheKey")
        paths = split_list(require(params, "paths", "MissingCachePaths"))
        store = CacheStore(params.get("cache_dir") or settings.CACHE_DIR)

        log.line(f"Cache {action}: key={key}")

        if action == "restore":
            hit = store.restore(key)
            log.line(hit.reason)
            if hit.hit:
                log.line("Cache restored successfully")
            return

        if action == "save":
            existing: List[str] = []
            for p in paths:
                if os.path.exists(p):
                    existing.append(p)
                else:
                    log.line(f"Warning: path {p} does not exist, skipping")

            if not existing:
                log.line("No valid paths to cache")
                return

            art, manifest = store.save(key, existing)
            log.line(f"Saving cache to {art}")
            log.line(f"Cache saved successfully ({manifest['files']} files)")
            return

        log.line(f"Invalid cache action: {action} (must be 'restore' or 'save')")
        raise RecipeError("InvalidCacheAction", f"invalid cache action '{action}'", action=action)
