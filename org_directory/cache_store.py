# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0

"""
File-backed cache for whole collections (one file per key) with TTL freshness.

Layout under the cache directory:
  <cache_dir>/members   {"version": 1, "items": [{"login": ..., "name": ...}, ...]}
  <cache_dir>/teams     {"version": 1, "items": [{"members": [...], "name": ...}, ...]}

Freshness is purely the file modification time: (now - mtime) <= TTL.
"""

from __future__ import annotations

import json
import logging
import os
import time
from dataclasses import dataclass
from pathlib import Path
from threading import Lock
from typing import Any, Dict, List, Optional

from .exceptions import CacheCorruptError, CacheIOError

_logger = logging.getLogger(__name__)


@dataclass
class CacheStats:
    """Basic cache statistics tracked automatically by DiskCacheStore."""
    hit: int = 0
    miss: int = 0
    write: int = 0


class DiskCacheStore:
    """Key -> JSON collection store with an age-based validity window.

    Provides:
    - is_fresh(): TTL check on file mtime (missing or stale -> False)
    - save(): stable encoding + atomic replace (tmp file + rename)
    - load(): parse, raising CacheCorruptError on malformed data
    - remove(): idempotent invalidation
    """

    def __init__(self, *, cache_dir: Path, ttl_s: float, schema_version: int = 1):
        self._mu = Lock()
        self._cache_dir = Path(cache_dir)
        self._ttl_s = float(ttl_s)
        self._schema_version = int(schema_version)
        self.stats = CacheStats()

    @property
    def cache_dir(self) -> Path:
        return self._cache_dir

    @property
    def ttl_s(self) -> float:
        return self._ttl_s

    def path(self, key: str) -> Path:
        return self._cache_dir / str(key)

    def age_s(self, key: str) -> Optional[float]:
        """Seconds since the file for `key` was last written, or None if it does not exist."""
        try:
            mtime = self.path(key).stat().st_mtime
        except OSError:
            return None
        return max(0.0, time.time() - mtime)

    def is_fresh(self, key: str) -> bool:
        age = self.age_s(key)
        fresh = age is not None and age <= self._ttl_s
        if fresh:
            self.stats.hit += 1
        else:
            self.stats.miss += 1
            _logger.debug("cache %s: %s", key, "missing" if age is None else f"expired (age={age:.0f}s ttl={self._ttl_s:.0f}s)")
        return fresh

    def _ensure_dir(self) -> None:
        try:
            self._cache_dir.mkdir(parents=True, exist_ok=True)
        except OSError as e:
            raise CacheIOError(f"unable to create cache directory ({e})", filename=str(self._cache_dir))

    def save(self, key: str, items: List[Dict[str, Any]]) -> None:
        """Persist `items` (already in canonical order) and atomically replace the old file."""
        target = self.path(key)
        payload = {"version": self._schema_version, "items": list(items)}
        try:
            text = json.dumps(payload, sort_keys=True, separators=(",", ":"))
        except (TypeError, ValueError) as e:
            raise CacheIOError(f"unable to encode cache file ({e})", filename=str(target))

        with self._mu:
            self._ensure_dir()
            tmp = Path(f"{target}.tmp.{os.getpid()}")
            try:
                tmp.write_text(text)
                os.replace(str(tmp), str(target))
            except OSError as e:
                try:
                    tmp.unlink()
                except OSError:
                    pass
                raise CacheIOError(f"unable to write cache file ({e})", filename=str(target))
            self.stats.write += 1
        _logger.debug("cache %s: wrote %d items to %s", key, len(payload["items"]), target)

    def load(self, key: str) -> List[Dict[str, Any]]:
        """Read the items stored under `key` ({"version": <int>, "items": [...]}).

        Raises:
            CacheIOError: file missing or unreadable
            CacheCorruptError: bytes do not parse, or layout/version mismatch
        """
        target = self.path(key)
        try:
            text = target.read_text()
        except OSError as e:
            raise CacheIOError(f"unable to read cache file ({e})", filename=str(target))

        try:
            raw = json.loads(text)
        except ValueError as e:
            raise CacheCorruptError(f"unable to parse cache file ({e})", filename=str(target))

        if not isinstance(raw, dict) or not isinstance(raw.get("items"), list):
            raise CacheCorruptError("unexpected cache layout (no versioned items list)", filename=str(target))
        if raw.get("version") != self._schema_version:
            raise CacheCorruptError(
                f"cache schema version {raw.get('version')!r} != {self._schema_version}",
                filename=str(target),
            )
        items = raw["items"]

        if not all(isinstance(it, dict) for it in items):
            raise CacheCorruptError("cache items must be objects", filename=str(target))
        return items

    def remove(self, key: str) -> None:
        """Delete the file for `key` (no-op if it does not exist)."""
        target = self.path(key)
        with self._mu:
            try:
                target.unlink()
            except FileNotFoundError:
                return
            except OSError as e:
                raise CacheIOError(f"unable to remove cache file ({e})", filename=str(target))
        _logger.debug("cache %s: removed %s", key, target)
