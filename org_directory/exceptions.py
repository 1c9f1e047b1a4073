# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""org_directory error types.

Kept in their own module so the cache, pipeline and client modules can raise and
catch specific error classes without creating import cycles.
"""

from __future__ import annotations

from typing import Optional


class OrgDirectoryError(Exception):
    pass


class ConfigError(OrgDirectoryError):
    """Missing credential or organization; raised before any fetch is attempted."""


class CacheIOError(OrgDirectoryError):
    def __init__(self, message: str, *, filename: str = ""):
        super().__init__(f"{message}: {filename}" if filename else message)
        self.filename = str(filename or "")


class CacheCorruptError(CacheIOError):
    """Persisted bytes did not parse (or have the wrong layout / schema version)."""


class RemoteFetchError(OrgDirectoryError):
    def __init__(
        self,
        message: str,
        *,
        key: str = "",
        endpoint: str = "",
        status_code: Optional[int] = None,
    ):
        super().__init__(message)
        self.key = str(key or "")
        self.endpoint = str(endpoint or "")
        self.status_code = int(status_code) if status_code is not None else None


class DirectoryNotReadyError(OrgDirectoryError):
    """A query was made before a snapshot was loaded or built."""


class PipelineCancelledError(OrgDirectoryError):
    """A refresh pipeline stopped because a sibling pipeline failed first."""
