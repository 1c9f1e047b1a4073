# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""
GitHub organization directory: members and teams, cached on disk with a TTL.

Public API is re-exported from:
- `org_directory.directory` for the query surface (OrgDirectory)
- `org_directory.config` for DirectoryConfig and defaults
- `org_directory.github_client` for the REST client and the OrgDirectoryAPI interface
- `org_directory.exceptions` for the error taxonomy
"""

from .config import (  # noqa: F401
    ALL_TEAM,
    DEFAULT_CACHE_TTL_MINUTES,
    DirectoryConfig,
)
from .directory import OrgDirectory  # noqa: F401
from .directory_types import Matches, Member, Snapshot, Team  # noqa: F401
from .exceptions import (  # noqa: F401
    CacheCorruptError,
    CacheIOError,
    ConfigError,
    DirectoryNotReadyError,
    OrgDirectoryError,
    RemoteFetchError,
)
from .github_client import GitHubAPIClient, OrgDirectoryAPI  # noqa: F401

__all__ = [
    "ALL_TEAM",
    "DEFAULT_CACHE_TTL_MINUTES",
    "CacheCorruptError",
    "CacheIOError",
    "ConfigError",
    "DirectoryConfig",
    "DirectoryNotReadyError",
    "GitHubAPIClient",
    "Matches",
    "Member",
    "OrgDirectory",
    "OrgDirectoryAPI",
    "OrgDirectoryError",
    "RemoteFetchError",
    "Snapshot",
    "Team",
]
