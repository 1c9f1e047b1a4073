# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Defaults, cache location and credential discovery for org_directory."""

from __future__ import annotations

import logging
import os
from dataclasses import dataclass, field
from pathlib import Path
from typing import Optional

import yaml

from .exceptions import ConfigError

_logger = logging.getLogger(__name__)

DEFAULT_CACHE_TTL_MINUTES = 60
DEFAULT_WORKERS = 10
# Per page request deadline. Pagination is not resumable, so a slow page fails the refresh.
DEFAULT_PAGE_TIMEOUT_S = 2.0
DEFAULT_LOOKUP_TIMEOUT_S = 10.0

# Pseudo-team that expands to every organization member.
ALL_TEAM = "all"

MEMBERS_CACHE_KEY = "members"
TEAMS_CACHE_KEY = "teams"


def org_directory_cache_dir() -> Path:
    """Return the cache directory for org_directory.

    Resolution order:
    - ORG_DIRECTORY_CACHE_DIR (explicit override)
    - ~/.cache/org-directory
    """
    override = os.environ.get("ORG_DIRECTORY_CACHE_DIR")
    if override:
        return Path(override).expanduser()

    return Path.home() / ".cache" / "org-directory"


def get_github_token_from_file() -> Optional[str]:
    """Read a token from ~/.config/github-token (single line), if present."""
    try:
        token_file = Path.home() / ".config" / "github-token"
        if token_file.exists():
            tok = (token_file.read_text() or "").strip()
            if tok:
                return tok
    except OSError:
        pass
    return None


def get_github_token_from_cli() -> Optional[str]:
    """Get GitHub token from GitHub CLI configuration.

    Reads the token from ~/.config/gh/hosts.yml if available.

    Returns:
        GitHub token string, or None if not found
    """
    try:
        gh_config_path = Path.home() / '.config' / 'gh' / 'hosts.yml'
        if gh_config_path.exists():
            with open(gh_config_path, 'r') as f:
                config = yaml.safe_load(f)
                if config and 'github.com' in config:
                    github_config = config['github.com'] or {}
                    if 'oauth_token' in github_config:
                        return github_config['oauth_token']
                    for _user, user_config in (github_config.get('users') or {}).items():
                        if isinstance(user_config, dict) and 'oauth_token' in user_config:
                            return user_config['oauth_token']
    except (OSError, yaml.YAMLError):
        pass
    return None


def resolve_token(token: Optional[str] = None) -> str:
    """Find the access credential or raise ConfigError.

    Priority:
    1) explicit arg
    2) GITHUB_TOKEN env var
    3) ~/.config/github-token
    4) GitHub CLI config (~/.config/gh/hosts.yml)
    """
    tok = (token or "").strip() or (os.environ.get("GITHUB_TOKEN") or "").strip()
    if not tok:
        tok = get_github_token_from_file() or get_github_token_from_cli() or ""
    if not tok:
        raise ConfigError(
            "GitHub token not set. Pass --token, export GITHUB_TOKEN, "
            "or login with gh so ~/.config/gh/hosts.yml exists."
        )
    return tok


def _env_int(name: str, default: int) -> int:
    raw = os.environ.get(name)
    if raw is None or not raw.strip():
        return int(default)
    try:
        return int(raw)
    except ValueError:
        raise ConfigError(f"{name} must be an integer, got {raw!r}")


@dataclass
class DirectoryConfig:
    """Inputs normally owned by the front end (organization, credential, TTL)."""

    org: str
    token: str
    cache_dir: Path = field(default_factory=org_directory_cache_dir)
    ttl_minutes: int = DEFAULT_CACHE_TTL_MINUTES
    workers: int = DEFAULT_WORKERS
    page_timeout_s: float = DEFAULT_PAGE_TIMEOUT_S
    lookup_timeout_s: float = DEFAULT_LOOKUP_TIMEOUT_S

    def __post_init__(self) -> None:
        self.org = str(self.org or "").strip()
        if not self.org:
            raise ConfigError("organization name is required (pass --org or export GITHUB_ORG)")
        # The org name becomes a directory under cache_dir.
        if "/" in self.org or "\\" in self.org or ".." in self.org:
            raise ConfigError(f"invalid organization name {self.org!r}")
        if not self.token:
            raise ConfigError("GitHub token is required")
        if int(self.ttl_minutes) < 0:
            raise ConfigError(f"ttl_minutes must be >= 0, got {self.ttl_minutes}")
        if int(self.workers) <= 0:
            raise ConfigError(f"workers must be > 0, got {self.workers}")
        self.cache_dir = Path(self.cache_dir).expanduser()

    @property
    def org_cache_dir(self) -> Path:
        """Per-organization cache directory holding the members/teams files."""
        return self.cache_dir / self.org

    @classmethod
    def from_env(
        cls,
        org: Optional[str] = None,
        *,
        token: Optional[str] = None,
        cache_dir: Optional[Path] = None,
        ttl_minutes: Optional[int] = None,
        workers: Optional[int] = None,
    ) -> "DirectoryConfig":
        """Build a config from explicit values, falling back to the environment.

        GITHUB_ORG supplies the organization and ORG_DIRECTORY_CACHE_TTL_MINUTES the TTL.
        """
        org_name = (org or os.environ.get("GITHUB_ORG") or "").strip()
        if not org_name:
            raise ConfigError("organization name is required (pass --org or export GITHUB_ORG)")
        ttl = ttl_minutes if ttl_minutes is not None else _env_int(
            "ORG_DIRECTORY_CACHE_TTL_MINUTES", DEFAULT_CACHE_TTL_MINUTES
        )
        cfg = cls(
            org=org_name,
            token=resolve_token(token),
            cache_dir=Path(cache_dir) if cache_dir is not None else org_directory_cache_dir(),
            ttl_minutes=int(ttl),
            workers=int(workers) if workers is not None else DEFAULT_WORKERS,
        )
        _logger.debug("config: org=%s cache_dir=%s ttl=%dm workers=%d", cfg.org, cfg.cache_dir, cfg.ttl_minutes, cfg.workers)
        return cfg
