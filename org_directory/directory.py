# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Organization directory: cache-or-refresh initialization and the query surface.

Usage:
    cfg = DirectoryConfig.from_env("octo-org")
    directory = OrgDirectory.from_config(cfg).initialize()
    directory.matches("oct")
    directory.team_members("eng")

initialize() loads both collections from disk when both cache files are younger than the TTL.
Otherwise it runs the members and teams pipelines in parallel, installs the new snapshot, and
persists it. Queries never touch the network except whoami().
"""

from __future__ import annotations

import logging
import threading
from concurrent.futures import FIRST_EXCEPTION, ThreadPoolExecutor, wait
from pathlib import Path
from typing import List, Optional, Tuple

from .cache_store import DiskCacheStore
from .config import (
    ALL_TEAM,
    DEFAULT_WORKERS,
    MEMBERS_CACHE_KEY,
    TEAMS_CACHE_KEY,
    DirectoryConfig,
)
from .directory_types import Matches, Member, Snapshot, Team
from .exceptions import (
    CacheIOError,
    DirectoryNotReadyError,
    PipelineCancelledError,
    RemoteFetchError,
)
from .github_client import GitHubAPIClient, OrgDirectoryAPI
from .pipeline import fetch_members, fetch_teams

_logger = logging.getLogger(__name__)

WILDCARD = "*"


class OrgDirectory:
    """Members and teams of one organization, served from an immutable snapshot."""

    def __init__(
        self,
        api: OrgDirectoryAPI,
        org: str,
        *,
        cache: DiskCacheStore,
        workers: int = DEFAULT_WORKERS,
    ):
        self.api = api
        self.org = org
        self.cache = cache
        self.workers = int(workers)
        self._snapshot: Optional[Snapshot] = None

    @classmethod
    def from_config(cls, cfg: DirectoryConfig, *, api: Optional[OrgDirectoryAPI] = None) -> "OrgDirectory":
        if api is None:
            api = GitHubAPIClient(
                cfg.token, page_timeout_s=cfg.page_timeout_s, lookup_timeout_s=cfg.lookup_timeout_s
            )
        cache = DiskCacheStore(cache_dir=Path(cfg.org_cache_dir), ttl_s=cfg.ttl_minutes * 60)
        return cls(api, cfg.org, cache=cache, workers=cfg.workers)

    # ----------------------------
    # Initialization
    # ----------------------------

    def initialize(self, *, force_refresh: bool = False) -> "OrgDirectory":
        """Load the snapshot from cache or rebuild it from the API.

        Raises:
            RemoteFetchError: a page fetch or lookup failed (nothing is cached or installed)
            CacheIOError: the refresh succeeded but persisting it failed; the new snapshot
                          is already installed and queryable
        """
        # A forced refresh keeps the old files until save() replaces them.
        if not force_refresh and self.cache.is_fresh(MEMBERS_CACHE_KEY) and self.cache.is_fresh(TEAMS_CACHE_KEY):
            snap = self._load_cached()
            if snap is not None:
                self._snapshot = snap
                _logger.info(
                    "loaded %d members and %d teams of %s from cache %s",
                    len(snap.members), len(snap.teams), self.org, self.cache.cache_dir,
                )
                return self

        self.refresh()
        return self

    def _load_cached(self) -> Optional[Snapshot]:
        """Read both cache files. Any read or parse failure is a cache miss (None)."""
        try:
            members = [Member.from_dict(d) for d in self.cache.load(MEMBERS_CACHE_KEY)]
            teams = [Team.from_dict(d) for d in self.cache.load(TEAMS_CACHE_KEY)]
        except CacheIOError as e:
            _logger.warning("unable to use cached directory, refreshing: %s", e)
            return None
        except ValueError as e:
            _logger.warning("malformed cached directory entry, refreshing: %s", e)
            return None
        return Snapshot(members=tuple(members), teams=tuple(teams))

    def _fetch_all(self) -> Tuple[List[Member], List[Team]]:
        """Run both pipelines in parallel; the first failure cancels the other."""
        cancel = threading.Event()
        with ThreadPoolExecutor(max_workers=2, thread_name_prefix="refresh") as executor:
            fut_members = executor.submit(fetch_members, self.api, self.org, workers=self.workers, cancel=cancel)
            fut_teams = executor.submit(fetch_teams, self.api, self.org, workers=self.workers, cancel=cancel)
            done, _pending = wait([fut_members, fut_teams], return_when=FIRST_EXCEPTION)
            first_error: Optional[BaseException] = None
            for fut in done:
                exc = fut.exception()
                if exc is not None and not isinstance(exc, PipelineCancelledError):
                    first_error = exc
                    break
            if first_error is not None:
                cancel.set()

        # The executor has joined both pipelines here.
        for fut in (fut_members, fut_teams):
            exc = fut.exception()
            if first_error is None and exc is not None and not isinstance(exc, PipelineCancelledError):
                first_error = exc
        if first_error is not None:
            if isinstance(first_error, RemoteFetchError):
                raise RemoteFetchError(
                    f"unable to get members or teams of {self.org} from GitHub: {first_error}",
                    key=first_error.key, endpoint=first_error.endpoint, status_code=first_error.status_code,
                ) from first_error
            raise first_error
        return fut_members.result(), fut_teams.result()

    def refresh(self) -> Snapshot:
        """Rebuild the snapshot from the API, install it, then persist both collections."""
        members, teams = self._fetch_all()
        snap = Snapshot(members=tuple(members), teams=tuple(teams))
        self._snapshot = snap

        self.cache.save(MEMBERS_CACHE_KEY, [m.to_dict() for m in snap.members])
        self.cache.save(TEAMS_CACHE_KEY, [t.to_dict() for t in snap.teams])
        _logger.info("cached %d members and %d teams of %s", len(snap.members), len(snap.teams), self.org)
        return snap

    def invalidate(self) -> None:
        """Drop both cache files so the next initialize() refetches."""
        self.cache.remove(MEMBERS_CACHE_KEY)
        self.cache.remove(TEAMS_CACHE_KEY)

    # ----------------------------
    # Queries
    # ----------------------------

    @property
    def is_ready(self) -> bool:
        return self._snapshot is not None

    @property
    def snapshot(self) -> Snapshot:
        if self._snapshot is None:
            raise DirectoryNotReadyError(f"directory for {self.org} has not been initialized")
        return self._snapshot

    @property
    def members(self) -> List[Member]:
        return list(self.snapshot.members)

    @property
    def teams(self) -> List[Team]:
        return list(self.snapshot.teams)

    def matches(self, query: str) -> Matches:
        """Search for `query` as part of a login, display name or team name (case-insensitive).

        The wildcard "*" returns everything.
        """
        snap = self.snapshot
        if query == WILDCARD:
            return Matches(members=list(snap.members), teams=list(snap.teams))

        q = query.lower()
        return Matches(
            members=[m for m in snap.members if q in m.login.lower() or q in m.name.lower()],
            teams=[t for t in snap.teams if q in t.name.lower()],
        )

    def _find_member(self, login: str) -> Optional[Member]:
        needle = login.lower()
        for m in self.snapshot.members:
            if m.login.lower() == needle:
                return m
        return None

    def _find_team(self, name: str) -> Optional[Team]:
        needle = name.lower()
        for t in self.snapshot.teams:
            if t.name.lower() == needle:
                return t
        return None

    def is_member(self, login: str) -> bool:
        return self._find_member(login) is not None

    def is_team(self, name: str) -> bool:
        return self._find_team(name) is not None

    def team_members(self, name: str) -> List[str]:
        """Roster of the named team, or [] if there is no such team."""
        team = self._find_team(name)
        return list(team.members) if team is not None else []

    def resolve_logins(self, name: str) -> List[str]:
        """Expand a name into logins.

        - "all"        -> every member login (unless a real team is named "all")
        - a team name  -> its roster
        - a login      -> [login] (as spelled in the directory)
        - otherwise    -> []
        """
        team = self._find_team(name)
        if team is not None:
            return list(team.members)
        if name.lower() == ALL_TEAM:
            return [m.login for m in self.snapshot.members]
        member = self._find_member(name)
        return [member.login] if member is not None else []

    def whoami(self) -> str:
        """Login of the authenticated user (live API call, not served from the snapshot)."""
        try:
            user = self.api.get_authenticated_user()
        except RemoteFetchError as e:
            raise RemoteFetchError(
                f"unable to get authenticated user's login: {e}", endpoint=e.endpoint, status_code=e.status_code
            ) from e
        login = user.get("login")
        if not isinstance(login, str) or not login:
            raise RemoteFetchError("authenticated user has no login", endpoint="/user")
        return login
