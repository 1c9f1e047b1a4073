# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Concurrent fetch pipeline: paginate -> enrich with a bounded worker pool -> sorted snapshot.

One pipeline per collection:

  PaginatedFetcher ──items──> work queue ──> WorkerPool (N threads) ──records──> out queue ──> SnapshotBuilder
   (page 1, 2, ...)            (bounded)      get_user / team roster               (closed      (sort + dedupe)
                                                                                    by _DONE)

Looking members up one at a time is slow (one REST call per login plus one roster walk per team),
so lookups run N at a time while the fetcher keeps paginating.

Error policy is all-or-nothing: the first failure (fetcher or worker) is recorded, the shared
cancel event stops everybody else, and the whole run raises. No partial collection is returned.
"""

from __future__ import annotations

import logging
import queue
import threading
import time
from concurrent.futures import ThreadPoolExecutor
from typing import Any, Callable, Dict, Generic, Iterator, List, Optional, TypeVar

from .config import DEFAULT_WORKERS
from .directory_types import Member, Team
from .exceptions import PipelineCancelledError, RemoteFetchError
from .github_client import PER_PAGE, OrgDirectoryAPI, Page

_logger = logging.getLogger(__name__)

T = TypeVar("T")

# Queue close marker.
_DONE = object()
# How often blocked queue operations re-check the cancel event.
_POLL_S = 0.05


def _put_unless_cancelled(q: "queue.Queue[Any]", item: Any, cancel: threading.Event) -> bool:
    """Put `item` on a bounded queue, giving up once `cancel` is set. Returns True if queued."""
    while not cancel.is_set():
        try:
            q.put(item, timeout=_POLL_S)
            return True
        except queue.Full:
            continue
    return False


class PaginatedFetcher:
    """Walks a page cursor (1, 2, ... until next_page == 0) and yields every item."""

    def __init__(self, fetch_page: Callable[[int], Page], *, name: str):
        self.fetch_page = fetch_page
        self.name = name
        self.pages_fetched = 0
        self.items_fetched = 0

    def iter_items(self, cancel: Optional[threading.Event] = None) -> Iterator[Dict[str, Any]]:
        page = 1
        while page > 0:
            if cancel is not None and cancel.is_set():
                return
            items, next_page = self.fetch_page(page)
            self.pages_fetched += 1
            _logger.debug("%s: page %d -> %d items (next=%s)", self.name, page, len(items), next_page)
            for item in items:
                self.items_fetched += 1
                yield item
            next_page = int(next_page or 0)
            if next_page and next_page <= page:
                raise RemoteFetchError(
                    f"{self.name}: pagination did not advance (page {page} -> {next_page})", key=self.name
                )
            page = next_page

    def feed(self, work_q: "queue.Queue[Any]", cancel: threading.Event) -> int:
        """Push all items onto `work_q` without waiting for them to be consumed.

        Stops early (returning the count queued so far) when `cancel` is set.
        """
        n = 0
        for item in self.iter_items(cancel):
            if not _put_unless_cancelled(work_q, item, cancel):
                break
            n += 1
        return n


class WorkerPool(Generic[T]):
    """Fixed-size pool of threads enriching raw items from one shared queue."""

    def __init__(
        self,
        enrich: Callable[[Dict[str, Any]], T],
        *,
        workers: int = DEFAULT_WORKERS,
        name: str = "pool",
        queue_depth: int = PER_PAGE,
    ):
        if int(workers) <= 0:
            raise ValueError(f"workers must be > 0, got {workers}")
        self.enrich = enrich
        self.workers = int(workers)
        self.name = name
        self.queue_depth = max(1, int(queue_depth))

    def _work(
        self,
        work_q: "queue.Queue[Any]",
        out_q: "queue.Queue[Any]",
        failures: "queue.Queue[BaseException]",
        cancel: threading.Event,
    ) -> int:
        done = 0
        while not cancel.is_set():
            try:
                item = work_q.get(timeout=_POLL_S)
            except queue.Empty:
                continue
            if item is _DONE:
                break
            try:
                record = self.enrich(item)
            except Exception as e:
                # First failure wins; everybody else sees the cancel event and stops.
                failures.put(e)
                cancel.set()
                break
            out_q.put(record)
            done += 1
        return done

    def run(self, fetcher: PaginatedFetcher, *, cancel: Optional[threading.Event] = None) -> "queue.Queue[Any]":
        """Run fetcher + workers to completion and return the closed output queue.

        Raises:
            The first error raised by the fetcher or any worker.
            PipelineCancelledError: `cancel` was set from outside before the run completed.
        """
        cancel = cancel if cancel is not None else threading.Event()
        work_q: "queue.Queue[Any]" = queue.Queue(maxsize=self.queue_depth)
        out_q: "queue.Queue[Any]" = queue.Queue()
        failures: "queue.Queue[BaseException]" = queue.Queue()

        with ThreadPoolExecutor(max_workers=self.workers, thread_name_prefix=f"{self.name}-worker") as executor:
            futs = [executor.submit(self._work, work_q, out_q, failures, cancel) for _ in range(self.workers)]
            try:
                fetcher.feed(work_q, cancel)
            except Exception as e:
                failures.put(e)
                cancel.set()
            except BaseException:
                # KeyboardInterrupt etc: stop the workers so the executor can join.
                cancel.set()
                raise
            else:
                # Close the input queue: one marker per worker.
                for _ in futs:
                    if not _put_unless_cancelled(work_q, _DONE, cancel):
                        break
            processed = sum(f.result() for f in futs)

        if not failures.empty():
            raise failures.get_nowait()
        if cancel.is_set():
            raise PipelineCancelledError(f"{self.name}: refresh cancelled")

        _logger.debug("%s: %d workers processed %d items", self.name, self.workers, processed)
        out_q.put(_DONE)
        return out_q


class SnapshotBuilder(Generic[T]):
    """Drains a closed output queue, then sorts and de-duplicates the records."""

    def __init__(self, *, sort_key: Callable[[T], str], name: str = "snapshot"):
        self.sort_key = sort_key
        self.name = name

    def collect(self, out_q: "queue.Queue[Any]") -> List[T]:
        records: List[T] = []
        while True:
            rec = out_q.get()
            if rec is _DONE:
                break
            records.append(rec)

        records.sort(key=self.sort_key)
        seen = set()
        out: List[T] = []
        for rec in records:
            ident = self.sort_key(rec).lower()
            if ident in seen:
                _logger.warning("%s: dropping duplicate entry %r", self.name, self.sort_key(rec))
                continue
            seen.add(ident)
            out.append(rec)
        return out


# ======================================================================================
# Enrichment jobs
# ======================================================================================

def member_enricher(api: OrgDirectoryAPI) -> Callable[[Dict[str, Any]], Member]:
    """Build the per-login job: one user-detail lookup for the display name."""

    def enrich(item: Dict[str, Any]) -> Member:
        login = str(item.get("login") or "")
        if not login:
            raise RemoteFetchError(f"member item without a login: {item!r}")
        try:
            user = api.get_user(login)
        except RemoteFetchError as e:
            raise RemoteFetchError(
                f"error looking up member {login}: {e}", key=login, endpoint=e.endpoint, status_code=e.status_code
            ) from e
        return Member(login=login, name=str(user.get("name") or ""))

    return enrich


def team_roster(api: OrgDirectoryAPI, team_id: int, cancel: Optional[threading.Event] = None) -> List[str]:
    """Fully paginated list of member logins of one team, in API order.

    Raises PipelineCancelledError if `cancel` is set before the last page.
    """
    fetcher = PaginatedFetcher(lambda page: api.list_team_members(team_id, page), name=f"team {team_id} members")
    logins = [str(u.get("login") or "") for u in fetcher.iter_items(cancel) if u.get("login")]
    if cancel is not None and cancel.is_set():
        raise PipelineCancelledError(f"team {team_id} members: roster walk cancelled")
    return logins


def team_enricher(
    api: OrgDirectoryAPI, cancel: Optional[threading.Event] = None
) -> Callable[[Dict[str, Any]], Team]:
    """Build the per-team job: a nested roster walk. Only complete rosters produce a Team."""

    def enrich(item: Dict[str, Any]) -> Team:
        name = str(item.get("name") or "")
        team_id = item.get("id")
        if not name or team_id is None:
            raise RemoteFetchError(f"team item without name/id: {item!r}", key=name)
        try:
            team_id = int(team_id)
        except (TypeError, ValueError):
            raise RemoteFetchError(f"team {name} has a non-numeric id {team_id!r}", key=name)
        try:
            members = team_roster(api, team_id, cancel)
        except RemoteFetchError as e:
            raise RemoteFetchError(
                f"error looking up members of team {name}: {e}", key=name, endpoint=e.endpoint,
                status_code=e.status_code,
            ) from e
        return Team(name=name, members=tuple(members))

    return enrich


# ======================================================================================
# Collection pipelines
# ======================================================================================

def fetch_members(
    api: OrgDirectoryAPI,
    org: str,
    *,
    workers: int = DEFAULT_WORKERS,
    cancel: Optional[threading.Event] = None,
) -> List[Member]:
    """Fetch and enrich every organization member, sorted by login."""
    t0 = time.monotonic()
    fetcher = PaginatedFetcher(lambda page: api.list_org_members(org, page), name=f"{org} members")
    pool: WorkerPool[Member] = WorkerPool(member_enricher(api), workers=workers, name="members")
    members = SnapshotBuilder(sort_key=lambda m: m.login, name="members").collect(pool.run(fetcher, cancel=cancel))
    _logger.info("fetched %d members of %s in %.2fs (%d pages)", len(members), org, time.monotonic() - t0, fetcher.pages_fetched)
    return members


def fetch_teams(
    api: OrgDirectoryAPI,
    org: str,
    *,
    workers: int = DEFAULT_WORKERS,
    cancel: Optional[threading.Event] = None,
) -> List[Team]:
    """Fetch every team with its complete roster, sorted by name."""
    t0 = time.monotonic()
    # Roster walks share the pool's cancel event so a failure stops them mid-roster.
    cancel = cancel if cancel is not None else threading.Event()
    fetcher = PaginatedFetcher(lambda page: api.list_org_teams(org, page), name=f"{org} teams")
    pool: WorkerPool[Team] = WorkerPool(team_enricher(api, cancel), workers=workers, name="teams")
    teams = SnapshotBuilder(sort_key=lambda t: t.name, name="teams").collect(pool.run(fetcher, cancel=cancel))
    _logger.info("fetched %d teams of %s in %.2fs (%d pages)", len(teams), org, time.monotonic() - t0, fetcher.pages_fetched)
    return teams
