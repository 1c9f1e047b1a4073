"""
Pytest tests for pipeline.py (pagination, worker pool, snapshot builder).
"""

import threading
import time

import pytest

from org_directory.conftest import FakeOrgAPI
from org_directory.directory_types import Member, Team
from org_directory.exceptions import PipelineCancelledError, RemoteFetchError
from org_directory.pipeline import (
    PaginatedFetcher,
    SnapshotBuilder,
    WorkerPool,
    fetch_members,
    fetch_teams,
    team_enricher,
    team_roster,
)


# ============================================================================
# PaginatedFetcher
# ============================================================================

def test_fetcher_walks_pages_until_next_page_is_zero():
    pages = {1: (["a", "b"], 2), 2: (["c"], 3), 3: ([], 0)}
    seen = []

    def fetch_page(page):
        seen.append(page)
        items, nxt = pages[page]
        return [{"login": x} for x in items], nxt

    fetcher = PaginatedFetcher(fetch_page, name="test")
    assert [it["login"] for it in fetcher.iter_items()] == ["a", "b", "c"]
    assert seen == [1, 2, 3]
    assert fetcher.pages_fetched == 3


def test_fetcher_rejects_pagination_that_does_not_advance():
    fetcher = PaginatedFetcher(lambda page: ([{"login": "x"}], 1), name="loop")
    with pytest.raises(RemoteFetchError):
        list(fetcher.iter_items())


def test_fetcher_stops_when_cancelled():
    cancel = threading.Event()
    cancel.set()
    fetcher = PaginatedFetcher(lambda page: ([{"login": "x"}], page + 1), name="cancelled")
    assert list(fetcher.iter_items(cancel)) == []
    assert fetcher.pages_fetched == 0


# ============================================================================
# WorkerPool + SnapshotBuilder
# ============================================================================

def _numbers_fetcher(n, per_page=7):
    def fetch_page(page):
        start = (page - 1) * per_page
        chunk = [{"n": i} for i in range(start, min(n, start + per_page))]
        return chunk, page + 1 if start + per_page < n else 0
    return PaginatedFetcher(fetch_page, name="numbers")


def test_pool_processes_every_item_and_builder_sorts():
    pool = WorkerPool(lambda item: f"{item['n']:04d}", workers=4, name="numbers", queue_depth=3)
    out = SnapshotBuilder(sort_key=lambda s: s).collect(pool.run(_numbers_fetcher(50)))
    assert out == [f"{i:04d}" for i in range(50)]


def test_fetcher_requests_next_pages_while_workers_are_busy():
    seen = []
    enriched = []
    last_page = threading.Event()
    release = threading.Event()

    def fetch_page(page):
        seen.append(page)
        if page == 3:
            last_page.set()
            return [{"n": page}], 0
        return [{"n": page}], page + 1

    def enrich(item):
        release.wait(5)
        enriched.append(item["n"])
        return item["n"]

    pool = WorkerPool(enrich, workers=1, name="busy")
    result = {}
    runner = threading.Thread(
        target=lambda: result.update(out=SnapshotBuilder(sort_key=str).collect(
            pool.run(PaginatedFetcher(fetch_page, name="busy"))
        ))
    )
    runner.start()
    try:
        assert last_page.wait(5)
        # Page 3 was requested while the only worker was still stuck on page 1's item.
        assert seen == [1, 2, 3]
        assert enriched == []
    finally:
        release.set()
        runner.join(5)

    assert result["out"] == [1, 2, 3]


def test_pool_first_error_wins_and_does_not_deadlock():
    def enrich(item):
        if item["n"] == 5:
            raise RemoteFetchError("boom", key="5")
        time.sleep(0.001)
        return item["n"]

    # Tiny queue so the fetcher is blocked on put() when the failure happens.
    pool = WorkerPool(enrich, workers=2, name="failing", queue_depth=1)
    with pytest.raises(RemoteFetchError) as exc_info:
        pool.run(_numbers_fetcher(500))
    assert exc_info.value.key == "5"


def test_pool_fetcher_error_propagates():
    def fetch_page(page):
        if page == 2:
            raise RemoteFetchError("page 2 timed out", key="org")
        return [{"n": 1}], 2

    pool = WorkerPool(lambda item: item["n"], workers=3, name="pages")
    with pytest.raises(RemoteFetchError, match="page 2 timed out"):
        pool.run(PaginatedFetcher(fetch_page, name="pages"))


def test_pool_external_cancel_raises_cancelled():
    cancel = threading.Event()
    cancel.set()
    pool = WorkerPool(lambda item: item, workers=2, name="cancelled")
    with pytest.raises(PipelineCancelledError):
        pool.run(_numbers_fetcher(10), cancel=cancel)


def test_pool_rejects_non_positive_workers():
    with pytest.raises(ValueError):
        WorkerPool(lambda item: item, workers=0)


def test_builder_drops_case_insensitive_duplicates():
    pool = WorkerPool(lambda item: Member(login=item["login"]), workers=2, name="dupes")
    fetcher = PaginatedFetcher(
        lambda page: ([{"login": "bob"}, {"login": "alice"}, {"login": "bob"}], 0), name="dupes"
    )
    out = SnapshotBuilder(sort_key=lambda m: m.login).collect(pool.run(fetcher))
    assert [m.login for m in out] == ["alice", "bob"]


# ============================================================================
# Member / team pipelines
# ============================================================================

def test_fetch_members_sorted_with_display_names():
    api = FakeOrgAPI(members=[("bob", "Bob B"), ("alice", "Alice A"), ("carol", "Carol C")], per_page=1)
    members = fetch_members(api, "octo-org", workers=3)
    assert members == [
        Member("alice", "Alice A"),
        Member("bob", "Bob B"),
        Member("carol", "Carol C"),
    ]


def test_fetch_members_null_display_name_becomes_empty():
    api = FakeOrgAPI(members=[("ghost", "")])
    assert fetch_members(api, "octo-org") == [Member("ghost", "")]


def test_fetch_members_sort_is_case_sensitive_code_point_order():
    api = FakeOrgAPI(members=[("bob", ""), ("Zed", ""), ("alice", "")])
    assert [m.login for m in fetch_members(api, "octo-org")] == ["Zed", "alice", "bob"]


def test_fetch_members_lookup_failure_carries_login():
    api = FakeOrgAPI(members=[("alice", "A"), ("bob", "B"), ("carol", "C")], fail_users=["bob"])
    with pytest.raises(RemoteFetchError) as exc_info:
        fetch_members(api, "octo-org", workers=2)
    assert exc_info.value.key == "bob"
    assert exc_info.value.status_code == 500


def test_fetch_members_page_failure_aborts():
    api = FakeOrgAPI(members=[("a", ""), ("b", ""), ("c", "")], per_page=1, fail_member_page=2)
    with pytest.raises(RemoteFetchError):
        fetch_members(api, "octo-org")


def test_team_roster_walks_all_pages():
    api = FakeOrgAPI(teams={"eng": ["bob", "dave", "erin"]}, per_page=1)
    assert team_roster(api, 1) == ["bob", "dave", "erin"]
    assert [c for c in api.calls if c[0] == "list_team_members"] == [
        ("list_team_members", (1, 1)),
        ("list_team_members", (1, 2)),
        ("list_team_members", (1, 3)),
    ]


def test_fetch_teams_sorted_with_full_rosters():
    api = FakeOrgAPI(teams={"eng": ["bob", "dave"], "Docs": ["carol"], "all-hands": []}, per_page=1)
    teams = fetch_teams(api, "octo-org", workers=2)
    assert teams == [
        Team("Docs", ("carol",)),
        Team("all-hands", ()),
        Team("eng", ("bob", "dave")),
    ]


def test_fetch_teams_partial_roster_is_never_produced():
    api = FakeOrgAPI(teams={"eng": ["bob", "dave"]}, per_page=1, fail_team_member_logins=["dave"])
    with pytest.raises(RemoteFetchError) as exc_info:
        fetch_teams(api, "octo-org")
    assert exc_info.value.key == "eng"
    assert "error looking up members of team eng" in str(exc_info.value)


def test_team_roster_stops_when_cancelled():
    api = FakeOrgAPI(teams={"eng": ["bob", "dave"]}, per_page=1)
    cancel = threading.Event()
    cancel.set()

    with pytest.raises(PipelineCancelledError):
        team_roster(api, 1, cancel)
    assert api.calls == []


def test_team_with_non_numeric_id_is_a_fetch_error():
    enrich = team_enricher(FakeOrgAPI())
    with pytest.raises(RemoteFetchError) as exc_info:
        enrich({"id": "abc", "name": "eng"})
    assert exc_info.value.key == "eng"
