"""
Shared pytest fixtures for org_directory tests.

FakeOrgAPI is an in-memory OrgDirectoryAPI: small pages so pagination is exercised,
a call log for "zero remote calls" assertions, and switches to inject lookup failures.
"""

import threading
from typing import Any, Dict, Iterable, List, Optional, Sequence, Tuple

import pytest

from org_directory.exceptions import RemoteFetchError
from org_directory.github_client import OrgDirectoryAPI


class FakeOrgAPI(OrgDirectoryAPI):
    def __init__(
        self,
        *,
        members: Sequence[Tuple[str, str]] = (),
        teams: Optional[Dict[str, List[str]]] = None,
        per_page: int = 2,
        me: str = "alice",
        fail_users: Iterable[str] = (),
        fail_team_member_logins: Iterable[str] = (),
        fail_member_page: Optional[int] = None,
    ):
        self.members = list(members)
        self.teams = dict(teams or {})
        self.per_page = int(per_page)
        self.me = me
        self.fail_users = set(fail_users)
        self.fail_team_member_logins = set(fail_team_member_logins)
        self.fail_member_page = fail_member_page
        self._mu = threading.Lock()
        self.calls: List[Tuple[str, Any]] = []

    def _log(self, name: str, arg: Any) -> None:
        with self._mu:
            self.calls.append((name, arg))

    def _page(self, items: List[Any], page: int) -> Tuple[List[Any], int]:
        start = (page - 1) * self.per_page
        chunk = items[start:start + self.per_page]
        next_page = page + 1 if start + self.per_page < len(items) else 0
        return chunk, next_page

    def _team_ids(self) -> Dict[int, str]:
        return {i + 1: name for i, name in enumerate(self.teams)}

    def list_org_members(self, org: str, page: int):
        self._log("list_org_members", page)
        if self.fail_member_page == page:
            raise RemoteFetchError(f"page {page} timed out", key=org, endpoint=f"/orgs/{org}/members")
        return self._page([{"login": login} for login, _name in self.members], page)

    def list_org_teams(self, org: str, page: int):
        self._log("list_org_teams", page)
        items = [{"id": tid, "name": name} for tid, name in self._team_ids().items()]
        return self._page(items, page)

    def list_team_members(self, team_id: int, page: int):
        self._log("list_team_members", (team_id, page))
        roster = self.teams[self._team_ids()[team_id]]
        chunk, next_page = self._page([{"login": login} for login in roster], page)
        for u in chunk:
            if u["login"] in self.fail_team_member_logins:
                raise RemoteFetchError(
                    f"lookup of {u['login']} failed", key=str(team_id), endpoint=f"/teams/{team_id}/members",
                    status_code=502,
                )
        return chunk, next_page

    def get_user(self, login: str) -> Dict[str, Any]:
        self._log("get_user", login)
        if login in self.fail_users:
            raise RemoteFetchError(f"user {login} lookup failed", key=login, endpoint=f"/users/{login}", status_code=500)
        for mlogin, name in self.members:
            if mlogin == login:
                return {"login": login, "name": name or None}
        raise RemoteFetchError(f"no such user {login}", key=login, endpoint=f"/users/{login}", status_code=404)

    def get_authenticated_user(self) -> Dict[str, Any]:
        self._log("get_authenticated_user", None)
        return {"login": self.me, "name": None}


@pytest.fixture
def fake_api() -> FakeOrgAPI:
    return FakeOrgAPI(
        members=[("carol", "Carol C"), ("bob", "Bob B"), ("alice", "Alice A"), ("octocat", "")],
        teams={"eng": ["bob", "dave"], "Docs": ["carol"], "octo-team": ["octocat", "alice"]},
    )
