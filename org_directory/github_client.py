# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""GitHub REST client for organization membership and teams.

Resources:
  GET /orgs/{org}/members?per_page=100&page=N
  GET /orgs/{org}/teams?per_page=100&page=N
  GET /teams/{team_id}/members?per_page=100&page=N
  GET /users/{login}
  GET /user

Example API Responses:
  /orgs/{org}/members, /teams/{id}/members:
    [{"login": "alice", "id": 101, "type": "User"}, ...]
  /orgs/{org}/teams:
    [{"id": 42, "name": "eng", "slug": "eng"}, ...]
  /users/{login}, /user:
    {"login": "alice", "name": "Alice A", ...}     # "name" may be null

Pagination:
  The next page number is taken from the `Link: <...&page=N>; rel="next"` header.
  No `next` link means the collection is exhausted (next_page == 0).
"""

from __future__ import annotations

import logging
import threading
import time
import urllib.parse
from abc import ABC, abstractmethod
from typing import Any, Dict, List, Optional, Tuple

import requests

from .config import DEFAULT_LOOKUP_TIMEOUT_S, DEFAULT_PAGE_TIMEOUT_S
from .exceptions import RemoteFetchError

_logger = logging.getLogger(__name__)

PER_PAGE = 100

Page = Tuple[List[Dict[str, Any]], int]


class OrgDirectoryAPI(ABC):
    """Capability surface the directory consumes. Implementations must be thread-safe."""

    @abstractmethod
    def list_org_members(self, org: str, page: int) -> Page:
        """Return (member items, next_page); next_page == 0 at the end."""

    @abstractmethod
    def list_org_teams(self, org: str, page: int) -> Page:
        """Return (team items with at least "id" and "name", next_page)."""

    @abstractmethod
    def list_team_members(self, team_id: int, page: int) -> Page:
        """Return (member items of one team, next_page)."""

    @abstractmethod
    def get_user(self, login: str) -> Dict[str, Any]:
        """Return user details ({"login", "name"})."""

    @abstractmethod
    def get_authenticated_user(self) -> Dict[str, Any]:
        """Return details of the user owning the credential."""


class _RESTStats:
    """Per-client REST call statistics."""

    def __init__(self):
        self._mu = threading.Lock()
        self.reset()

    def reset(self):
        self.rest_calls_total = 0
        self.rest_calls_by_label = {}  # Dict[str, int]
        self.rest_success_total = 0
        self.rest_time_total_s = 0.0
        self.rest_time_by_label_s = {}  # Dict[str, float]
        self.rest_errors_total = 0
        self.rest_errors_by_status = {}  # Dict[int, int]; 0 = network/timeout
        self.rest_last_error = {}  # Dict[str, Any]

    def record(self, *, label: str, dt: float, status: int, url: str = "", body: str = "") -> None:
        with self._mu:
            self.rest_calls_total += 1
            self.rest_calls_by_label[label] = int(self.rest_calls_by_label.get(label, 0)) + 1
            self.rest_time_total_s += float(dt)
            self.rest_time_by_label_s[label] = float(self.rest_time_by_label_s.get(label, 0.0)) + float(dt)
            if status and status < 400:
                self.rest_success_total += 1
                return
            self.rest_errors_total += 1
            self.rest_errors_by_status[status] = int(self.rest_errors_by_status.get(status, 0)) + 1
            # Keep last error small.
            self.rest_last_error = {"status": status, "url": url, "body": (body or "")[:300], "label": label}

    def to_dict(self) -> Dict[str, Any]:
        with self._mu:
            return {
                "total": self.rest_calls_total,
                "success_total": self.rest_success_total,
                "errors_total": self.rest_errors_total,
                "by_label": dict(self.rest_calls_by_label),
                "time_total_s": round(self.rest_time_total_s, 3),
                "time_by_label_s": {k: round(v, 3) for k, v in self.rest_time_by_label_s.items()},
                "errors_by_status": dict(self.rest_errors_by_status),
                "last_error": dict(self.rest_last_error),
            }


def next_page_from_response(resp: Any) -> int:
    """Extract the next page number from a response's Link header (0 if none)."""
    try:
        links = getattr(resp, "links", None) or {}
        nxt = (links.get("next") or {}).get("url") or ""
    except AttributeError:
        return 0
    if not nxt:
        return 0
    qs = urllib.parse.parse_qs(urllib.parse.urlparse(nxt).query)
    try:
        return int((qs.get("page") or ["0"])[0])
    except ValueError:
        return 0


class GitHubAPIClient(OrgDirectoryAPI):
    """GitHub REST implementation of OrgDirectoryAPI.

    Features:
    - token auth header on every request
    - short per-call deadline for page requests (pagination is not resumable)
    - every failure (network, timeout, non-2xx, bad JSON) surfaces as RemoteFetchError

    Example:
        client = GitHubAPIClient(token)
        items, next_page = client.list_org_members("octo-org", 1)
    """

    def __init__(
        self,
        token: str,
        *,
        base_url: str = "https://api.github.com",
        page_timeout_s: float = DEFAULT_PAGE_TIMEOUT_S,
        lookup_timeout_s: float = DEFAULT_LOOKUP_TIMEOUT_S,
        debug_rest: bool = False,
    ):
        self.token = token
        self.base_url = base_url.rstrip("/")
        self.headers = {'Accept': 'application/vnd.github.v3+json'}
        if self.token:
            self.headers['Authorization'] = f'token {self.token}'
        self.page_timeout_s = float(page_timeout_s)
        self.lookup_timeout_s = float(lookup_timeout_s)
        self.logger = logging.getLogger(self.__class__.__name__)
        self._debug_rest = bool(debug_rest)
        self.stats = _RESTStats()

    def _rest_label_for_url(self, url: str) -> str:
        path = urllib.parse.urlparse(url).path
        if path == "/user":
            return "authenticated_user"
        if path.startswith("/users/"):
            return "user"
        if path.startswith("/teams/") and path.endswith("/members"):
            return "team_members"
        if path.startswith("/orgs/") and path.endswith("/members"):
            return "org_members"
        if path.startswith("/orgs/") and path.endswith("/teams"):
            return "org_teams"
        return "other"

    def _rest_get(
        self,
        endpoint: str,
        *,
        timeout: float,
        params: Optional[Dict[str, Any]] = None,
        key: str = "",
    ) -> requests.Response:
        """requests.get wrapper that records per-client stats and raises RemoteFetchError on failure."""
        url = f"{self.base_url}{endpoint}" if endpoint.startswith('/') else f"{self.base_url}/{endpoint}"
        label = self._rest_label_for_url(url)
        if self._debug_rest:
            self.logger.debug("GH REST GET [%s] %s params=%s", label, url, params or {})

        t0 = time.monotonic()
        try:
            resp = requests.get(url, headers=dict(self.headers), params=params, timeout=timeout)
        except requests.exceptions.Timeout as e:
            self.stats.record(label=label, dt=time.monotonic() - t0, status=0, url=url, body=str(e))
            raise RemoteFetchError(
                f"GitHub API request timed out after {timeout:g}s for {endpoint}",
                key=key, endpoint=endpoint,
            ) from e
        except requests.exceptions.RequestException as e:
            self.stats.record(label=label, dt=time.monotonic() - t0, status=0, url=url, body=str(e))
            raise RemoteFetchError(f"GitHub API request failed for {endpoint}: {e}", key=key, endpoint=endpoint) from e

        code = int(resp.status_code or 0)
        body = ""
        if code >= 400:
            try:
                body = resp.text or ""
            except (ValueError, TypeError):
                body = ""
        self.stats.record(label=label, dt=time.monotonic() - t0, status=code, url=url, body=body)
        if self._debug_rest:
            self.logger.debug(
                "GH REST RESP [%s] status=%s remaining=%s", label, code, resp.headers.get("X-RateLimit-Remaining")
            )

        if code == 403 and resp.headers.get('X-RateLimit-Remaining') == '0':
            raise RemoteFetchError(
                "GitHub API rate limit exceeded", key=key, endpoint=endpoint, status_code=code
            )
        if code < 200 or code >= 300:
            raise RemoteFetchError(
                f"GitHub API returned {code} for {endpoint}: {body[:200]}",
                key=key, endpoint=endpoint, status_code=code,
            )
        return resp

    def _json(self, resp: requests.Response, *, endpoint: str, key: str) -> Any:
        try:
            return resp.json()
        except ValueError as e:
            raise RemoteFetchError(
                f"GitHub API returned invalid JSON for {endpoint}", key=key, endpoint=endpoint,
                status_code=resp.status_code,
            ) from e

    def _get_page(self, endpoint: str, page: int, *, key: str) -> Page:
        resp = self._rest_get(
            endpoint, timeout=self.page_timeout_s, params={"per_page": PER_PAGE, "page": int(page)}, key=key
        )
        data = self._json(resp, endpoint=endpoint, key=key)
        if not isinstance(data, list):
            raise RemoteFetchError(
                f"expected a JSON list from {endpoint}", key=key, endpoint=endpoint, status_code=resp.status_code
            )
        return [d for d in data if isinstance(d, dict)], next_page_from_response(resp)

    def _get_object(self, endpoint: str, *, key: str) -> Dict[str, Any]:
        resp = self._rest_get(endpoint, timeout=self.lookup_timeout_s, key=key)
        data = self._json(resp, endpoint=endpoint, key=key)
        if not isinstance(data, dict):
            raise RemoteFetchError(
                f"expected a JSON object from {endpoint}", key=key, endpoint=endpoint, status_code=resp.status_code
            )
        return data

    # ----------------------------
    # OrgDirectoryAPI
    # ----------------------------

    def list_org_members(self, org: str, page: int) -> Page:
        org_q = urllib.parse.quote(org, safe="")
        return self._get_page(f"/orgs/{org_q}/members", page, key=org)

    def list_org_teams(self, org: str, page: int) -> Page:
        org_q = urllib.parse.quote(org, safe="")
        return self._get_page(f"/orgs/{org_q}/teams", page, key=org)

    def list_team_members(self, team_id: int, page: int) -> Page:
        return self._get_page(f"/teams/{int(team_id)}/members", page, key=str(team_id))

    def get_user(self, login: str) -> Dict[str, Any]:
        login_q = urllib.parse.quote(login, safe="")
        return self._get_object(f"/users/{login_q}", key=login)

    def get_authenticated_user(self) -> Dict[str, Any]:
        return self._get_object("/user", key="")

    def get_rest_call_stats(self) -> Dict[str, Any]:
        return self.stats.to_dict()
