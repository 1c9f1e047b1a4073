# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""Typed records for organization members, teams and query results.

These are the canonical shapes stored in the snapshot and in the on-disk cache:

  members cache items:  [{"login": "alice", "name": "Alice A"}, ...]
  teams cache items:    [{"members": ["bob", "dave"], "name": "eng"}, ...]
"""

from __future__ import annotations

from dataclasses import dataclass, field
from typing import Any, Dict, List, Tuple


@dataclass(frozen=True)
class Member:
    """A single organization account."""

    login: str
    name: str = ""

    @property
    def sort_key(self) -> str:
        return self.login

    def to_dict(self) -> Dict[str, Any]:
        return {"login": self.login, "name": self.name}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Member":
        login = d.get("login")
        if not isinstance(login, str) or not login:
            raise ValueError(f"member entry has no login: {d!r}")
        return cls(login=login, name=str(d.get("name") or ""))


@dataclass(frozen=True)
class Team:
    """A team with its fully resolved roster (logins, in API order)."""

    name: str
    members: Tuple[str, ...] = ()

    @property
    def sort_key(self) -> str:
        return self.name

    def to_dict(self) -> Dict[str, Any]:
        return {"members": list(self.members), "name": self.name}

    @classmethod
    def from_dict(cls, d: Dict[str, Any]) -> "Team":
        name = d.get("name")
        members = d.get("members")
        if not isinstance(name, str) or not name:
            raise ValueError(f"team entry has no name: {d!r}")
        if not isinstance(members, list) or not all(isinstance(m, str) for m in members):
            raise ValueError(f"team {name!r} has a malformed member list")
        return cls(name=name, members=tuple(members))


@dataclass(frozen=True)
class Snapshot:
    """Sorted, read-only view of an organization."""

    members: Tuple[Member, ...] = ()
    teams: Tuple[Team, ...] = ()


@dataclass
class Matches:
    """Result of a substring query; rebuilt per query and never persisted."""

    members: List[Member] = field(default_factory=list)
    teams: List[Team] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "members": [m.to_dict() for m in self.members],
            "teams": [t.to_dict() for t in self.teams],
        }
