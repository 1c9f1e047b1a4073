# SPDX-FileCopyrightText: Copyright (c) 2025 NVIDIA CORPORATION & AFFILIATES. All rights reserved.
# SPDX-License-Identifier: Apache-2.0
"""
CLI wrapper for org_directory.

CLI glue lives in its own module so the directory/pipeline implementation stays
importable without argparse or handler setup side effects.
"""

from __future__ import annotations

import argparse
import json
import logging
import sys
from pathlib import Path
from typing import Any, List, Optional, Sequence

from .config import DirectoryConfig, org_directory_cache_dir
from .directory import OrgDirectory
from .exceptions import CacheIOError, ConfigError, OrgDirectoryError
from .github_client import GitHubAPIClient

logger = logging.getLogger(__name__)

EXIT_OK = 0
EXIT_FALSE = 1
EXIT_CONFIG = 2
EXIT_FAILURE = 3


def _setup_logging(*, verbose: bool, debug: bool) -> None:
    if debug:
        level = logging.DEBUG
    elif verbose:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(level=level, format='%(asctime)s - %(name)s - %(levelname)s - %(message)s')


def _build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="org-directory",
        description="Look up GitHub organization members and teams (cached on disk for --ttl-minutes).",
        epilog="""
Examples:
  # Everybody and every team
  %(prog)s --org octo-org match '*'

  # Substring search over logins, display names and team names
  %(prog)s --org octo-org match oct

  # Predicates (exit code 0 = yes, 1 = no)
  %(prog)s --org octo-org is-member alice
  %(prog)s --org octo-org is-team eng

  # Team roster, ignoring the cache
  %(prog)s --org octo-org --refresh team-members eng
""",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )
    parser.add_argument('--org', help='Organization name (default: $GITHUB_ORG)')
    parser.add_argument('--token', help='GitHub token (default: $GITHUB_TOKEN, ~/.config/github-token, or gh CLI config)')
    parser.add_argument(
        '--cache-dir',
        type=Path,
        default=None,
        help=f'Cache directory (default: {org_directory_cache_dir()})',
    )
    parser.add_argument('--ttl-minutes', type=int, default=None, help='Cache TTL in minutes (default: 60)')
    parser.add_argument('--workers', type=int, default=None, help='Concurrent lookups per collection (default: 10)')
    parser.add_argument('--refresh', action='store_true', help='Ignore the cache and refetch from GitHub')
    parser.add_argument('--json', action='store_true', help='Print JSON instead of text')
    parser.add_argument('--verbose', '-v', action='store_true', help='Enable verbose output')
    parser.add_argument('--debug', action='store_true', help='Enable debug output (per-request logging and API stats)')

    sub = parser.add_subparsers(dest='command', required=True)
    p = sub.add_parser('match', help='Members and teams containing QUERY ("*" for everything)')
    p.add_argument('query')
    p = sub.add_parser('is-member', help='Exit 0 if LOGIN is an organization member')
    p.add_argument('login')
    p = sub.add_parser('is-team', help='Exit 0 if NAME is a team')
    p.add_argument('name')
    p = sub.add_parser('team-members', help='Print the roster of team NAME')
    p.add_argument('name')
    p = sub.add_parser('resolve', help='Expand a team, login, or "all" into logins')
    p.add_argument('name')
    sub.add_parser('members', help='Print every member')
    sub.add_parser('teams', help='Print every team')
    sub.add_parser('whoami', help='Print the login of the authenticated user')
    return parser


def _print(obj: Any, *, as_json: bool, lines: Optional[List[str]] = None) -> None:
    if as_json:
        print(json.dumps(obj, indent=2, sort_keys=True))
        return
    for line in lines or []:
        print(line)


def _member_line(m: Any) -> str:
    return f"{m.login}\t{m.name}" if m.name else m.login


def _run(args: argparse.Namespace, directory: OrgDirectory) -> int:
    cmd = args.command
    if cmd == 'whoami':
        login = directory.whoami()
        _print({"login": login}, as_json=args.json, lines=[login])
        return EXIT_OK

    if cmd == 'match':
        matches = directory.matches(args.query)
        lines = [_member_line(m) for m in matches.members] + [f"@{t.name}" for t in matches.teams]
        _print(matches.to_dict(), as_json=args.json, lines=lines)
        return EXIT_OK
    if cmd == 'is-member':
        ok = directory.is_member(args.login)
        _print({"login": args.login, "is_member": ok}, as_json=args.json, lines=["yes" if ok else "no"])
        return EXIT_OK if ok else EXIT_FALSE
    if cmd == 'is-team':
        ok = directory.is_team(args.name)
        _print({"name": args.name, "is_team": ok}, as_json=args.json, lines=["yes" if ok else "no"])
        return EXIT_OK if ok else EXIT_FALSE
    if cmd == 'team-members':
        logins = directory.team_members(args.name)
        _print(logins, as_json=args.json, lines=logins)
        return EXIT_OK
    if cmd == 'resolve':
        logins = directory.resolve_logins(args.name)
        _print(logins, as_json=args.json, lines=logins)
        return EXIT_OK if logins else EXIT_FALSE
    if cmd == 'members':
        members = directory.members
        _print([m.to_dict() for m in members], as_json=args.json, lines=[_member_line(m) for m in members])
        return EXIT_OK
    if cmd == 'teams':
        teams = directory.teams
        _print(
            [t.to_dict() for t in teams],
            as_json=args.json,
            lines=[f"{t.name}: {', '.join(t.members)}" for t in teams],
        )
        return EXIT_OK
    raise ValueError(f"unknown command {cmd!r}")


def _cli(argv: Optional[Sequence[str]] = None) -> int:
    parser = _build_parser()
    args = parser.parse_args(list(argv) if argv is not None else None)
    _setup_logging(verbose=args.verbose, debug=args.debug)

    try:
        cfg = DirectoryConfig.from_env(
            args.org,
            token=args.token,
            cache_dir=args.cache_dir,
            ttl_minutes=args.ttl_minutes,
            workers=args.workers,
        )
    except ConfigError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_CONFIG

    api = GitHubAPIClient(
        cfg.token,
        page_timeout_s=cfg.page_timeout_s,
        lookup_timeout_s=cfg.lookup_timeout_s,
        debug_rest=args.debug,
    )
    directory = OrgDirectory.from_config(cfg, api=api)

    try:
        if args.command != 'whoami':
            try:
                directory.initialize(force_refresh=args.refresh)
            except CacheIOError as e:
                if not directory.is_ready:
                    raise
                # Refresh succeeded; only persisting it failed. Serve this run from memory.
                logger.warning("%s", e)
        return _run(args, directory)
    except OrgDirectoryError as e:
        print(f"Error: {e}", file=sys.stderr)
        return EXIT_FAILURE
    finally:
        if args.debug:
            logger.debug("GitHub REST stats: %s", json.dumps(api.get_rest_call_stats(), sort_keys=True))
            logger.debug("cache stats: %s", directory.cache.stats)


def main() -> None:
    raise SystemExit(_cli())
