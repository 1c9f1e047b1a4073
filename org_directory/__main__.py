#!/usr/bin/env python3
"""Module entrypoint for `org_directory`.

Usage:
  - `python3 -m org_directory --org octo-org match oct`
"""

from __future__ import annotations

from .cli import _cli


if __name__ == "__main__":
    raise SystemExit(_cli())
