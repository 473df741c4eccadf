#!/usr/bin/env python3
"""
Site Kit command line.

Usage:
  sitekit [--database URL] auth status
  sitekit [--database URL] auth revoke
  sitekit [--database URL] reset --yes
  sitekit [--database URL] modules list
  sitekit [--database URL] modules activate SLUG
  sitekit [--database URL] modules deactivate SLUG
"""
from __future__ import annotations

import argparse
import json
import logging
import sys

from sitekit.config import get_config
from sitekit.db import session as db_session
from sitekit.exceptions import SiteKitError
from sitekit.plugin import Plugin

logger = logging.getLogger("sitekit.cli")


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(prog="sitekit", description="Manage a Site Kit installation")
    parser.add_argument("--database", help="Database URL (defaults to DATABASE_URL)")
    sub = parser.add_subparsers(dest="command", required=True)

    auth = sub.add_parser("auth", help="Google authentication")
    auth_sub = auth.add_subparsers(dest="action", required=True)
    auth_sub.add_parser("status", help="Show authentication and scope status")
    auth_sub.add_parser("revoke", help="Revoke and forget the stored token")

    reset = sub.add_parser("reset", help="Delete every Site Kit option")
    reset.add_argument("--yes", action="store_true", help="Confirm the reset")

    modules = sub.add_parser("modules", help="List or (de)activate modules")
    modules_sub = modules.add_subparsers(dest="action", required=True)
    modules_sub.add_parser("list", help="List available modules")
    for action in ("activate", "deactivate"):
        p = modules_sub.add_parser(action, help=f"{action.capitalize()} a module")
        p.add_argument("slug")
    return parser


def _run(args: argparse.Namespace, plugin: Plugin) -> int:
    if args.command == "auth":
        if args.action == "status":
            print(json.dumps(plugin.oauth_client.get_status(), indent=2))
        else:
            plugin.oauth_client.revoke_token()
            print("Access token revoked.")
        return 0

    if args.command == "reset":
        if not args.yes:
            print("Refusing to reset without --yes.", file=sys.stderr)
            return 1
        deleted = plugin.reset.all()
        print(f"Reset complete; removed {deleted} option(s).")
        return 0

    modules = plugin.modules
    if args.action == "list":
        for info in modules.to_list():
            flags = []
            if info["active"]:
                flags.append("active")
            if info["connected"]:
                flags.append("connected")
            if info["forceActive"]:
                flags.append("always-on")
            print(f"{info['slug']:<16} {info['name']:<16} {', '.join(flags)}")
        return 0
    if args.action == "activate":
        modules.activate_module(args.slug)
    else:
        modules.deactivate_module(args.slug)
    print(f"Module {args.slug} {args.action}d.")
    return 0


def main(argv: list[str] | None = None) -> int:
    args = build_parser().parse_args(argv)
    logging.basicConfig(level=getattr(logging, get_config().log_level, logging.INFO))

    if args.database:
        db_session.reconfigure_database(args.database)
    db_session.init_db()

    with db_session.session_scope() as session:
        try:
            return _run(args, Plugin(session))
        except SiteKitError as e:
            print(f"Error [{e.code}]: {e.message}", file=sys.stderr)
            return 1


if __name__ == "__main__":
    sys.exit(main())
