from __future__ import annotations

import argparse
import asyncio
import getpass
import json
import os
import sys
from typing import List, Optional

from .config import DEFAULT_CONFIG_PATH, Config, load_config
from .dashboard import Dashboard
from .errors import DashboardError
from .logs import setup_logging
from .mock import generate_mock_tasks
from .models import ROLE_ADMIN, ROLE_USER
from .store import KeyValueStore


MOCK_CREDENTIAL = "mock-token"


def build_dashboard(cfg: Config, mock: bool = False) -> Dashboard:
    """Compose the dashboard; ``mock`` swaps the API fetch for generated demo tasks."""
    if not mock:
        return Dashboard(cfg, KeyValueStore(cfg.resolved_store_path()))
    dashboard = Dashboard(cfg, KeyValueStore(":memory:"), fetch=lambda cancel: generate_mock_tasks())
    dashboard.session.set(MOCK_CREDENTIAL, [ROLE_USER, ROLE_ADMIN], {"name": "Demo User", "username": "demo"})
    return dashboard


def _load(dashboard: Dashboard) -> bool:
    if not dashboard.session.is_authenticated():
        print("Not logged in. Use --login USER first.", file=sys.stderr)
        return False
    if not asyncio.run(dashboard.refresh()):
        print(f"Load failed: {dashboard.state.status_line}", file=sys.stderr)
        return False
    return True


def _prompt_signup(dashboard: Dashboard) -> None:
    name = input("Name: ")
    email = input("Email: ")
    username = input("Username: ")
    password = getpass.getpass("Password: ")
    confirm = getpass.getpass("Confirm password: ")
    dashboard.signup(name, email, username, password, confirm)


def main(argv: Optional[List[str]] = None) -> None:
    ap = argparse.ArgumentParser(description="Task management dashboard for the terminal")
    ap.add_argument("--config", default=DEFAULT_CONFIG_PATH, help="Path to YAML config")
    ap.add_argument("--store", help="Path to the sqlite store (overrides config)")
    ap.add_argument("--log-level", help="File log level (DEBUG, INFO, WARNING, ERROR)")
    ap.add_argument("--login", metavar="USER", help="Log in as USER (password is prompted) and exit")
    ap.add_argument("--signup", action="store_true", help="Create an account (prompts for details) and exit")
    ap.add_argument("--logout", action="store_true", help="Forget the stored session and exit")
    ap.add_argument("--no-ui", action="store_true", help="Print a non-interactive summary")
    ap.add_argument("--export-report", metavar="PATH", help="Write an analytics report to PATH (JSON)")
    ap.add_argument("--export-window-days", type=int, help="Analytics window for the export (default from config)")
    args = ap.parse_args(argv)

    try:
        cfg = load_config(args.config)
    except (OSError, ValueError) as e:
        print(f"Failed to read config: {e}", file=sys.stderr)
        sys.exit(2)
    if args.store:
        cfg.store_path = args.store
    setup_logging(cfg.resolved_log_path(), args.log_level or cfg.log_level)

    dashboard = build_dashboard(cfg, mock=os.environ.get("MOCK_FETCH") == "1")

    if args.logout:
        dashboard.logout()
        print("Logged out.")
        return

    if args.signup or args.login:
        try:
            if args.signup:
                _prompt_signup(dashboard)
            else:
                dashboard.login(args.login, getpass.getpass("Password: "))
        except DashboardError as e:
            print(str(e), file=sys.stderr)
            sys.exit(1)
        print(dashboard.state.status_line)
        return

    if args.export_report:
        if not _load(dashboard):
            sys.exit(1)
        payload = dashboard.export_report(args.export_window_days)
        try:
            with open(args.export_report, "w", encoding="utf-8") as f:
                json.dump(payload, f, indent=2, default=str)
        except OSError as e:
            print(f"Failed to write report: {e}", file=sys.stderr)
            sys.exit(2)
        print(f"Wrote report JSON to {args.export_report}")
        return

    if args.no_ui:
        if dashboard.session.is_authenticated() and not _load(dashboard):
            sys.exit(1)
        for line in dashboard.summary_lines():
            print(line)
        return

    from .ui import run_ui

    run_ui(dashboard, cfg)


if __name__ == "__main__":
    main()
