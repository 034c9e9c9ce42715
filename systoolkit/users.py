"""User account management: add, delete (with optional home archive) and info."""

from __future__ import annotations

import argparse
import grp
import logging
import pwd
import shutil
from pathlib import Path
from typing import Dict, List, Optional

from .commands import privileged, run_command
from .config import get_settings

logger = logging.getLogger(__name__)


def collect_group_memberships() -> Dict[str, List[str]]:
    """Supplementary groups per user, from the group database."""
    memberships: Dict[str, List[str]] = {}
    for group in grp.getgrall():
        for member in group.gr_mem:
            memberships.setdefault(member, []).append(group.gr_name)
    return memberships


def primary_group_name(gid: int) -> str:
    try:
        return grp.getgrgid(gid).gr_name
    except KeyError:
        return str(gid)


def find_user(username: str) -> Optional[Dict[str, str]]:
    """Look up a passwd entry; None when the account does not exist."""
    try:
        record = pwd.getpwnam(username)
    except KeyError:
        return None
    return {
        "username": record.pw_name,
        "uid": str(record.pw_uid),
        "gid": str(record.pw_gid),
        "comment": record.pw_gecos,
        "home": record.pw_dir,
        "shell": record.pw_shell,
    }


def _sudo(command: List[str]) -> List[str]:
    return privileged(command, get_settings().use_sudo)


def add_user(args: argparse.Namespace) -> None:
    username = (args.username or "").strip()
    fullname = (args.fullname or "").strip()
    if not username or not fullname or not args.password:
        logger.error("Add user failed: username, full name or password missing")
        raise ValueError("Username, Full Name, and Password are required.")
    if find_user(username) is not None:
        logger.error("Add user failed: user '%s' exists", username)
        raise ValueError(f"User '{username}' already exists.")

    run_command(_sudo(["useradd", "-m", username]), capture_output=True)
    try:
        # chpasswd takes plaintext on stdin; usermod --password wants a hash.
        run_command(_sudo(["chpasswd"]), input=f"{username}:{args.password}", capture_output=True)
        run_command(_sudo(["usermod", "-c", fullname, username]), capture_output=True)
    except RuntimeError:
        logger.error("Add user failed for '%s'; rolling back", username)
        run_command(_sudo(["userdel", "-r", username]), check=False, capture_output=True)
        raise
    logger.info("User '%s' created", username)
    print(f"User '{username}' created successfully.")


def archive_home(username: str, home: str, archive_dir: str) -> Path:
    target_dir = Path(archive_dir).expanduser()
    if not target_dir.is_dir():
        logger.error("Delete user failed: archive directory '%s' does not exist", target_dir)
        raise ValueError(f"Archive directory '{target_dir}' does not exist.")
    archive = target_dir / f"{username}.tar.gz"
    run_command(_sudo(["tar", "-czf", str(archive), home]), capture_output=True)
    logger.info("Home directory of '%s' archived to %s", username, archive)
    return archive


def delete_user(args: argparse.Namespace) -> None:
    username = (args.username or "").strip()
    if not username:
        logger.error("Delete user failed: username missing")
        raise ValueError("Username is required.")
    entry = find_user(username)
    if entry is None:
        logger.error("Delete user failed: user '%s' does not exist", username)
        raise ValueError(f"User '{username}' does not exist.")

    archive_dir = getattr(args, "archive_dir", None)
    if archive_dir:
        archive = archive_home(username, entry["home"], archive_dir)
        print(f"Home directory archived to {archive}")

    command = ["userdel"]
    if args.remove_home:
        command.append("-r")
    command.append(username)
    run_command(_sudo(command), capture_output=True)
    logger.info("User '%s' deleted", username)
    print(f"User '{username}' deleted successfully.")


def last_login(username: str) -> str:
    if shutil.which("lastlog") is None:
        return "unknown"
    result = run_command(["lastlog", "-u", username], check=False, capture_output=True)
    lines = [line for line in result.stdout.splitlines() if line.strip()]
    if result.returncode != 0 or len(lines) < 2:
        return "unknown"
    latest = lines[-1]
    if "Never logged in" in latest:
        return "Never logged in"
    return " ".join(latest.split()[1:]) or "unknown"


def user_info(args: argparse.Namespace) -> None:
    username = (args.username or "").strip()
    if not username:
        logger.error("User info failed: username missing")
        raise ValueError("Username is required.")
    entry = find_user(username)
    if entry is None:
        logger.error("User info failed: user '%s' does not exist", username)
        raise ValueError(f"User '{username}' does not exist.")

    primary = primary_group_name(int(entry["gid"]))
    groups = sorted(set([primary] + collect_group_memberships().get(username, [])))
    lines = [
        f"Username       : {entry['username']}",
        f"Full name      : {entry['comment'].split(',')[0] or '(empty)'}",
        f"UID            : {entry['uid']}",
        f"GID            : {entry['gid']} ({primary})",
        f"Groups         : {', '.join(groups)}",
        f"Home directory : {entry['home']}",
        f"Login shell    : {entry['shell']}",
        f"Last login     : {last_login(username)}",
    ]
    logger.info("User info displayed for '%s'", username)
    print("\n".join(lines))
