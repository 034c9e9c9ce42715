"""Curses menu for the toolkit: user management, disk reports and system info."""

from __future__ import annotations

import argparse
import curses
import io
import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor
from contextlib import redirect_stderr, redirect_stdout
from typing import Any, Callable, List, NamedTuple, Optional, Sequence

from . import __version__
from .config import get_settings
from .diskreport import SORT_KEYS, disk_report
from .sysinfo import check_disk_usage, disk_info, disk_performance
from .users import add_user, delete_user, user_info

logger = logging.getLogger(__name__)

UNIT_CHOICES = [("K", "Kilobytes"), ("M", "Megabytes"), ("G", "Gigabytes")]
FORMAT_LABELS = {"text": "Plain text", "csv": "CSV", "html": "HTML", "json": "JSON"}
SORT_LABELS = {
    "name": "Name",
    "size_asc": "Size (ascending)",
    "size_desc": "Size (descending)",
    "mtime": "Last modified (newest first)",
}

ENTER_KEYS = (10, 13, curses.KEY_ENTER)
BACK_KEYS = (ord("q"), ord("Q"), 27)
UP_KEYS = (curses.KEY_UP, ord("k"))
DOWN_KEYS = (curses.KEY_DOWN, ord("j"))

PAIR_TITLE, PAIR_HINT, PAIR_OK, PAIR_ERROR = 1, 2, 3, 4


def run_action(handler, **kwargs) -> tuple[bool, str]:
    """Run a handler with stdout/stderr captured so the menu can display them."""
    out, err = io.StringIO(), io.StringIO()
    try:
        with redirect_stdout(out), redirect_stderr(err):
            handler(argparse.Namespace(**kwargs))
    except Exception as exc:
        logger.error("%s failed: %s", getattr(handler, "__name__", "action"), exc)
        return False, "\n".join(filter(None, [err.getvalue().strip(), f"Error: {exc}"]))
    combined = "\n".join(filter(None, [out.getvalue().strip(), err.getvalue().strip()]))
    return True, combined or "(no output)"


class MenuAction(NamedTuple):
    label: str
    run: Callable[[], None]


class ToolkitTUI:
    CANCEL_TOKEN = ":b"
    MIN_HEIGHT = 18
    MIN_WIDTH = 60

    def __init__(self, stdscr: Any) -> None:
        self.stdscr = stdscr
        curses.curs_set(0)
        curses.noecho()
        curses.cbreak()
        self.stdscr.keypad(True)
        self.has_color = curses.has_colors()
        if self.has_color:
            curses.start_color()
            curses.use_default_colors()
            for pair, fg in (
                (PAIR_TITLE, curses.COLOR_CYAN),
                (PAIR_HINT, curses.COLOR_YELLOW),
                (PAIR_OK, curses.COLOR_GREEN),
                (PAIR_ERROR, curses.COLOR_RED),
            ):
                curses.init_pair(pair, fg, -1)
        self.sections = {
            "User management": [
                MenuAction("Add user", self.add_user_flow),
                MenuAction("Delete user", self.delete_user_flow),
                MenuAction("User info", self.user_info_flow),
            ],
            "Disk space analysis": [
                MenuAction("Generate disk usage report", self.disk_report_flow),
            ],
            "System information": [
                MenuAction("Disk information", self.disk_info_flow),
                MenuAction("Check disk usage", self.disk_usage_flow),
                MenuAction("Monitor disk performance", self.disk_performance_flow),
            ],
        }

    # -------------------- Main loop --------------------

    def run(self) -> None:
        entries = list(self.sections) + ["About", "Exit"]
        current = 0
        while True:
            self.draw_main(entries, current)
            key = self.stdscr.getch()
            if key in UP_KEYS:
                current = (current - 1) % len(entries)
            elif key in DOWN_KEYS:
                current = (current + 1) % len(entries)
            elif key in ENTER_KEYS or key in (curses.KEY_RIGHT, ord("l")):
                label = entries[current]
                if label == "Exit":
                    if self.confirm("Exit systoolkit?"):
                        return
                elif label in self.sections:
                    self.section_loop(entries, current)
            elif key in (ord("q"), ord("Q")) and self.confirm("Exit systoolkit?"):
                return

    def section_loop(self, entries: List[str], current: int) -> None:
        actions = self.sections[entries[current]]
        selected = 0
        while True:
            self.draw_main(entries, current, focused=selected)
            key = self.stdscr.getch()
            if key in UP_KEYS:
                selected = (selected - 1) % len(actions)
            elif key in DOWN_KEYS:
                selected = (selected + 1) % len(actions)
            elif key in ENTER_KEYS:
                actions[selected].run()
            elif key in BACK_KEYS or key in (curses.KEY_LEFT, ord("h")):
                return

    # -------------------- Drawing --------------------

    def draw_main(self, entries: List[str], current: int, focused: Optional[int] = None) -> None:
        self.stdscr.erase()
        height, width = self.stdscr.getmaxyx()
        if height < self.MIN_HEIGHT or width < self.MIN_WIDTH:
            message = f"Terminal too small. Increase size to at least {self.MIN_WIDTH}x{self.MIN_HEIGHT}."
            self.put(height // 2, max(0, (width - len(message)) // 2), message, curses.A_BOLD | self.color(PAIR_ERROR))
            self.stdscr.refresh()
            return

        sidebar = max(24, min(30, width // 4))
        self.put(1, 2, "systoolkit".center(sidebar - 4), curses.A_BOLD | self.color(PAIR_TITLE))
        self.put(2, 2, "=" * (sidebar - 4), self.color(PAIR_TITLE))
        for idx, label in enumerate(entries):
            style = curses.A_REVERSE if idx == current else curses.A_NORMAL
            self.put(4 + idx, 2, label.ljust(sidebar - 4), style)
        for y in range(1, height - 1):
            self.put(y, sidebar, "|", curses.A_DIM)

        left = sidebar + 2
        span = width - left - 2
        label = entries[current]
        if label in self.sections:
            self.put(2, left, f"{label} actions", curses.A_BOLD)
            for idx, action in enumerate(self.sections[label]):
                if focused is None:
                    text, style = f"- {action.label}", curses.A_DIM
                elif idx == focused:
                    text, style = f"> {action.label}", curses.A_REVERSE
                else:
                    text, style = f"  {action.label}", curses.A_NORMAL
                self.put(4 + idx, left, text[:span], style)
        elif label == "About":
            self.draw_about(left, span)
        else:
            self.put(2, left, "Press Enter to close systoolkit.")

        if focused is not None:
            self.hint("Up/Down=choose | Enter=run | Left/q=back")
        else:
            self.hint("Up/Down=choose | Enter=open | q=exit")
        self.stdscr.refresh()

    def draw_about(self, left: int, span: int) -> None:
        lines = [
            ("systoolkit " + __version__, curses.A_BOLD),
            ("Linux user management and disk-space reporting", curses.A_NORMAL),
            ("", curses.A_NORMAL),
            ("User management", curses.A_BOLD),
            ("  Add, delete (optionally archiving the home directory) and inspect accounts.", curses.A_NORMAL),
            ("Disk space analysis", curses.A_BOLD),
            ("  du-based reports as text, CSV, HTML or JSON, filtered by size or age.", curses.A_NORMAL),
            ("System information", curses.A_BOLD),
            ("  Block devices, partitions, mounts, usage alerts and disk I/O.", curses.A_NORMAL),
            ("", curses.A_NORMAL),
            ("Account changes need root (or SYSTOOLKIT_USE_SUDO=true).", curses.A_DIM),
        ]
        for offset, (text, style) in enumerate(lines):
            self.put(2 + offset, left, text[:span], style)

    def color(self, pair: int) -> int:
        return curses.color_pair(pair) if self.has_color else curses.A_NORMAL

    def put(self, y: int, x: int, text: str, style: int = curses.A_NORMAL, window: Any = None) -> None:
        target = window or self.stdscr
        height, width = target.getmaxyx()
        if not (0 <= y < height and 0 <= x < width):
            return
        try:
            target.addstr(y, x, text[: width - x], style)
        except curses.error:
            # writing the bottom-right cell raises after the text is drawn
            pass

    def hint(self, text: str) -> None:
        height, width = self.stdscr.getmaxyx()
        try:
            self.stdscr.move(height - 1, 0)
            self.stdscr.clrtoeol()
        except curses.error:
            return
        if text:
            self.put(height - 1, 2, text[: width - 4], self.color(PAIR_HINT))

    def popup(self, rows: int, cols: int) -> Any:
        height, width = self.stdscr.getmaxyx()
        rows = min(rows, height - 2)
        cols = min(cols, width - 4)
        window = curses.newwin(rows, cols, max(1, (height - rows) // 2), max(2, (width - cols) // 2))
        window.keypad(True)
        return window

    # -------------------- Dialogs --------------------

    def choose(self, title: str, options: Sequence[str], initial: int = 0) -> Optional[int]:
        """Modal list; returns the chosen index or None when cancelled with q/Esc."""
        if not options:
            return None
        window = self.popup(len(options) + 5, max(len(title), *(len(o) for o in options)) + 8)
        rows, cols = window.getmaxyx()
        visible = rows - 4
        index = min(max(initial, 0), len(options) - 1)
        self.hint("Enter=select | q=cancel")
        self.stdscr.refresh()
        while True:
            window.erase()
            window.box()
            self.put(1, 2, title[: cols - 4], curses.A_BOLD, window)
            top = min(max(0, index - visible + 1), max(0, len(options) - visible))
            for row, option in enumerate(options[top : top + visible]):
                style = curses.A_REVERSE if top + row == index else curses.A_NORMAL
                self.put(3 + row, 2, option[: cols - 4], style, window)
            window.refresh()
            key = window.getch()
            if key in UP_KEYS:
                index = (index - 1) % len(options)
            elif key in DOWN_KEYS:
                index = (index + 1) % len(options)
            elif key in ENTER_KEYS:
                return index
            elif key in BACK_KEYS:
                return None

    def confirm(self, question: str, default: bool = True) -> Optional[bool]:
        choice = self.choose(question, ["Yes", "No"], initial=0 if default else 1)
        return None if choice is None else choice == 0

    def show_output(self, title: str, content: str, success: bool = True, pager: bool = False) -> None:
        lines = content.splitlines() or ["(no output)"]
        if success and not pager:
            self.message_box(title, lines)
        else:
            self.page(title, lines, self.color(PAIR_OK if success else PAIR_ERROR))
        self.hint("")

    def message_box(self, title: str, lines: List[str]) -> None:
        window = self.popup(len(lines) + 6, max(20, len(title) + 6, *(len(line) + 6 for line in lines)))
        rows, cols = window.getmaxyx()
        window.erase()
        window.box()
        self.put(1, 2, title[: cols - 4], curses.A_BOLD | self.color(PAIR_OK), window)
        for row, line in enumerate(lines[: rows - 6]):
            self.put(3 + row, 2, line[: cols - 4], curses.A_NORMAL, window)
        self.put(rows - 2, (cols - 6) // 2, "[ OK ]", curses.A_REVERSE, window)
        window.refresh()
        while window.getch() not in ENTER_KEYS + BACK_KEYS + (ord(" "),):
            pass

    def page(self, title: str, lines: List[str], title_style: int) -> None:
        """Scrollable viewer for long output such as reports."""
        widest = max(len(line) for line in lines)
        top = left = 0
        while True:
            height, width = self.stdscr.getmaxyx()
            rows = max(1, height - 5)
            cols = max(1, width - 4)
            bottom = max(0, len(lines) - rows)
            self.stdscr.erase()
            self.put(1, 2, title, curses.A_BOLD | title_style)
            for row, line in enumerate(lines[top : top + rows]):
                self.put(3 + row, 2, line[left : left + cols])
            shown = min(top + rows, len(lines))
            self.hint(f"Up/Down/PgUp/PgDn=scroll | Left/Right=pan | q=back | {shown}/{len(lines)}")
            self.stdscr.refresh()

            key = self.stdscr.getch()
            if key in BACK_KEYS or key in ENTER_KEYS:
                return
            moves = {
                curses.KEY_DOWN: top + 1,
                ord("j"): top + 1,
                curses.KEY_UP: top - 1,
                ord("k"): top - 1,
                curses.KEY_NPAGE: top + rows,
                ord(" "): top + rows,
                curses.KEY_PPAGE: top - rows,
                curses.KEY_HOME: 0,
                ord("g"): 0,
                curses.KEY_END: bottom,
                ord("G"): bottom,
            }
            if key in moves:
                top = min(max(moves[key], 0), bottom)
            elif key in (curses.KEY_RIGHT, ord("l")):
                left = min(max(0, widest - cols), left + max(1, cols // 2))
            elif key in (curses.KEY_LEFT, ord("h")):
                left = max(0, left - max(1, cols // 2))

    def pause(self, message: str) -> None:
        self.hint(message)
        self.stdscr.refresh()
        self.stdscr.getch()
        self.hint("")

    # -------------------- Prompts --------------------

    def ask(
        self,
        title: str,
        default: Optional[str] = None,
        allow_empty: bool = False,
        secret: bool = False,
    ) -> Optional[str]:
        """Read one line; returns None when the user types the cancel token."""
        while True:
            self.stdscr.erase()
            height, width = self.stdscr.getmaxyx()
            self.put(1, 2, title, curses.A_BOLD)
            notes = [f"Type '{self.CANCEL_TOKEN}' to cancel."]
            if default is not None:
                notes.insert(0, f"Default: {default}")
            if secret:
                notes.append("Input is hidden; type and press Enter.")
            for offset, note in enumerate(notes):
                self.put(3 + offset, 2, note, curses.A_DIM)
            row = height // 2
            self.put(row, 2, "> ")
            self.stdscr.refresh()
            if secret:
                value = self.read_hidden(row, 4, width - 6)
            else:
                curses.echo()
                try:
                    raw = self.stdscr.getstr(row, 4, width - 6)
                finally:
                    curses.noecho()
                value = raw.decode("utf-8", errors="replace") if raw else ""
            value = value.strip()

            if value.lower() == self.CANCEL_TOKEN:
                return None
            if not value and default is not None:
                return default
            if value or allow_empty:
                return value
            self.pause("Input is required. Press any key to continue.")

    def prompt_number(self, title: str, default: Any = None, cast: Callable[[str], Any] = int) -> Any:
        while True:
            raw = self.ask(title, None if default is None else str(default))
            if raw is None:
                return None
            try:
                return cast(raw)
            except ValueError:
                self.pause(f"'{raw}' is not a valid number. Press any key to try again.")

    def read_hidden(self, y: int, x: int, limit: int) -> str:
        typed: List[str] = []
        while True:
            self.stdscr.move(y, x)
            self.stdscr.clrtoeol()
            self.put(y, x, "*" * len(typed))
            self.stdscr.refresh()
            key = self.stdscr.getch()
            if key in ENTER_KEYS:
                return "".join(typed)
            if key in (curses.KEY_BACKSPACE, curses.KEY_DC, 127, 8):
                if typed:
                    typed.pop()
            elif 32 <= key <= 126 and len(typed) < limit:
                typed.append(chr(key))

    # -------------------- Running handlers --------------------

    def execute(
        self,
        handler,
        *,
        pager: bool = False,
        loading_message: Optional[str] = None,
        output_title: Optional[str] = None,
        **kwargs,
    ) -> None:
        if loading_message:
            with ThreadPoolExecutor(max_workers=1) as pool:
                future = pool.submit(run_action, handler, **kwargs)
                frames = "|/-\\"
                tick = 0
                while not future.done():
                    self.hint(f"{loading_message} {frames[tick % len(frames)]}")
                    self.stdscr.refresh()
                    tick += 1
                    time.sleep(0.1)
                success, output = future.result()
            self.hint("")
        else:
            success, output = run_action(handler, **kwargs)
        if success:
            title = output_title or "Success"
        else:
            title = "Error"
        self.show_output(title, output, success=success, pager=pager)

    # -------------------- User management --------------------

    def add_user_flow(self) -> None:
        username = self.ask("Add user: username")
        if username is None:
            return
        fullname = self.ask("Add user: full name")
        if fullname is None:
            return
        password = self.ask("Add user: password", secret=True)
        if password is None:
            return
        self.execute(add_user, username=username, fullname=fullname, password=password)

    def delete_user_flow(self) -> None:
        username = self.ask("Delete user: username")
        if username is None:
            return
        remove_home = self.confirm("Remove home directory and mail spool?", default=False)
        if remove_home is None:
            return
        archive_dir = self.ask("Archive home directory to (directory, leave blank to skip)", allow_empty=True)
        if archive_dir is None:
            return
        if not self.confirm(f"Are you sure you want to delete user '{username}'?", default=False):
            logger.info("Delete user cancelled: '%s'", username)
            self.pause("Deletion cancelled. Press any key to continue.")
            return
        self.execute(delete_user, username=username, remove_home=remove_home, archive_dir=archive_dir or None)

    def user_info_flow(self) -> None:
        username = self.ask("User info: username")
        if username is not None:
            self.execute(user_info, pager=True, username=username, output_title=f"User information: {username}")

    # -------------------- Disk space analysis --------------------

    def disk_report_flow(self) -> None:
        settings = get_settings()
        target_dir = self.ask("Target directory", default=".")
        if target_dir is None:
            return
        max_depth = self.prompt_number("Maximum depth (0 for all)", default=0)
        if max_depth is None:
            return

        units = [(unit, label) for unit, label in UNIT_CHOICES if unit in settings.report_units]
        default_unit = next((i for i, (unit, _) in enumerate(units) if unit == settings.default_unit.upper()), 0)
        unit_idx = self.choose("Choose units", [f"{unit}  {label}" for unit, label in units], default_unit)
        if unit_idx is None:
            return

        formats = list(settings.report_formats)
        format_idx = self.choose(
            "Choose report format",
            [f"{name:<5} {FORMAT_LABELS.get(name, name)}" for name in formats],
            formats.index(settings.default_report_format),
        )
        if format_idx is None:
            return

        sort_idx = self.choose("Sort by", [SORT_LABELS[key] for key in SORT_KEYS])
        if sort_idx is None:
            return
        threshold = self.prompt_number("Show files/dirs at or above size (in selected units, 0 for all)", default=0)
        if threshold is None:
            return
        modified = self.ask("Show files modified within (days, 1 or more; leave empty for all)", allow_empty=True)
        if modified is None:
            return

        self.execute(
            disk_report,
            pager=True,
            loading_message="Scanning disk usage",
            output_title=f"Disk usage report for {target_dir}",
            path=target_dir,
            max_depth=max_depth,
            unit=units[unit_idx][0],
            format=formats[format_idx],
            sort=SORT_KEYS[sort_idx],
            threshold=threshold,
            modified_within=modified or None,
            include_warnings=True,
        )

    def disk_usage_flow(self) -> None:
        path = self.ask("Mount point or path to check", default="/")
        if path is None:
            return
        threshold = self.prompt_number("Alert threshold (%)", default=get_settings().disk_alert_threshold, cast=float)
        if threshold is None:
            return
        self.execute(check_disk_usage, pager=True, output_title=f"Disk usage for {path}", path=path, threshold=threshold)

    # -------------------- System information --------------------

    def disk_info_flow(self) -> None:
        self.execute(disk_info, pager=True, output_title="Disk information")

    def disk_performance_flow(self) -> None:
        self.execute(
            disk_performance,
            pager=True,
            loading_message="Sampling disk I/O",
            output_title="Disk I/O performance",
        )


def interactive_main() -> None:
    if not (sys.stdin.isatty() and sys.stdout.isatty()):
        print("Interactive mode requires running inside a terminal.")
        return
    try:
        curses.wrapper(lambda stdscr: ToolkitTUI(stdscr).run())
    except curses.error as exc:
        print(f"Failed to start interactive interface: {exc}")
    else:
        print("Thanks for using systoolkit.")
