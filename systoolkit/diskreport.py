"""
Disk usage reports.

Sizes come from ``du`` (optionally fed by ``find`` when only recently
modified files are wanted), are filtered by a size threshold, sorted, turned
into percentages of the retained total and rendered as text, CSV, HTML or
JSON.
"""

from __future__ import annotations

import argparse
import csv
import html
import io
import json
import logging
import os
import subprocess
from dataclasses import dataclass, field, replace
from datetime import datetime
from typing import Callable, Dict, List, Optional, Sequence, Tuple, Union

from .config import Settings, get_settings

logger = logging.getLogger(__name__)

UNIT_BLOCK_SIZES = {"K": "1K", "M": "1M", "G": "1G"}
SORT_KEYS = ("name", "size_asc", "size_desc", "mtime")
DEFAULT_SORT_KEY = "name"
REPORT_TITLE = "Disk Space Usage Report"


class ReportError(Exception):
    """Base class for report generation errors."""


class NoDataError(ReportError):
    """Nothing left to report on; the caller should show a message and stop."""


class InvalidOptionError(ReportError):
    """An option value is not supported; a default is substituted."""


class InvalidFormatError(InvalidOptionError):
    pass


class InvalidUnitError(InvalidOptionError):
    pass


@dataclass(frozen=True)
class UsageEntry:
    """One (size, path) measurement taken from ``du``."""
    size: int
    path: str
    mtime: Optional[float] = None


@dataclass(frozen=True)
class ReportOptions:
    target_dir: str = "."
    max_depth: int = 0  # 0 = unlimited
    unit: str = "M"
    format: str = "text"
    sort_key: str = DEFAULT_SORT_KEY
    size_threshold: int = 0
    modified_within_days: Optional[int] = None

    @classmethod
    def from_inputs(
        cls,
        target_dir: Optional[str] = None,
        max_depth: object = None,
        unit: Optional[str] = None,
        report_format: Optional[str] = None,
        sort_key: Optional[str] = None,
        size_threshold: object = None,
        modified_within: object = None,
    ) -> "ReportOptions":
        """Build options from raw prompt/CLI values, defaulting every empty field."""
        days = _parse_int(modified_within, None, "Modified within")
        if days is not None and days < 1:
            raise ValueError("Modified within must be a positive number of days.")
        return cls(
            target_dir=_text_or(target_dir, "."),
            max_depth=max(0, _parse_int(max_depth, 0, "Max depth")),
            unit=_text_or(unit, "M"),
            format=_text_or(report_format, "text"),
            sort_key=_text_or(sort_key, DEFAULT_SORT_KEY),
            size_threshold=max(0, _parse_int(size_threshold, 0, "Size threshold")),
            modified_within_days=days,
        )


@dataclass(frozen=True)
class ReportRow:
    entry: UsageEntry
    percentage: float

    @property
    def size(self) -> int:
        return self.entry.size

    @property
    def path(self) -> str:
        return self.entry.path


@dataclass(frozen=True)
class Report:
    options: ReportOptions
    rows: Tuple[ReportRow, ...]
    total_size: int
    generated_at: datetime
    warnings: Tuple[str, ...] = field(default_factory=tuple)


def _text_or(value: Optional[str], default: str) -> str:
    if value is None:
        return default
    text = str(value).strip()
    return text or default


def _parse_int(value: object, default: Optional[int], label: str) -> Optional[int]:
    if value is None:
        return default
    if isinstance(value, int):
        return value
    text = str(value).strip()
    if not text:
        return default
    try:
        return int(text)
    except ValueError:
        raise ValueError(f"{label} must be a whole number, got {text!r}.") from None


# -------------------- Validation --------------------

def check_format(report_format: str, settings: Settings) -> str:
    if report_format not in settings.report_formats:
        raise InvalidFormatError(
            f"Invalid report format '{report_format}'. Using default '{settings.default_report_format}'."
        )
    return report_format


def check_unit(unit: str, settings: Settings) -> str:
    normalized = unit.upper()
    if normalized not in settings.report_units or normalized not in UNIT_BLOCK_SIZES:
        raise InvalidUnitError(f"Invalid unit '{unit}'. Using default '{settings.default_unit.upper()}'.")
    return normalized


def validate_options(options: ReportOptions, settings: Settings) -> Tuple[ReportOptions, List[str]]:
    """Return corrected options plus the warnings raised while correcting them."""
    warnings: List[str] = []

    try:
        report_format = check_format(options.format, settings)
    except InvalidFormatError as exc:
        logger.warning("%s", exc)
        warnings.append(str(exc))
        report_format = settings.default_report_format

    try:
        unit = check_unit(options.unit, settings)
    except InvalidUnitError as exc:
        logger.warning("%s", exc)
        warnings.append(str(exc))
        unit = settings.default_unit.upper()

    sort_key = options.sort_key
    if sort_key not in SORT_KEYS:
        message = f"Unknown sort option '{sort_key}'. Sorting by name instead."
        logger.warning("%s", message)
        warnings.append(message)
        sort_key = DEFAULT_SORT_KEY

    return replace(options, format=report_format, unit=unit, sort_key=sort_key), warnings


# -------------------- Collection --------------------

def parse_du_output(raw: Union[bytes, str]) -> List[UsageEntry]:
    """Parse ``du`` records (``SIZE[\\tMTIME]\\tPATH``) into entries.

    Records are NUL-terminated when ``du --null`` was used, newline-terminated
    otherwise. Raw bytes are decoded with the filesystem encoding, so paths
    that are not valid UTF-8 survive as surrogate escapes (``os.fsencode``
    gives the original name back). Malformed records are skipped.
    """
    if isinstance(raw, bytes):
        raw = os.fsdecode(raw)
    records = raw.split("\0") if "\0" in raw else raw.splitlines()
    entries: List[UsageEntry] = []
    for record in records:
        if not record:
            continue
        parts = record.split("\t")
        if len(parts) < 2:
            logger.debug("Skipping malformed du record %r", record)
            continue
        try:
            size = int(parts[0])
        except ValueError:
            logger.debug("Skipping du record with bad size %r", record)
            continue
        mtime: Optional[float] = None
        path_parts = parts[1:]
        if len(parts) >= 3:
            try:
                mtime = float(parts[1])
                path_parts = parts[2:]
            except ValueError:
                mtime = None
        path = "\t".join(path_parts)
        if not path:
            continue
        entries.append(UsageEntry(size=max(0, size), path=path, mtime=mtime))
    return entries


def _safe_target(target_dir: str) -> str:
    # keeps du/find from reading a leading dash as an option
    return f"./{target_dir}" if target_dir.startswith("-") else target_dir


class DiskUsageCollector:
    """Runs ``du`` / ``find`` and turns their output into UsageEntry records."""

    def __init__(self, settings: Optional[Settings] = None) -> None:
        self.settings = settings or get_settings()

    def du_command(self, unit: str) -> List[str]:
        return [
            self.settings.du_command,
            f"--block-size={UNIT_BLOCK_SIZES[unit]}",
            "--time",
            "--time-style=+%s",
            "--null",
        ]

    def scan(self, target_dir: str, max_depth: int, unit: str) -> List[UsageEntry]:
        """Sizes of the tree under target_dir, down to max_depth (0 = unlimited)."""
        command = self.du_command(unit)
        if max_depth > 0:
            command.extend(["--max-depth", str(max_depth)])
        for excluded in self.settings.excluded_dirs:
            command.append(f"--exclude={excluded}")
        command.append(_safe_target(target_dir))
        result = self._run(command)
        return parse_du_output(result.stdout)

    def find_command(self, target_dir: str, max_depth: int, days: int) -> List[str]:
        command = [self.settings.find_command, _safe_target(target_dir)]
        if max_depth > 0:
            command.extend(["-maxdepth", str(max_depth)])
        if self.settings.excluded_dirs:
            command.append("(")
            for idx, excluded in enumerate(self.settings.excluded_dirs):
                if idx:
                    command.append("-o")
                command.extend(["-path", excluded])
            command.extend([")", "-prune", "-o"])
        command.extend(["-type", "f", "-mtime", f"-{days}", "-print0"])
        return command

    def scan_recent_files(self, target_dir: str, max_depth: int, unit: str, days: int) -> List[UsageEntry]:
        """Sizes of regular files under target_dir modified within the last ``days`` days."""
        found = self._run(self.find_command(target_dir, max_depth, days))
        if not found.stdout:
            return []
        command = self.du_command(unit)
        command.append("--files0-from=-")
        result = self._run(command, input=found.stdout)
        return parse_du_output(result.stdout)

    def collect(self, options: ReportOptions) -> List[UsageEntry]:
        if options.modified_within_days is None:
            return self.scan(options.target_dir, options.max_depth, options.unit)
        return self.scan_recent_files(
            options.target_dir,
            options.max_depth,
            options.unit,
            options.modified_within_days,
        )

    def _run(self, command: List[str], input: Optional[bytes] = None) -> subprocess.CompletedProcess:
        # bytes in and out: paths are arbitrary bytes, not necessarily UTF-8
        logger.debug("Running %s", command)
        try:
            result = subprocess.run(command, input=input, capture_output=True, check=False)
        except OSError as exc:
            logger.error("Could not run %s: %s", command[0], exc)
            return subprocess.CompletedProcess(command, 127, b"", os.fsencode(str(exc)))
        if result.returncode != 0:
            lines = (result.stderr or b"").decode(errors="replace").strip().splitlines()
            logger.warning(
                "%s exited with code %d%s",
                command[0],
                result.returncode,
                f": {lines[0]}" if lines else "",
            )
        return result


# -------------------- Transformation --------------------

def filter_entries(entries: Sequence[UsageEntry], size_threshold: int) -> Tuple[List[UsageEntry], int]:
    """Keep entries at or above the threshold; the total covers exactly those."""
    retained = [entry for entry in entries if entry.size >= size_threshold]
    return retained, sum(entry.size for entry in retained)


def sort_entries(entries: Sequence[UsageEntry], sort_key: str) -> Tuple[List[UsageEntry], List[str]]:
    if sort_key == "size_asc":
        return sorted(entries, key=lambda e: e.size), []
    if sort_key == "size_desc":
        return sorted(entries, key=lambda e: e.size, reverse=True), []
    if sort_key == "mtime":
        if all(entry.mtime is not None for entry in entries):
            return sorted(entries, key=lambda e: e.mtime, reverse=True), []
        message = "Modification times are not available for every entry. Sorting by name instead."
        logger.warning("%s", message)
        return sorted(entries, key=lambda e: e.path), [message]
    return sorted(entries, key=lambda e: e.path), []


def percentage(size: int, total_size: int) -> float:
    if total_size <= 0:
        return 0.0
    return round(100 * size / total_size, 2)


# -------------------- Rendering --------------------

def _option_lines(report: Report) -> List[Tuple[str, str]]:
    options = report.options
    lines = [
        ("Target Directory", options.target_dir),
        ("Max Depth", str(options.max_depth)),
        ("Units", options.unit),
        ("Report Format", options.format),
        ("Sort Option", options.sort_key),
        ("Size Threshold", f"{options.size_threshold} {options.unit}"),
    ]
    if options.modified_within_days is not None:
        lines.append(("Modified Within", f"{options.modified_within_days} days"))
    return lines


def _timestamp(report: Report) -> str:
    return report.generated_at.isoformat(timespec="seconds")


def _total_label(report: Report) -> str:
    return f"{report.total_size} {report.options.unit}"


def _header_block(report: Report) -> List[str]:
    title = f"{REPORT_TITLE} for '{report.options.target_dir}'"
    lines = [title, "-" * 40, f"Date: {_timestamp(report)}"]
    lines.extend(f"{label}: {value}" for label, value in _option_lines(report))
    lines.append("")
    return lines


def render_text(report: Report) -> str:
    unit = report.options.unit
    lines = _header_block(report)
    lines.append(f"Total Space: {_total_label(report)}")
    for row in report.rows:
        lines.append(f"{row.size} {unit} - {row.path} ({row.percentage:.2f}%)")
    return "\n".join(lines) + "\n"


def render_csv(report: Report) -> str:
    buffer = io.StringIO()
    buffer.write("\n".join(_header_block(report)) + "\n")
    writer = csv.writer(buffer, lineterminator="\n")
    writer.writerow([f"Size ({report.options.unit})", "Path", "Percentage"])
    for row in report.rows:
        writer.writerow([row.size, row.path, f"{row.percentage:.2f}"])
    buffer.write(f"Total Space: {_total_label(report)}\n")
    return buffer.getvalue()


HTML_STYLE = """  table { border-collapse: collapse; width: 100%; }
  th, td { border: 1px solid #ddd; padding: 8px; text-align: left; }
  tr:nth-child(even) { background-color: #f2f2f2; }"""


def render_html(report: Report) -> str:
    esc = html.escape
    unit = esc(report.options.unit)
    lines = [
        "<!DOCTYPE html>",
        "<html>",
        "<head>",
        '<meta charset="utf-8">',
        "<title>Disk Space Report</title>",
        "<style>",
        HTML_STYLE,
        "</style>",
        "</head>",
        "<body>",
        f"<h2>{REPORT_TITLE}</h2>",
        f"<p>Date: {esc(_timestamp(report))}</p>",
    ]
    lines.extend(f"<p>{esc(label)}: {esc(value)}</p>" for label, value in _option_lines(report))
    lines.append("<table>")
    lines.append(f"<tr><th>Size ({unit})</th><th>Path</th><th>Percentage</th></tr>")
    for row in report.rows:
        lines.append(f"<tr><td>{row.size}</td><td>{esc(row.path)}</td><td>{row.percentage:.2f}</td></tr>")
    lines.append(f"<tr><td><b>Total Space:</b></td><td>{esc(_total_label(report))}</td><td></td></tr>")
    lines.extend(["</table>", "</body>", "</html>"])
    return "\n".join(lines) + "\n"


def render_json(report: Report) -> str:
    options = report.options
    payload = {
        "title": f"{REPORT_TITLE} for '{options.target_dir}'",
        "generated_at": _timestamp(report),
        "options": {
            "target_dir": options.target_dir,
            "max_depth": options.max_depth,
            "unit": options.unit,
            "format": options.format,
            "sort": options.sort_key,
            "size_threshold": options.size_threshold,
            "modified_within_days": options.modified_within_days,
        },
        "entries": [
            {"size": row.size, "path": row.path, "percentage": row.percentage}
            for row in report.rows
        ],
        "total_space": _total_label(report),
    }
    return json.dumps(payload, indent=2) + "\n"


RENDERERS: Dict[str, Callable[[Report], str]] = {
    "text": render_text,
    "csv": render_csv,
    "html": render_html,
    "json": render_json,
}


# -------------------- Generator --------------------

class ReportGenerator:
    """Collect, filter, sort and render; every call is an independent run."""

    def __init__(
        self,
        settings: Optional[Settings] = None,
        collector: Optional[DiskUsageCollector] = None,
        clock: Callable[[], datetime] = datetime.now,
    ) -> None:
        self.settings = settings or get_settings()
        self.collector = collector or DiskUsageCollector(self.settings)
        self._clock = clock

    def build(self, options: ReportOptions) -> Report:
        options, warnings = validate_options(options, self.settings)

        entries = self.collector.collect(options)
        if not entries:
            raise NoDataError(
                f"No data returned from du/find for '{options.target_dir}'. "
                "Check the target directory and options."
            )

        retained, total_size = filter_entries(entries, options.size_threshold)
        if not retained:
            raise NoDataError(
                f"No entries in '{options.target_dir}' are at least {options.size_threshold} {options.unit}."
            )

        ordered, sort_warnings = sort_entries(retained, options.sort_key)
        warnings.extend(sort_warnings)
        rows = tuple(ReportRow(entry, percentage(entry.size, total_size)) for entry in ordered)
        logger.info(
            "Report for %s: %d entries, total %d %s",
            options.target_dir,
            len(rows),
            total_size,
            options.unit,
        )
        return Report(
            options=options,
            rows=rows,
            total_size=total_size,
            generated_at=self._clock(),
            warnings=tuple(warnings),
        )

    def render(self, report: Report) -> str:
        renderer = RENDERERS.get(report.options.format, render_text)
        return renderer(report)

    def generate(self, options: ReportOptions) -> str:
        return self.render(self.build(options))


def generate_report(
    target_dir: Optional[str] = None,
    max_depth: object = None,
    unit: Optional[str] = None,
    report_format: Optional[str] = None,
    sort_key: Optional[str] = None,
    size_threshold: object = None,
    modified_within: object = None,
    settings: Optional[Settings] = None,
) -> str:
    """Render a disk usage report; raises NoDataError when there is nothing to show."""
    options = ReportOptions.from_inputs(
        target_dir=target_dir,
        max_depth=max_depth,
        unit=unit,
        report_format=report_format,
        sort_key=sort_key,
        size_threshold=size_threshold,
        modified_within=modified_within,
    )
    return ReportGenerator(settings).generate(options)


def printable(text: str) -> str:
    """Show undecodable path bytes as ``\\xNN`` escapes instead of failing on output."""
    return text.encode("utf-8", "surrogateescape").decode("utf-8", "backslashreplace")


def disk_report(args: argparse.Namespace) -> None:
    options = ReportOptions.from_inputs(
        target_dir=args.path,
        max_depth=args.max_depth,
        unit=args.unit,
        report_format=args.format,
        sort_key=args.sort,
        size_threshold=args.threshold,
        modified_within=args.modified_within,
    )
    generator = ReportGenerator()
    report = generator.build(options)
    if getattr(args, "include_warnings", False):
        for warning in report.warnings:
            print(f"Warning: {warning}")
        if report.warnings:
            print()
    print(printable(generator.render(report)), end="")
