"""Tests for the du/find adapter: command construction, output parsing and runs of the real tools."""

import argparse
import os
import shutil
import subprocess
import time
from unittest.mock import patch

import pytest

from systoolkit.diskreport import (
    DiskUsageCollector,
    NoDataError,
    ReportGenerator,
    ReportOptions,
    UsageEntry,
    disk_report,
    parse_du_output,
)


def _done(stdout=b"", returncode=0, stderr=b""):
    return subprocess.CompletedProcess(args=[], returncode=returncode, stdout=stdout, stderr=stderr)


class TestParseDuOutput:
    def test_nul_separated_records_with_time(self):
        raw = "12\t1700000000\t/srv/a\x0040\t1700000100\t/srv\x00"
        assert parse_du_output(raw) == [
            UsageEntry(12, "/srv/a", mtime=1700000000.0),
            UsageEntry(40, "/srv", mtime=1700000100.0),
        ]

    def test_newline_records_without_time(self):
        raw = "3\t/tmp/x\n9\t/tmp\n"
        assert parse_du_output(raw) == [UsageEntry(3, "/tmp/x"), UsageEntry(9, "/tmp")]

    def test_paths_keep_tabs_and_newlines(self):
        raw = "1\t1700000000\t/tmp/odd\tname\nline\x00"
        assert parse_du_output(raw) == [UsageEntry(1, "/tmp/odd\tname\nline", mtime=1700000000.0)]

    def test_undecodable_path_bytes_preserved(self):
        entries = parse_du_output(b"8\t1700000000\t/srv/dir\xff\x00")
        assert entries[0].size == 8
        assert os.fsencode(entries[0].path) == b"/srv/dir\xff"

    def test_malformed_records_skipped(self):
        raw = "garbage\x00abc\t/tmp\x00\x005\t1\t/ok\x00"
        assert parse_du_output(raw) == [UsageEntry(5, "/ok", mtime=1.0)]


class TestScan:
    @patch("systoolkit.diskreport.subprocess.run")
    def test_scan_builds_du_command(self, mock_run, settings):
        mock_run.return_value = _done(b"10\t1700000000\t/srv/a\x00")
        entries = DiskUsageCollector(settings).scan("/srv", 2, "K")

        command = mock_run.call_args[0][0]
        assert command[:5] == ["du", "--block-size=1K", "--time", "--time-style=+%s", "--null"]
        assert command[command.index("--max-depth") + 1] == "2"
        for excluded in ("/proc", "/dev", "/sys", "/run"):
            assert f"--exclude={excluded}" in command
        assert command[-1] == "/srv"
        assert entries == [UsageEntry(10, "/srv/a", mtime=1700000000.0)]

    @patch("systoolkit.diskreport.subprocess.run")
    def test_unlimited_depth_omits_flag(self, mock_run, settings):
        mock_run.return_value = _done(b"")
        DiskUsageCollector(settings).scan(".", 0, "M")
        assert "--max-depth" not in mock_run.call_args[0][0]

    @patch("systoolkit.diskreport.subprocess.run")
    def test_leading_dash_target_is_not_an_option(self, mock_run, settings):
        mock_run.return_value = _done(b"")
        DiskUsageCollector(settings).scan("-rf", 0, "M")
        assert mock_run.call_args[0][0][-1] == "./-rf"

    @patch("systoolkit.diskreport.subprocess.run")
    def test_partial_output_kept_on_error_exit(self, mock_run, settings):
        mock_run.return_value = _done(b"4\t1\t/srv/ok\x00", returncode=1, stderr=b"du: cannot read directory")
        assert DiskUsageCollector(settings).scan("/srv", 1, "M") == [UsageEntry(4, "/srv/ok", mtime=1.0)]

    @patch("systoolkit.diskreport.subprocess.run", side_effect=FileNotFoundError("du"))
    def test_missing_binary_yields_nothing(self, _mock_run, settings):
        assert DiskUsageCollector(settings).scan("/srv", 1, "M") == []


class TestScanRecentFiles:
    @patch("systoolkit.diskreport.subprocess.run")
    def test_find_output_piped_into_du(self, mock_run, settings):
        mock_run.side_effect = [
            _done(b"/srv/a\x00/srv/b\x00"),
            _done(b"1\t1700000000\t/srv/a\x002\t1700000001\t/srv/b\x00"),
        ]
        entries = DiskUsageCollector(settings).scan_recent_files("/srv", 3, "M", 7)

        find_call, du_call = mock_run.call_args_list
        find_command = find_call[0][0]
        assert find_command[:2] == ["find", "/srv"]
        assert find_command[2:4] == ["-maxdepth", "3"]
        assert find_command[-5:] == ["-type", "f", "-mtime", "-7", "-print0"]
        assert "-prune" in find_command

        assert du_call[0][0][-1] == "--files0-from=-"
        assert du_call[1]["input"] == b"/srv/a\x00/srv/b\x00"
        assert [e.path for e in entries] == ["/srv/a", "/srv/b"]

    @patch("systoolkit.diskreport.subprocess.run")
    def test_no_matching_files_skips_du(self, mock_run, settings):
        mock_run.return_value = _done(b"")
        assert DiskUsageCollector(settings).scan_recent_files("/srv", 0, "M", 1) == []
        assert mock_run.call_count == 1
        assert "-maxdepth" not in mock_run.call_args[0][0]

    @patch("systoolkit.diskreport.subprocess.run")
    def test_collect_picks_strategy(self, mock_run, settings):
        mock_run.return_value = _done(b"")
        collector = DiskUsageCollector(settings)
        collector.collect(ReportOptions(target_dir="/srv", modified_within_days=2))
        assert mock_run.call_args[0][0][0] == "find"
        collector.collect(ReportOptions(target_dir="/srv"))
        assert mock_run.call_args[0][0][0] == "du"


class TestCollectorFailure:
    @patch("systoolkit.diskreport.subprocess.run")
    def test_failed_du_surfaces_as_no_data(self, mock_run, settings):
        mock_run.return_value = _done(b"", returncode=1, stderr=b"du: cannot access '/missing'")
        generator = ReportGenerator(settings)
        with pytest.raises(NoDataError, match="/missing"):
            generator.build(ReportOptions(target_dir="/missing"))


def _gnu_tools() -> bool:
    if shutil.which("du") is None or shutil.which("find") is None:
        return False
    try:
        version = subprocess.run(["du", "--version"], capture_output=True, check=False).stdout
    except OSError:
        return False
    return b"GNU" in version


requires_gnu = pytest.mark.skipif(not _gnu_tools(), reason="needs GNU du and find")

MONTH_AGO = int(time.time()) - 30 * 86400


def _write(path, size):
    with open(path, "wb") as handle:
        handle.write(b"x" * size)


@pytest.fixture
def tree(tmp_path):
    root = tmp_path / "tree"
    for name, size in (("a", 8192), ("b", 4096)):
        (root / name).mkdir(parents=True)
        _write(root / name / "data.bin", size)
    _write(root / "fresh.txt", 10)
    return root


@requires_gnu
class TestRealTools:
    def test_scan_lists_directories_with_times(self, settings, tree):
        report = ReportGenerator(settings).build(ReportOptions(target_dir=str(tree), max_depth=1, unit="K"))
        assert {row.path for row in report.rows} == {str(tree), str(tree / "a"), str(tree / "b")}
        assert sum(row.size for row in report.rows) == report.total_size
        assert all(row.entry.mtime is not None for row in report.rows)

    def test_mtime_sort_newest_first(self, settings, tree):
        for path in (tree / "a" / "data.bin", tree / "a"):
            os.utime(path, (MONTH_AGO - 100, MONTH_AGO - 100))
        for path in (tree / "b" / "data.bin", tree / "b"):
            os.utime(path, (MONTH_AGO, MONTH_AGO))

        report = ReportGenerator(settings).build(
            ReportOptions(target_dir=str(tree), max_depth=1, unit="K", sort_key="mtime")
        )
        assert [row.path for row in report.rows] == [str(tree), str(tree / "b"), str(tree / "a")]
        assert report.rows[1].entry.mtime == MONTH_AGO
        assert report.warnings == ()

    def test_recent_files_skip_old_ones(self, settings, tmp_path):
        logs = tmp_path / "logs"
        logs.mkdir()
        _write(logs / "new.log", 100)
        _write(logs / "old.log", 100)
        os.utime(logs / "old.log", (MONTH_AGO, MONTH_AGO))

        report = ReportGenerator(settings).build(
            ReportOptions(target_dir=str(logs), unit="K", modified_within_days=7)
        )
        assert [row.path for row in report.rows] == [str(logs / "new.log")]

    def test_nothing_recent_is_no_data(self, settings, tmp_path):
        _write(tmp_path / "old.log", 100)
        os.utime(tmp_path / "old.log", (MONTH_AGO, MONTH_AGO))
        with pytest.raises(NoDataError):
            ReportGenerator(settings).build(ReportOptions(target_dir=str(tmp_path), modified_within_days=7))


@pytest.fixture
def raw_tree(tmp_path):
    root = os.fsencode(tmp_path / "raw")
    os.mkdir(root)
    try:
        os.mkdir(root + b"/dir\xff")
    except OSError:
        pytest.skip("filesystem rejects non-UTF-8 names")
    _write(root + b"/dir\xff/data.bin", 2048)
    return os.fsdecode(root)


@requires_gnu
class TestUndecodableNames:
    def test_scan(self, settings, raw_tree):
        report = ReportGenerator(settings).build(ReportOptions(target_dir=raw_tree, unit="K"))
        assert os.fsencode(raw_tree) + b"/dir\xff" in {os.fsencode(row.path) for row in report.rows}

    def test_recent_files(self, settings, raw_tree):
        report = ReportGenerator(settings).build(
            ReportOptions(target_dir=raw_tree, unit="K", modified_within_days=1)
        )
        assert [os.fsencode(row.path) for row in report.rows] == [os.fsencode(raw_tree) + b"/dir\xff/data.bin"]

    def test_every_format_renders(self, settings, raw_tree):
        generator = ReportGenerator(settings)
        for report_format in ("text", "csv", "html", "json"):
            assert generator.generate(ReportOptions(target_dir=raw_tree, format=report_format))

    def test_printed_report_escapes_bad_bytes(self, raw_tree, capsys):
        disk_report(
            argparse.Namespace(
                path=raw_tree,
                max_depth=0,
                unit="K",
                format="text",
                sort="name",
                threshold=0,
                modified_within=None,
            )
        )
        assert "dir\\xff" in capsys.readouterr().out
