"""Tests for the scheduled check script."""

from changewatch.catalog.page_source import CatalogPageSource
from scripts.check_competitors import main, parse_args

from conftest import catalog_source


class TestParseArgs:
    def test_defaults_are_unset(self):
        args = parse_args([])
        assert args.db_dir is None
        assert args.db_name is None
        assert args.log_file is None
        assert args.pagination is None

    def test_flags(self):
        args = parse_args([
            "--db", "/data", "--dbname", "shoes", "--log", "run.log",
            "--fetch-workers", "3", "--detect-workers", "40", "--mode", "probe",
        ])
        assert (args.db_dir, args.db_name, args.log_file) == ("/data", "shoes", "run.log")
        assert (args.fetch_workers, args.detect_workers, args.pagination) == (3, 40, "probe")


def test_unopenable_database_exits_1(tmp_path):
    log_file = tmp_path / "check.log"
    code = main(["--db", str(tmp_path / "does-not-exist"), "--log", str(log_file)])
    assert code == 1
    assert "Cannot connect to the database" in log_file.read_text()


def test_successful_run_prints_summary(tmp_path, monkeypatch, capsys):
    catalogs = [
        {1: {"p1": ["c1", "c2"], "p2": ["c3"]}},
        {1: {"p1": ["c2", "c1"], "p2": ["c3"]}},
    ]
    monkeypatch.setattr(
        CatalogPageSource, "from_settings",
        classmethod(lambda cls, settings, client=None: catalog_source(catalogs.pop(0))),
    )
    argv = ["--db", str(tmp_path), "--dbname", "cli", "--fetch-workers", "2", "--detect-workers", "2"]

    assert main(argv) == 0
    out = capsys.readouterr().out
    assert out.startswith("Total changed items: 2 (checked 2, +3/-0 competitors,")

    assert main(argv) == 0
    out = capsys.readouterr().out
    assert out.startswith("No changed items found (checked 2, +0/-0 competitors,")
    assert (tmp_path / "cli.db").exists()
