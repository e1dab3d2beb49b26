"""Tests for the blocklist command line entry point."""

# pylint: disable=missing-function-docstring
from pathlib import Path

from pytest import fixture, raises

from blocklist.cli import main, resolve_settings, build_parser
from blocklist.downloader import RawDocument
from blocklist.errors import FetchTimeout

from conftest import rule_lines

S1 = "https://one.example.com/list.txt"
S2 = "https://two.example.com/list.txt"


@fixture(autouse=True)
def clean_env(monkeypatch, tmp_path: Path):
    for key in ("CRON_SCHEDULE", "CONFIG_PATH", "OUTPUT_PATH", "FETCH_TIMEOUT",
                "COMPILE_TIMEOUT", "MIN_RULES", "MIN_OUTPUT_BYTES", "MAX_FAILURES", "LOG_FILE"):
        monkeypatch.delenv(key, raising=False)
    monkeypatch.chdir(tmp_path)


def _serve(monkeypatch, documents: dict):
    async def fake_fetch(session, url, timeout):
        result = documents[url]
        if isinstance(result, BaseException):
            raise result
        return RawDocument(url, result, "text/plain")

    monkeypatch.setattr("blocklist.compiler.fetch_document", fake_fetch)


def test_check_config_accepts_valid_file(config_file, capsys):
    path = config_file([S1, S2])

    assert main(["--config", str(path), "check-config"]) == 0
    assert "Test Blocklist" in capsys.readouterr().out


def test_check_config_rejects_invalid_file(tmp_path: Path, capsys):
    path = tmp_path / "config.json"
    path.write_text('{"name": "x"}', encoding="utf-8")

    assert main(["--config", str(path), "check-config"]) == 1
    assert "Invalid configuration format" in capsys.readouterr().err


def test_check_config_missing_file(tmp_path: Path, capsys):
    assert main(["--config", str(tmp_path / "nope.json"), "check-config"]) == 1
    assert "Config file not found" in capsys.readouterr().err


def test_compile_publishes_artifact(tmp_path: Path, config_file, monkeypatch, capsys):
    path = config_file([S1, S2])
    _serve(monkeypatch, {S1: rule_lines(80), S2: rule_lines(80, "trk")})

    code = main(["--config", str(path), "compile", "--output", "out.txt"])

    assert code == 0
    text = (tmp_path / "out.txt").read_text(encoding="utf-8")
    assert "! Rule count: 160" in text
    assert "COMPILATION SUMMARY" in capsys.readouterr().out


def test_compile_failure_exits_nonzero_and_keeps_nothing(tmp_path: Path, config_file, monkeypatch, capsys):
    path = config_file([S1, S2])
    _serve(monkeypatch, {S1: rule_lines(80), S2: FetchTimeout(S2, 10.0)})

    code = main(["--config", str(path), "compile", "--output", "out.txt"])

    assert code == 1
    assert "S2" in capsys.readouterr().err
    assert not (tmp_path / "out.txt").exists()


def test_environment_guards_apply(tmp_path: Path, config_file, monkeypatch):
    path = config_file([S1])
    _serve(monkeypatch, {S1: "a.com\nb.com\n"})
    monkeypatch.setenv("MIN_RULES", "0")
    monkeypatch.setenv("MIN_OUTPUT_BYTES", "0")

    assert main(["--config", str(path), "compile", "--output", "out.txt"]) == 0
    assert (tmp_path / "out.txt").read_text(encoding="utf-8").endswith("a.com\nb.com\n")


def test_default_guards_reject_tiny_list(tmp_path: Path, config_file, monkeypatch):
    path = config_file([S1])
    _serve(monkeypatch, {S1: "a.com\nb.com\n"})

    assert main(["--config", str(path), "compile", "--output", "out.txt"]) == 1
    assert not (tmp_path / "out.txt").exists()


def test_output_outside_working_directory_is_rejected(tmp_path: Path, config_file, monkeypatch, capsys):
    path = config_file([S1])
    _serve(monkeypatch, {S1: rule_lines(200)})

    assert main(["--config", str(path), "compile", "--output", "../escape.txt"]) == 1
    assert not (tmp_path.parent / "escape.txt").exists()
    assert capsys.readouterr().err


def test_options_override_environment(monkeypatch):
    monkeypatch.setenv("MIN_RULES", "500")
    monkeypatch.setenv("CRON_SCHEDULE", "*/5 * * * *")
    args = build_parser().parse_args(["run", "--min-rules", "7", "--max-failures", "5"])

    settings = resolve_settings(args)

    assert settings.min_rules == 7
    assert settings.max_failures == 5
    assert settings.schedule == "*/5 * * * *"


def test_subcommand_is_required():
    with raises(SystemExit):
        main([])
