"""CLI tests: argument parsing, aliases, exit codes, end-to-end commands."""

from __future__ import annotations

import argparse
import os
import sys
from pathlib import Path

import pytest

from dir_enc.core import ArgumentParseFailure, KeyPaths, build_parser, main


@pytest.fixture()
def parser() -> argparse.ArgumentParser:
    return build_parser()


class TestSubcommands:
    @pytest.mark.parametrize("command", ["encrypt", "decrypt"])
    def test_bulk_defaults(self, parser: argparse.ArgumentParser, command: str) -> None:
        args = parser.parse_args([command])
        assert args.command == command
        assert args.path == ""
        assert args.root == "."
        assert args.keep_going is False
        assert args.verbose is False

    def test_keygen_defaults(self, parser: argparse.ArgumentParser) -> None:
        args = parser.parse_args(["keygen"])
        assert args.command == "keygen"
        assert args.path == ""

    @pytest.mark.parametrize(
        "argv, expected",
        [(["pgp"], "pgp"), (["enc"], "enc"), (["dec"], "dec")],
        ids=["pgp", "enc", "dec"],
    )
    def test_short_aliases(
        self, parser: argparse.ArgumentParser, argv: list[str], expected: str
    ) -> None:
        assert parser.parse_args(argv).command == expected

    @pytest.mark.parametrize("flag", ["-p", "--path"])
    def test_key_path_flag(self, parser: argparse.ArgumentParser, flag: str) -> None:
        assert parser.parse_args(["encrypt", flag, "/k/base"]).path == "/k/base"

    def test_all_bulk_flags_combined(self, parser: argparse.ArgumentParser) -> None:
        args = parser.parse_args(["decrypt", "-p", "k", "-d", "docs", "-k", "-v"])
        assert (args.path, args.root, args.keep_going, args.verbose) == ("k", "docs", True, True)

    def test_list_takes_root(self, parser: argparse.ArgumentParser) -> None:
        args = parser.parse_args(["list", "--root", "docs"])
        assert args.command == "list"
        assert args.root == "docs"


class TestParseFailures:
    @pytest.mark.parametrize(
        "argv",
        [[], ["frobnicate"], ["encrypt", "--bogus"], ["keygen", "-p"], ["list", "-p", "x"]],
        ids=["no-command", "unknown-command", "unknown-flag", "missing-value", "flag-not-on-list"],
    )
    def test_raises_parse_failure(self, parser: argparse.ArgumentParser, argv: list[str]) -> None:
        with pytest.raises(ArgumentParseFailure):
            parser.parse_args(argv)

    def test_version_exits_zero(self, parser: argparse.ArgumentParser) -> None:
        with pytest.raises(SystemExit) as exc:
            parser.parse_args(["--version"])
        assert exc.value.code == 0

    def test_main_reports_and_returns_2(self, capsys: pytest.CaptureFixture[str]) -> None:
        assert main(["frobnicate"]) == 2
        assert "Could not parse arguments" in capsys.readouterr().err

    @pytest.mark.parametrize("value", ["1", "true", "YES"])
    def test_debug_mode_escalates(
        self, monkeypatch: pytest.MonkeyPatch, value: str
    ) -> None:
        monkeypatch.setenv("DIRENC_DEBUG", value)
        with pytest.raises(ArgumentParseFailure):
            main(["frobnicate"])


class TestMain:
    def test_no_arguments_without_keys_fails_cleanly(
        self,
        tmp_path: Path,
        isolated_home: Path,
        monkeypatch: pytest.MonkeyPatch,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        workdir = tmp_path / "work"
        (workdir / "notes.enc").mkdir(parents=True)
        monkeypatch.chdir(workdir)

        assert main([]) == 1

        err = capsys.readouterr().err
        assert os.path.join(str(isolated_home), ".dir-enc.private_key") in err
        assert os.path.join(str(isolated_home), ".dir-enc.public_key") in err
        assert sorted(p.name for p in workdir.iterdir()) == ["notes.enc"]

    def test_no_arguments_decrypts_current_directory(
        self,
        plain_tree: Path,
        key_pair: KeyPaths,
        monkeypatch: pytest.MonkeyPatch,
    ) -> None:
        monkeypatch.setenv("DIRENC_KEY_PATH", key_pair.base)
        assert main(["encrypt", "-d", str(plain_tree)]) == 0
        original = (plain_tree / "notes" / "report.txt").read_bytes()
        (plain_tree / "notes" / "report.txt").unlink()

        monkeypatch.chdir(plain_tree)
        assert main([]) == 0
        assert (plain_tree / "notes" / "report.txt").read_bytes() == original

    def test_encrypt_reports_each_file(
        self,
        plain_tree: Path,
        key_pair: KeyPaths,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        assert main(["enc", "-p", key_pair.base, "-d", str(plain_tree), "-v"]) == 0
        err = capsys.readouterr().err
        assert "Listing matched pattern directories..." in err
        assert err.count("[Encrypting]") == 3
        assert "Done: 3 file(s) across 1 pair(s)." in err

    def test_keep_going_returns_1_on_failure(
        self,
        tmp_path: Path,
        key_pair: KeyPaths,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        (tmp_path / "box.enc").mkdir()
        (tmp_path / "box.enc" / "junk.txt").write_text("garbage")
        assert main(["dec", "-p", key_pair.base, "-d", str(tmp_path), "-k"]) == 1
        assert "1 file(s) failed" in capsys.readouterr().err

    def test_failure_without_keep_going_returns_1(
        self, tmp_path: Path, key_pair: KeyPaths
    ) -> None:
        (tmp_path / "box.enc").mkdir()
        (tmp_path / "box.enc" / "junk.txt").write_text("garbage")
        assert main(["decrypt", "-p", key_pair.base, "-d", str(tmp_path)]) == 1

    @pytest.mark.skipif(sys.platform == "win32", reason="POSIX symlinks only")
    def test_unreadable_file_reports_error_and_returns_1(
        self,
        plain_tree: Path,
        key_pair: KeyPaths,
        capsys: pytest.CaptureFixture[str],
    ) -> None:
        (plain_tree / "notes" / "dangling.txt").symlink_to(plain_tree / "gone.txt")
        assert main(["encrypt", "-p", key_pair.base, "-d", str(plain_tree)]) == 1
        err = capsys.readouterr().err
        assert "Error:" in err
        assert "dangling.txt" in err

    def test_missing_root_returns_1(self, tmp_path: Path, key_pair: KeyPaths) -> None:
        assert main(["decrypt", "-p", key_pair.base, "-d", str(tmp_path / "ghost")]) == 1

    def test_list_prints_pairs(
        self, plain_tree: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        assert main(["list", "-d", str(plain_tree)]) == 0
        out = capsys.readouterr().out.splitlines()
        notes = os.path.join(str(plain_tree), "notes")
        assert out == [f"{notes} <-> {notes}.enc"]

    def test_keygen_then_conflict(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str]
    ) -> None:
        base = str(tmp_path / "keys" / "mine")
        assert main(["keygen", "-p", base]) == 0
        assert "successfully created" in capsys.readouterr().err
        private_before = Path(f"{base}.private_key").read_bytes()

        assert main(["pgp", "-p", base]) == 0
        assert "Key files exist" in capsys.readouterr().err
        assert Path(f"{base}.private_key").read_bytes() == private_before
