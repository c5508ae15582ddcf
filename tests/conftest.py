"""Shared fixtures for the dir_enc test suite."""

from __future__ import annotations

import os
from pathlib import Path

import pytest

from dir_enc.core import KeyPaths, generate_key_pair

# ── Reusable constants ───────────────────────────────────────────────────────

TEST_KEY_SIZE = 2048  # smaller than the CLI default to keep the suite fast
PASSPHRASE = "t3st-P@ssw0rd!#"


# ── Environment isolation ────────────────────────────────────────────────────

@pytest.fixture(autouse=True)
def isolated_home(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Path:
    """Point ``~`` at an empty directory and clear dir_enc env vars."""
    home = tmp_path / "home"
    home.mkdir()
    monkeypatch.setenv("HOME", str(home))
    monkeypatch.delenv("DIRENC_KEY_PATH", raising=False)
    monkeypatch.delenv("DIRENC_DEBUG", raising=False)
    return home


# ── Key fixtures ─────────────────────────────────────────────────────────────

def _make_keys(directory: Path, passphrase: str = "") -> KeyPaths:
    keys = KeyPaths.from_base(str(directory / "test"))
    generate_key_pair(
        keys.public_path,
        keys.private_path,
        passphrase=passphrase,
        key_size=TEST_KEY_SIZE,
    )
    return keys


@pytest.fixture(scope="session")
def key_pair(tmp_path_factory: pytest.TempPathFactory) -> KeyPaths:
    return _make_keys(tmp_path_factory.mktemp("keys"))


@pytest.fixture(scope="session")
def other_key_pair(tmp_path_factory: pytest.TempPathFactory) -> KeyPaths:
    """An unrelated key pair for wrong-key scenarios."""
    return _make_keys(tmp_path_factory.mktemp("other_keys"))


@pytest.fixture(scope="session")
def protected_key_pair(tmp_path_factory: pytest.TempPathFactory) -> KeyPaths:
    """A key pair whose private key is encrypted with :data:`PASSPHRASE`."""
    return _make_keys(tmp_path_factory.mktemp("protected_keys"), PASSPHRASE)


# ── Directory tree fixtures ──────────────────────────────────────────────────

@pytest.fixture()
def plain_tree(tmp_path: Path) -> Path:
    """A root with one plaintext directory and its (empty) ``.enc`` twin.

    Layout::

        root/
        ├── notes/
        │   ├── report.txt     (text, ~1.4 KiB)
        │   ├── empty.txt      (0 bytes)
        │   └── deep/
        │       └── data.bin   (random 4 KiB)
        ├── notes.enc/         (empty marker)
        └── unrelated/
            └── keep.txt
    """
    root = tmp_path / "root"
    notes = root / "notes"
    (notes / "deep").mkdir(parents=True)
    (notes / "report.txt").write_text("Quarterly report.\n" * 80)
    (notes / "empty.txt").write_bytes(b"")
    (notes / "deep" / "data.bin").write_bytes(os.urandom(4096))
    (root / "notes.enc").mkdir()
    (root / "unrelated").mkdir()
    (root / "unrelated" / "keep.txt").write_text("not paired")
    return root

