#!/usr/bin/env python3
"""Mirror ``X`` ↔ ``X.enc`` directory pairs through public-key encryption.

:license: MIT

Every directory named ``<name>.enc`` below a root is the encrypted twin of
the sibling directory ``<name>``.  ``encrypt`` copies each plaintext file
into its twin as an encrypted message, ``decrypt`` restores the plaintext
side from the twin.  A single RSA key pair, stored as
``<base>.private_key`` / ``<base>.public_key``, serves all pairs.

Message Format (v1)
-------------------
Header::

    [4 B]  magic b"DENC"
    [1 B]  format version 0x01
    [1 B]  flags (bit 0: signed)
    [2 B]  wrapped-key length   [N B]  RSA-OAEP(SHA-256) wrapped file key
    [2 B]  base-nonce length    [12 B] base nonce

Frames::

    [4 B]  ciphertext length    [N B]  ciphertext (plaintext + 16 B GCM tag)
    [4 B]  0x00000000           end of stream

Signature (signed messages only)::

    [2 B]  signature length     [N B]  RSA-PSS(SHA-256) over all prior bytes

* File key: random AES-256 key, one per message.
* Nonce per chunk: ``base_nonce XOR chunk_index`` (12 bytes, big-endian).
* AAD per chunk: ``b"chunk_<index>"``.
* Armor: the binary message base64-encoded in 64-column lines between
  ``-----BEGIN DIR-ENC MESSAGE-----`` and ``-----END DIR-ENC MESSAGE-----``.

Examples
--------
Create the key pair once::

    $ direnc keygen
    $ direnc keygen -p ~/keys/work

Encrypt every ``X`` that has an ``X.enc`` twin below the current directory::

    $ direnc encrypt
    $ direnc encrypt -d ~/notes -p ~/keys/work -v

Decrypt (also the default with no arguments)::

    $ direnc decrypt
    $ direnc
"""

from __future__ import annotations

import argparse
import base64
import binascii
import os
import shutil
import sys
import tempfile
from contextlib import contextmanager
from dataclasses import dataclass, field
from secrets import token_bytes
from typing import BinaryIO, Iterator, Literal

from cryptography.exceptions import InvalidSignature, InvalidTag, UnsupportedAlgorithm
from cryptography.hazmat.primitives import hashes, serialization
from cryptography.hazmat.primitives.asymmetric import padding, rsa
from cryptography.hazmat.primitives.asymmetric.utils import Prehashed
from cryptography.hazmat.primitives.ciphers.aead import AESGCM

# ── Constants ────────────────────────────────────────────────────────────────

MAGIC = b"DENC"
FORMAT_VERSION = 1

FLAG_SIGNED = 0x01

NONCE_SIZE = 12    # AES-GCM standard nonce size in bytes
FILE_KEY_BITS = 256
RSA_KEY_SIZE = 3072
RSA_PUBLIC_EXPONENT = 65537

DEFAULT_CHUNK_SIZE = 2**20  # 1 MiB
END_FRAME = b"\x00\x00\x00\x00"

ARMOR_BEGIN = b"-----BEGIN DIR-ENC MESSAGE-----"
ARMOR_END = b"-----END DIR-ENC MESSAGE-----"
ARMOR_LINE_BYTES = 48  # 64 base64 columns

ENC_SUFFIX = ".enc"
PRIVATE_KEY_SUFFIX = ".private_key"
PUBLIC_KEY_SUFFIX = ".public_key"
DEFAULT_KEY_BASENAME = ".dir-enc"
DEFAULT_IDENTITY = "default"

KEY_PATH_ENV = "DIRENC_KEY_PATH"
DEBUG_ENV = "DIRENC_DEBUG"

Direction = Literal["encrypt", "decrypt"]

_OAEP = padding.OAEP(
    mgf=padding.MGF1(algorithm=hashes.SHA256()),
    algorithm=hashes.SHA256(),
    label=None,
)
_PSS = padding.PSS(
    mgf=padding.MGF1(hashes.SHA256()),
    salt_length=padding.PSS.MAX_LENGTH,
)


# ── Errors ───────────────────────────────────────────────────────────────────

class DirEncError(Exception):
    """Base class for every error raised by dir_enc."""


class KeyMaterialMissing(DirEncError, FileNotFoundError):
    """Key files required by an operation are absent."""

    def __init__(self, private_path: str, public_path: str) -> None:
        super().__init__(f"Key files missing: [{private_path}] and [{public_path}].")
        self.private_path = private_path
        self.public_path = public_path


class KeyMaterialConflict(DirEncError, FileExistsError):
    """Key generation was requested but key files already exist."""

    def __init__(self, existing: list[str]) -> None:
        listed = " and ".join(f"[{p}]" for p in existing)
        super().__init__(
            f"Key files exist: {listed}. Please move/remove them before key creation."
        )
        self.existing = existing


class ArgumentParseFailure(DirEncError):
    """Command-line input does not match any known subcommand or flag."""


class CipherOperationFailure(DirEncError, ValueError):
    """A message could not be encrypted, decrypted, or verified."""


# ── Data model ───────────────────────────────────────────────────────────────

@dataclass(frozen=True)
class KeyPaths:
    """Private and public key file locations sharing one base path."""

    base: str
    private_path: str
    public_path: str

    @classmethod
    def from_base(cls, base: str) -> KeyPaths:
        return cls(base, f"{base}{PRIVATE_KEY_SUFFIX}", f"{base}{PUBLIC_KEY_SUFFIX}")


@dataclass(frozen=True)
class DirectoryPair:
    """A plaintext directory and its ``.enc`` twin."""

    path: str
    encrypted_path: str

    @classmethod
    def from_encrypted(cls, encrypted_path: str) -> DirectoryPair:
        return cls(encrypted_path[: -len(ENC_SUFFIX)], encrypted_path)

    def __str__(self) -> str:
        return self.path


@dataclass
class BatchResult:
    """Outcome of a bulk run: files processed and per-file failures."""

    pairs: int = 0
    processed: int = 0
    failures: list[tuple[str, Exception]] = field(default_factory=list)

    def merge(self, other: BatchResult) -> None:
        self.pairs += other.pairs
        self.processed += other.processed
        self.failures.extend(other.failures)


# ── Status output ────────────────────────────────────────────────────────────

def _log(msg: str) -> None:
    """Print a status line to stderr."""
    print(msg, file=sys.stderr)


# ── Key material ─────────────────────────────────────────────────────────────

def _load_private_key(path: str, passphrase: str = "") -> rsa.RSAPrivateKey:
    with open(path, "rb") as f:
        data = f.read()
    password = passphrase.encode("utf-8") if passphrase else None
    try:
        key = serialization.load_pem_private_key(data, password=password)
    except (ValueError, TypeError, UnsupportedAlgorithm) as exc:
        raise CipherOperationFailure(
            f"Cannot load private key [{path}]: wrong passphrase or unsupported format."
        ) from exc
    if not isinstance(key, rsa.RSAPrivateKey):
        raise CipherOperationFailure(f"Private key [{path}] is not an RSA key.")
    return key


def _load_public_key(path: str) -> rsa.RSAPublicKey:
    with open(path, "rb") as f:
        data = f.read()
    try:
        if data.lstrip().startswith(b"-----BEGIN"):
            key = serialization.load_pem_public_key(data)
        else:
            key = serialization.load_ssh_public_key(data)
    except (ValueError, UnsupportedAlgorithm) as exc:
        raise CipherOperationFailure(
            f"Cannot load public key [{path}]: unsupported format."
        ) from exc
    if not isinstance(key, rsa.RSAPublicKey):
        raise CipherOperationFailure(f"Public key [{path}] is not an RSA key.")
    return key


def generate_key_pair(
    public_key_path: str,
    private_key_path: str,
    identity: str = DEFAULT_IDENTITY,
    passphrase: str = "",
    *,
    key_size: int = RSA_KEY_SIZE,
) -> None:
    """Write a fresh RSA key pair.

    The private key is PEM/PKCS#8, encrypted when *passphrase* is
    non-empty, and created with mode ``0o600``.  The public key uses the
    OpenSSH one-line format with *identity* as its comment.  Neither file
    may already exist.

    Raises
    ------
    FileExistsError
        If either output path is already taken.  A private key written
        before the public key failed is removed again.
    """
    private_key = rsa.generate_private_key(
        public_exponent=RSA_PUBLIC_EXPONENT,
        key_size=key_size,
    )
    if passphrase:
        encryption: serialization.KeySerializationEncryption = (
            serialization.BestAvailableEncryption(passphrase.encode("utf-8"))
        )
    else:
        encryption = serialization.NoEncryption()

    private_pem = private_key.private_bytes(
        encoding=serialization.Encoding.PEM,
        format=serialization.PrivateFormat.PKCS8,
        encryption_algorithm=encryption,
    )
    public_line = private_key.public_key().public_bytes(
        encoding=serialization.Encoding.OpenSSH,
        format=serialization.PublicFormat.OpenSSH,
    )
    if identity:
        public_line += b" " + identity.encode("utf-8")

    fd = os.open(private_key_path, os.O_WRONLY | os.O_CREAT | os.O_EXCL, 0o600)
    with os.fdopen(fd, "wb") as f:
        f.write(private_pem)
    try:
        with open(public_key_path, "xb") as f:
            f.write(public_line + b"\n")
    except Exception:
        # Never leave half a key pair behind.
        os.remove(private_key_path)
        raise


# ── Nonce construction ───────────────────────────────────────────────────────

def _make_nonce(base_nonce: bytes, chunk_index: int) -> bytes:
    """Return ``base_nonce XOR chunk_index`` as a 12-byte nonce."""
    index_bytes = chunk_index.to_bytes(NONCE_SIZE, "big")
    return bytes(a ^ b for a, b in zip(base_nonce, index_bytes))


# ── Stream wrappers ──────────────────────────────────────────────────────────

class _DigestWriter:
    """Pass writes through to *sink* while hashing them with SHA-256."""

    def __init__(self, sink: BinaryIO | _ArmoredWriter) -> None:
        self._sink = sink
        self._hash = hashes.Hash(hashes.SHA256())

    def write(self, data: bytes) -> None:
        self._hash.update(data)
        self._sink.write(data)

    def digest(self) -> bytes:
        return self._hash.finalize()


class _DigestReader:
    """Hash every byte read from *source* with SHA-256."""

    def __init__(self, source: BinaryIO | _ArmoredReader) -> None:
        self._source = source
        self._hash = hashes.Hash(hashes.SHA256())

    def read(self, size: int) -> bytes:
        data = self._source.read(size)
        self._hash.update(data)
        return data

    def digest(self) -> bytes:
        return self._hash.finalize()


class _ArmoredWriter:
    """Base64-armor everything written into *f*, 64 columns per line."""

    def __init__(self, f: BinaryIO) -> None:
        self._f = f
        self._buf = bytearray()
        self._f.write(ARMOR_BEGIN + b"\n")

    def write(self, data: bytes) -> None:
        self._buf.extend(data)
        full = len(self._buf) - len(self._buf) % ARMOR_LINE_BYTES
        for start in range(0, full, ARMOR_LINE_BYTES):
            line = self._buf[start : start + ARMOR_LINE_BYTES]
            self._f.write(base64.b64encode(line) + b"\n")
        del self._buf[:full]

    def close(self) -> None:
        if self._buf:
            self._f.write(base64.b64encode(self._buf) + b"\n")
            self._buf.clear()
        self._f.write(ARMOR_END + b"\n")


class _ArmoredReader:
    """Decode an armored message from *f* on demand."""

    def __init__(self, f: BinaryIO) -> None:
        self._f = f
        self._buf = bytearray()
        self._done = False
        if f.readline().strip() != ARMOR_BEGIN:
            raise CipherOperationFailure("Invalid armor: missing BEGIN line.")

    def read(self, size: int) -> bytes:
        while len(self._buf) < size and not self._done:
            line = self._f.readline()
            if not line:
                raise CipherOperationFailure("Truncated armor: missing END line.")
            line = line.strip()
            if line == ARMOR_END:
                self._done = True
                break
            try:
                self._buf.extend(base64.b64decode(line, validate=True))
            except binascii.Error as exc:
                raise CipherOperationFailure("Invalid armor: bad base64 line.") from exc
        data = bytes(self._buf[:size])
        del self._buf[:size]
        return data


def _is_armored(f: BinaryIO) -> bool:
    head = f.read(len(ARMOR_BEGIN))
    f.seek(0)
    return head == ARMOR_BEGIN


def _read_exact(f: BinaryIO | _ArmoredReader | _DigestReader, size: int, what: str) -> bytes:
    data = f.read(size)
    if len(data) != size:
        raise CipherOperationFailure(
            f"Truncated {what}: expected {size} bytes, got {len(data)}."
        )
    return data


# ── Header I/O ───────────────────────────────────────────────────────────────

def _write_header(
    f: BinaryIO | _DigestWriter,
    flags: int,
    wrapped_key: bytes,
    base_nonce: bytes,
) -> None:
    """Serialize the message header into *f*."""
    f.write(MAGIC)
    f.write(FORMAT_VERSION.to_bytes(1, "big"))
    f.write(flags.to_bytes(1, "big"))
    f.write(len(wrapped_key).to_bytes(2, "big") + wrapped_key)
    f.write(len(base_nonce).to_bytes(2, "big") + base_nonce)


def _read_header(f: BinaryIO | _DigestReader) -> tuple[int, bytes, bytes]:
    """Read and validate the message header.

    Returns
    -------
    tuple[int, bytes, bytes]
        ``(flags, wrapped_key, base_nonce)``.

    Raises
    ------
    CipherOperationFailure
        If the header is missing, truncated, or has an unsupported version.
    """
    if f.read(len(MAGIC)) != MAGIC:
        raise CipherOperationFailure(
            "Invalid file: missing magic number, not a dir-enc message."
        )

    version = int.from_bytes(f.read(1), "big")
    if version != FORMAT_VERSION:
        raise CipherOperationFailure(
            f"Unsupported format version {version} (expected {FORMAT_VERSION})."
        )

    flags = int.from_bytes(_read_exact(f, 1, "header"), "big")
    if flags & ~FLAG_SIGNED:
        raise CipherOperationFailure(f"Unknown header flags 0x{flags:02x}.")

    key_len = int.from_bytes(_read_exact(f, 2, "header"), "big")
    wrapped_key = _read_exact(f, key_len, "header (wrapped key)")

    nonce_len = int.from_bytes(_read_exact(f, 2, "header"), "big")
    if nonce_len != NONCE_SIZE:
        raise CipherOperationFailure(f"Invalid nonce length {nonce_len}.")
    base_nonce = _read_exact(f, nonce_len, "header (nonce)")

    return flags, wrapped_key, base_nonce


# ── Staged output ────────────────────────────────────────────────────────────

@contextmanager
def _staged_output(output_filename: str) -> Iterator[BinaryIO]:
    """Yield a temp file beside *output_filename*, moved into place on success.

    On failure only the temp file is removed; whatever already sits at
    *output_filename* is left as it was.
    """
    directory = os.path.dirname(os.path.abspath(output_filename))
    prefix = f".{os.path.basename(output_filename)}."
    fd, tmp_path = tempfile.mkstemp(dir=directory, prefix=prefix, suffix=".tmp")
    try:
        with os.fdopen(fd, "wb") as f:
            yield f
        if os.path.isfile(output_filename):
            shutil.copymode(output_filename, tmp_path)
        os.replace(tmp_path, output_filename)
    except Exception:
        if os.path.exists(tmp_path):
            os.remove(tmp_path)
        raise


# ── Encryption ───────────────────────────────────────────────────────────────

def encrypt_file(
    input_filename: str,
    output_filename: str,
    public_key_path: str,
    armor: bool = True,
    sign: bool = True,
    *,
    signing_key_path: str | None = None,
    passphrase: str = "",
    chunk_size: int = DEFAULT_CHUNK_SIZE,
) -> None:
    """Encrypt *input_filename* → *output_filename* for *public_key_path*.

    Parameters
    ----------
    input_filename : str
        Path to the plaintext file.
    output_filename : str
        Destination for the encrypted message, replaced only once complete.
    public_key_path : str
        Recipient public key (OpenSSH or PEM).
    armor : bool
        Write base64 text armor instead of raw binary.
    sign : bool
        Append an RSA-PSS signature made with *signing_key_path*.
    signing_key_path : str | None
        Private key used when *sign* is set.
    passphrase : str
        Passphrase of the signing key (empty for none).
    chunk_size : int
        Plaintext bytes per chunk (default 1 MiB).
    """
    if not os.path.isfile(input_filename):
        raise FileNotFoundError(f"Input file not found: {input_filename}")
    if sign and signing_key_path is None:
        raise ValueError("sign=True requires signing_key_path.")

    public_key = _load_public_key(public_key_path)
    signer = _load_private_key(signing_key_path, passphrase) if sign else None

    file_key = AESGCM.generate_key(bit_length=FILE_KEY_BITS)
    aesgcm = AESGCM(file_key)
    base_nonce = token_bytes(NONCE_SIZE)
    wrapped_key = public_key.encrypt(file_key, _OAEP)
    flags = FLAG_SIGNED if signer is not None else 0

    with _staged_output(output_filename) as out:
        sink: BinaryIO | _ArmoredWriter = _ArmoredWriter(out) if armor else out
        writer = _DigestWriter(sink)
        _write_header(writer, flags, wrapped_key, base_nonce)

        with open(input_filename, "rb") as f:
            idx = 0
            while data := f.read(chunk_size):
                nonce = _make_nonce(base_nonce, idx)
                aad = f"chunk_{idx}".encode()
                ciphertext = aesgcm.encrypt(nonce, data, aad)
                writer.write(len(ciphertext).to_bytes(4, "big") + ciphertext)
                idx += 1

        writer.write(END_FRAME)

        if signer is not None:
            signature = signer.sign(
                writer.digest(), _PSS, Prehashed(hashes.SHA256())
            )
            sink.write(len(signature).to_bytes(2, "big") + signature)

        if isinstance(sink, _ArmoredWriter):
            sink.close()


# ── Decryption ───────────────────────────────────────────────────────────────

def decrypt_file(
    input_filename: str,
    output_filename: str,
    private_key_path: str,
    passphrase: str = "",
    *,
    verify_key_path: str | None = None,
    require_signature: bool = False,
) -> None:
    """Decrypt a message written by :func:`encrypt_file`.

    Armored and binary messages are told apart automatically.  Signed
    messages are verified against *verify_key_path*, or against the
    public half of the private key when no verifying key is given.
    Plaintext is staged in a temp file and only replaces *output_filename*
    once the signature and end of message check out.

    Raises
    ------
    CipherOperationFailure
        Wrong key, corrupted or truncated data, or a bad signature.
    """
    private_key = _load_private_key(private_key_path, passphrase)
    if verify_key_path is not None:
        verify_key = _load_public_key(verify_key_path)
    else:
        verify_key = private_key.public_key()

    with open(input_filename, "rb") as f:
        source: BinaryIO | _ArmoredReader = _ArmoredReader(f) if _is_armored(f) else f
        reader = _DigestReader(source)
        flags, wrapped_key, base_nonce = _read_header(reader)

        if require_signature and not flags & FLAG_SIGNED:
            raise CipherOperationFailure(f"Message is not signed: {input_filename}")

        try:
            file_key = private_key.decrypt(wrapped_key, _OAEP)
            aesgcm = AESGCM(file_key)
        except ValueError as exc:
            raise CipherOperationFailure(
                "Cannot unwrap the file key. Wrong private key or corrupted header."
            ) from exc

        with _staged_output(output_filename) as out:
            idx = 0
            while True:
                length = int.from_bytes(
                    _read_exact(reader, 4, "chunk: incomplete length prefix"), "big"
                )
                if length == 0:
                    break
                ciphertext = _read_exact(reader, length, "chunk")
                nonce = _make_nonce(base_nonce, idx)
                aad = f"chunk_{idx}".encode()
                try:
                    plaintext = aesgcm.decrypt(nonce, ciphertext, aad)
                except InvalidTag as exc:
                    raise CipherOperationFailure(
                        f"Decryption failed at chunk {idx}. "
                        "Wrong key or corrupted data."
                    ) from exc
                out.write(plaintext)
                idx += 1

            if flags & FLAG_SIGNED:
                sig_len = int.from_bytes(_read_exact(source, 2, "signature"), "big")
                signature = _read_exact(source, sig_len, "signature")
                try:
                    verify_key.verify(
                        signature, reader.digest(), _PSS, Prehashed(hashes.SHA256())
                    )
                except InvalidSignature as exc:
                    raise CipherOperationFailure(
                        f"Signature verification failed: {input_filename}"
                    ) from exc

            # For armored input, f is past the END line once source is drained.
            if source.read(1) or f.read().strip():
                raise CipherOperationFailure("Trailing data after end of message.")


# ── Key locator ──────────────────────────────────────────────────────────────

def default_key_base() -> str:
    """Return ``$DIRENC_KEY_PATH`` or ``~/.dir-enc``."""
    configured = os.environ.get(KEY_PATH_ENV, "")
    if configured:
        return os.path.expanduser(configured)
    return os.path.join(os.path.expanduser("~"), DEFAULT_KEY_BASENAME)


def locate_keys(override: str = "", *, check_existence: bool = True) -> KeyPaths:
    """Resolve the key pair paths for *override*, or the default base.

    Raises
    ------
    KeyMaterialMissing
        If *check_existence* is set and either key file is absent.
    """
    keys = KeyPaths.from_base(override or default_key_base())
    if check_existence and not (
        os.path.isfile(keys.private_path) and os.path.isfile(keys.public_path)
    ):
        raise KeyMaterialMissing(keys.private_path, keys.public_path)
    return keys


# ── Key pair generator ───────────────────────────────────────────────────────

def create_key_pair(
    keys: KeyPaths,
    *,
    identity: str = DEFAULT_IDENTITY,
    passphrase: str = "",
    key_size: int = RSA_KEY_SIZE,
) -> None:
    """Create the key pair at *keys*, refusing to touch existing files."""
    existing = [p for p in (keys.public_path, keys.private_path) if os.path.exists(p)]
    if existing:
        raise KeyMaterialConflict(existing)

    parent = os.path.dirname(keys.base)
    if parent:
        os.makedirs(parent, exist_ok=True)

    generate_key_pair(
        keys.public_path,
        keys.private_path,
        identity,
        passphrase,
        key_size=key_size,
    )
    _log("Key pair successfully created.")


# ── Directory pairing ────────────────────────────────────────────────────────

def find_directory_pairs(root: str) -> list[DirectoryPair]:
    """Return a pair for every ``*.enc`` directory anywhere under *root*.

    Walk order is sorted per level, so the result is stable for a given
    tree.  Matching looks at names only.
    """
    if not os.path.isdir(root):
        raise NotADirectoryError(f"Root directory not found: {root}")

    pairs: list[DirectoryPair] = []
    for current, dirs, _files in os.walk(root):
        dirs.sort()
        for name in dirs:
            if name.endswith(ENC_SUFFIX):
                pairs.append(DirectoryPair.from_encrypted(os.path.join(current, name)))
    return pairs


# ── Bulk cipher runner ───────────────────────────────────────────────────────

def _ensure_parent_directory(path: str) -> None:
    parent = os.path.dirname(path)
    if parent:
        os.makedirs(parent, exist_ok=True)


def _file_entries(source_dir: str, dest_dir: str) -> list[tuple[str, str]]:
    """Map every file under *source_dir* to its mirror under *dest_dir*.

    The destination subtree is skipped when it lies inside the source.
    """
    if not os.path.isdir(source_dir):
        return []

    dest_abs = os.path.abspath(dest_dir)
    entries: list[tuple[str, str]] = []
    for root, dirs, files in os.walk(source_dir):
        dirs[:] = sorted(
            d for d in dirs if os.path.abspath(os.path.join(root, d)) != dest_abs
        )
        for fname in sorted(files):
            fp = os.path.join(root, fname)
            rel = os.path.relpath(fp, source_dir)
            entries.append((fp, os.path.join(dest_dir, rel)))
    return entries


def process_pair(
    pair: DirectoryPair,
    direction: Direction,
    keys: KeyPaths,
    *,
    continue_on_error: bool = False,
) -> BatchResult:
    """Encrypt ``pair.path`` into ``pair.encrypted_path`` or the reverse.

    By default the first failing file aborts the batch.  With
    *continue_on_error* the failure is recorded in the result and the
    remaining files are still processed.
    """
    if direction == "encrypt":
        source_dir, dest_dir, label = pair.path, pair.encrypted_path, "Encrypting"
    else:
        source_dir, dest_dir, label = pair.encrypted_path, pair.path, "Decrypting"

    result = BatchResult(pairs=1)
    for input_path, output_path in _file_entries(source_dir, dest_dir):
        _log(f"[{label}] [{input_path}] -> [{output_path}]")
        try:
            _ensure_parent_directory(output_path)
            if direction == "encrypt":
                encrypt_file(
                    input_path,
                    output_path,
                    keys.public_path,
                    True,
                    True,
                    signing_key_path=keys.private_path,
                )
            else:
                decrypt_file(
                    input_path,
                    output_path,
                    keys.private_path,
                    "",
                    verify_key_path=keys.public_path,
                    require_signature=True,
                )
        except (CipherOperationFailure, OSError) as exc:
            if not continue_on_error:
                raise
            _log(f"[Failed] [{input_path}]: {exc}")
            result.failures.append((input_path, exc))
            continue
        result.processed += 1
    return result


def _run_all(
    root: str,
    direction: Direction,
    keys: KeyPaths,
    *,
    continue_on_error: bool = False,
    verbose: bool = False,
) -> BatchResult:
    _log("Listing matched pattern directories...")
    _log("--------------------------------------")
    pairs = find_directory_pairs(root)

    total = BatchResult()
    for pair in pairs:
        if verbose:
            _log(f"Pair: {pair.path} <-> {pair.encrypted_path}")
        total.merge(
            process_pair(pair, direction, keys, continue_on_error=continue_on_error)
        )

    if verbose:
        _log(f"Done: {total.processed} file(s) across {total.pairs} pair(s).")
    return total


def encrypt_all(
    root: str,
    keys: KeyPaths,
    *,
    continue_on_error: bool = False,
    verbose: bool = False,
) -> BatchResult:
    """Encrypt every plaintext directory under *root* into its ``.enc`` twin."""
    return _run_all(
        root, "encrypt", keys, continue_on_error=continue_on_error, verbose=verbose
    )


def decrypt_all(
    root: str,
    keys: KeyPaths,
    *,
    continue_on_error: bool = False,
    verbose: bool = False,
) -> BatchResult:
    """Decrypt every ``.enc`` directory under *root* back to plaintext."""
    return _run_all(
        root, "decrypt", keys, continue_on_error=continue_on_error, verbose=verbose
    )


# ── Argument parser ──────────────────────────────────────────────────────────

_COMMAND_ALIASES = {"pgp": "keygen", "enc": "encrypt", "dec": "decrypt"}


class _ArgumentParser(argparse.ArgumentParser):
    """Raise :class:`ArgumentParseFailure` instead of exiting on bad input."""

    def error(self, message: str) -> None:  # type: ignore[override]
        raise ArgumentParseFailure(message)


def build_parser() -> argparse.ArgumentParser:
    """Construct the CLI argument parser."""

    # Shared flags inherited by all subcommands.
    shared = argparse.ArgumentParser(add_help=False)
    shared.add_argument(
        "-v",
        "--verbose",
        action="store_true",
        help="Show key paths, matched pairs, and a summary.",
    )

    key_path = argparse.ArgumentParser(add_help=False)
    key_path.add_argument(
        "-p",
        "--path",
        default="",
        help="Key pair base path (default: $DIRENC_KEY_PATH or ~/.dir-enc).",
    )

    root = argparse.ArgumentParser(add_help=False)
    root.add_argument(
        "-d",
        "--root",
        default=".",
        help="Directory to scan for *.enc twins (default: current directory).",
    )

    bulk = argparse.ArgumentParser(add_help=False)
    bulk.add_argument(
        "-k",
        "--keep-going",
        action="store_true",
        help="Continue past files that fail and report them at the end.",
    )

    from dir_enc import __version__

    parser = _ArgumentParser(
        prog="direnc",
        description=(
            "Encrypt X/ into its X.enc/ twin, or decrypt X.enc/ back into X/, "
            "for every twin below a root directory."
        ),
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog=(
            "examples:\n"
            "  %(prog)s keygen\n"
            "  %(prog)s encrypt -d ~/notes -v\n"
            "  %(prog)s decrypt -p ~/keys/work\n"
            "  %(prog)s list\n"
            "  %(prog)s            (same as: decrypt)\n"
        ),
    )
    parser.add_argument(
        "-V",
        "--version",
        action="version",
        version=f"%(prog)s {__version__}",
    )
    sub = parser.add_subparsers(dest="command", required=True)

    sub.add_parser(
        "keygen",
        aliases=["pgp"],
        parents=[shared, key_path],
        help="Create the key pair.",
    )
    sub.add_parser(
        "encrypt",
        aliases=["enc"],
        parents=[shared, key_path, root, bulk],
        help="Encrypt directories that have a matching .enc twin.",
    )
    sub.add_parser(
        "decrypt",
        aliases=["dec"],
        parents=[shared, key_path, root, bulk],
        help="Decrypt .enc directories back to plaintext.",
    )
    sub.add_parser(
        "list",
        parents=[shared, root],
        help="Show matched directory pairs without touching files.",
    )

    return parser


def _debug_enabled() -> bool:
    return os.environ.get(DEBUG_ENV, "").lower() in {"1", "true", "yes", "on"}


# ── Entry point ──────────────────────────────────────────────────────────────

def main(argv: list[str] | None = None) -> int:
    if argv is None:
        argv = sys.argv[1:]
    parser = build_parser()

    try:
        args = parser.parse_args(argv or ["decrypt"])
    except ArgumentParseFailure as exc:
        if _debug_enabled():
            raise
        parser.print_usage(sys.stderr)
        _log(f"Could not parse arguments: {exc}")
        return 2

    command = _COMMAND_ALIASES.get(args.command, args.command)
    verbose: bool = args.verbose

    try:
        if command == "list":
            for pair in find_directory_pairs(args.root):
                print(f"{pair.path} <-> {pair.encrypted_path}")
            return 0

        keys = locate_keys(args.path, check_existence=(command != "keygen"))
        if verbose:
            _log(f"Private key: {keys.private_path}")
            _log(f"Public key:  {keys.public_path}")

        if command == "keygen":
            create_key_pair(keys)
            return 0

        runner = encrypt_all if command == "encrypt" else decrypt_all
        result = runner(
            args.root,
            keys,
            continue_on_error=args.keep_going,
            verbose=verbose,
        )
    except KeyMaterialConflict as exc:
        _log(str(exc))
        return 0
    except (DirEncError, OSError) as exc:
        _log(f"Error: {exc}")
        return 1

    if result.failures:
        _log(f"{len(result.failures)} file(s) failed:")
        for path, exc in result.failures:
            _log(f"  {path}: {exc}")
        return 1
    return 0


if __name__ == "__main__":
    sys.exit(main())
