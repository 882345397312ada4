"""Binary vault file codec.

File layout (all lengths big-endian):
- 4 bytes: magic b'EVLT'
- 1 byte: format version
- 4 bytes: header_len (unsigned int)
- header_len bytes: header, canonical JSON
- secrets block
- 32 bytes: HMAC-SHA256 over header bytes followed by secrets bytes

Secrets block:
- 4 bytes: entry count
- per entry: 4-byte meta_len, meta JSON {name, created_at, updated_at},
  12-byte nonce, 4-byte ct_len, ct_len bytes of ciphertext+GCM tag

Every declared length is checked against the bytes that remain before
anything is sliced or parsed.
"""

from __future__ import annotations

import base64
import binascii
import json
import struct
from dataclasses import dataclass
from typing import Any, Dict, Iterable, Optional, Tuple

from .exceptions import (
    FormatError,
    InvalidNameError,
    KeyDerivationError,
    TruncatedError,
    UnsupportedVersionError,
)
from .models import KdfParams, SecretEntry, VaultHeader, validate_secret_name
from ..security.crypto import INTEGRITY_TAG_LEN, NONCE_LEN, compute_integrity_tag
from ..security.kdf import KEY_LEN, SALT_LEN


MAGIC = b"EVLT"
CURRENT_VERSION = 1

PREFIX = struct.Struct(">4sBI")
LENGTH = struct.Struct(">I")

# format_flags bits
FLAG_KEYFILE = 0x01
KNOWN_FLAGS = FLAG_KEYFILE

REQUIRED_HEADER_KEYS = frozenset(
    {"kdf_memory_kib", "kdf_iterations", "kdf_parallelism", "salt", "format_flags"}
)
OPTIONAL_HEADER_KEYS = frozenset({"keyfile_hash", "environment", "created_at"})
RECOGNIZED_HEADER_KEYS = REQUIRED_HEADER_KEYS | OPTIONAL_HEADER_KEYS

SECRET_META_KEYS = frozenset({"name", "created_at", "updated_at"})


@dataclass(frozen=True)
class VaultFrame:
    """Raw byte ranges of a vault file, split but not interpreted."""

    version: int
    header_bytes: bytes
    secrets_bytes: bytes
    tag: bytes


@dataclass(frozen=True)
class DecodedVault:
    header: VaultHeader
    secrets: Tuple[SecretEntry, ...]
    header_bytes: bytes
    secrets_bytes: bytes
    tag: bytes


def _dumps(obj: Dict[str, Any]) -> bytes:
    return json.dumps(obj, sort_keys=True, separators=(",", ":"), ensure_ascii=True).encode("utf-8")


def _loads(raw: bytes, what: str) -> Dict[str, Any]:
    try:
        obj = json.loads(raw.decode("utf-8"))
    except (UnicodeDecodeError, ValueError) as e:
        raise FormatError(f"{what} is not valid JSON: {e}") from None
    if not isinstance(obj, dict):
        raise FormatError(f"{what} must be a JSON object")
    return obj


def _b64decode(value: Any, what: str, length: int) -> bytes:
    if not isinstance(value, str):
        raise FormatError(f"{what} must be a base64 string")
    try:
        raw = base64.b64decode(value.encode("ascii"), validate=True)
    except (binascii.Error, UnicodeEncodeError):
        raise FormatError(f"{what} is not valid base64") from None
    if len(raw) != length:
        raise FormatError(f"{what} must decode to {length} bytes, got {len(raw)}")
    return raw


def _int_field(obj: Dict[str, Any], key: str) -> int:
    value = obj[key]
    if not isinstance(value, int) or isinstance(value, bool):
        raise FormatError(f"header field '{key}' must be an integer")
    return value


def _optional_str(obj: Dict[str, Any], key: str) -> Optional[str]:
    value = obj.get(key)
    if value is not None and not isinstance(value, str):
        raise FormatError(f"header field '{key}' must be a string")
    return value


# ----------------------------------------------------------------------
# Header
# ----------------------------------------------------------------------


def encode_header(header: VaultHeader) -> bytes:
    flags = header.format_flags & ~FLAG_KEYFILE
    if header.keyfile_hash is not None:
        flags |= FLAG_KEYFILE
    record: Dict[str, Any] = {
        "kdf_memory_kib": header.kdf.memory_kib,
        "kdf_iterations": header.kdf.iterations,
        "kdf_parallelism": header.kdf.parallelism,
        "salt": base64.b64encode(header.salt).decode("ascii"),
        "format_flags": flags,
    }
    if header.keyfile_hash is not None:
        record["keyfile_hash"] = base64.b64encode(header.keyfile_hash).decode("ascii")
    if header.environment is not None:
        record["environment"] = header.environment
    if header.created_at is not None:
        record["created_at"] = header.created_at
    return _dumps(record)


def decode_header(raw: bytes) -> VaultHeader:
    """Parse header bytes; unknown or missing fields are a FormatError."""
    obj = _loads(raw, "header")

    unknown = set(obj) - RECOGNIZED_HEADER_KEYS
    if unknown:
        raise FormatError(f"unrecognized header fields: {', '.join(sorted(unknown))}")
    missing = REQUIRED_HEADER_KEYS - set(obj)
    if missing:
        raise FormatError(f"missing header fields: {', '.join(sorted(missing))}")

    try:
        kdf = KdfParams(
            memory_kib=_int_field(obj, "kdf_memory_kib"),
            iterations=_int_field(obj, "kdf_iterations"),
            parallelism=_int_field(obj, "kdf_parallelism"),
        ).validate()
    except KeyDerivationError as e:
        raise FormatError(f"invalid KDF parameters in header: {e}") from None

    flags = _int_field(obj, "format_flags")
    if flags < 0 or flags & ~KNOWN_FLAGS:
        raise FormatError(f"unknown format flags: {flags:#x}")

    keyfile_hash = None
    if obj.get("keyfile_hash") is not None:
        keyfile_hash = _b64decode(obj["keyfile_hash"], "keyfile_hash", KEY_LEN)
    if bool(flags & FLAG_KEYFILE) != (keyfile_hash is not None):
        raise FormatError("keyfile flag does not match keyfile_hash field")

    return VaultHeader(
        salt=_b64decode(obj["salt"], "salt", SALT_LEN),
        kdf=kdf,
        keyfile_hash=keyfile_hash,
        format_flags=flags,
        environment=_optional_str(obj, "environment"),
        created_at=_optional_str(obj, "created_at"),
    )


# ----------------------------------------------------------------------
# Secrets block
# ----------------------------------------------------------------------


def encode_secrets(entries: Iterable[SecretEntry]) -> bytes:
    entries = list(entries)
    out = bytearray(LENGTH.pack(len(entries)))
    for entry in entries:
        if len(entry.nonce) != NONCE_LEN:
            raise FormatError(f"nonce for '{entry.name}' must be {NONCE_LEN} bytes")
        meta = _dumps(
            {"name": entry.name, "created_at": entry.created_at, "updated_at": entry.updated_at}
        )
        out += LENGTH.pack(len(meta))
        out += meta
        out += entry.nonce
        out += LENGTH.pack(len(entry.ciphertext))
        out += entry.ciphertext
    return bytes(out)


class _Reader:
    """Bounds-checked cursor over a byte string."""

    def __init__(self, data: bytes):
        self.data = data
        self.offset = 0

    @property
    def remaining(self) -> int:
        return len(self.data) - self.offset

    def take(self, n: int, what: str) -> bytes:
        if n > self.remaining:
            raise TruncatedError(
                f"{what} declares {n} bytes but only {self.remaining} remain"
            )
        chunk = self.data[self.offset:self.offset + n]
        self.offset += n
        return chunk

    def length(self, what: str) -> int:
        (value,) = LENGTH.unpack(self.take(LENGTH.size, what))
        return value


def decode_secrets(raw: bytes) -> Tuple[SecretEntry, ...]:
    reader = _Reader(raw)
    count = reader.length("secret count")
    entries = []
    seen = set()
    for index in range(count):
        what = f"secret {index} metadata"
        meta = _loads(reader.take(reader.length(what), what), what)
        if set(meta) != SECRET_META_KEYS:
            raise FormatError(f"secret {index} metadata has unexpected fields")
        name = meta["name"]
        try:
            validate_secret_name(name)
        except InvalidNameError as e:
            raise FormatError(f"secret {index}: {e}") from None
        if name in seen:
            raise FormatError(f"duplicate secret name '{name}'")
        seen.add(name)
        for key in ("created_at", "updated_at"):
            if not isinstance(meta[key], str):
                raise FormatError(f"secret '{name}' field '{key}' must be a string")

        nonce = reader.take(NONCE_LEN, f"secret '{name}' nonce")
        what = f"secret '{name}' ciphertext"
        ciphertext = reader.take(reader.length(what), what)
        entries.append(
            SecretEntry(
                name=name,
                nonce=nonce,
                ciphertext=ciphertext,
                created_at=meta["created_at"],
                updated_at=meta["updated_at"],
            )
        )
    if reader.remaining:
        raise FormatError(f"{reader.remaining} unexpected trailing bytes in secrets block")
    return tuple(entries)


# ----------------------------------------------------------------------
# Whole file
# ----------------------------------------------------------------------


def split(data: bytes) -> VaultFrame:
    """Validate magic, version and lengths and cut the file into its byte ranges."""
    data = bytes(data)
    if data[:len(MAGIC)] != MAGIC:
        raise FormatError("missing EVLT magic bytes")
    if len(data) < PREFIX.size:
        raise TruncatedError("file too small to hold a vault prefix")

    _, version, header_len = PREFIX.unpack_from(data)
    if version == 0:
        raise FormatError("invalid vault format version 0")
    if version > CURRENT_VERSION:
        raise UnsupportedVersionError(version, CURRENT_VERSION)

    header_end = PREFIX.size + header_len
    if header_end + INTEGRITY_TAG_LEN > len(data):
        raise TruncatedError(
            f"header length {header_len} exceeds the {len(data) - PREFIX.size - INTEGRITY_TAG_LEN} "
            "bytes available"
        )
    secrets_end = len(data) - INTEGRITY_TAG_LEN
    return VaultFrame(
        version=version,
        header_bytes=data[PREFIX.size:header_end],
        secrets_bytes=data[header_end:secrets_end],
        tag=data[secrets_end:],
    )


def assemble(header_bytes: bytes, secrets_bytes: bytes, tag: bytes) -> bytes:
    if len(tag) != INTEGRITY_TAG_LEN:
        raise FormatError(f"integrity tag must be {INTEGRITY_TAG_LEN} bytes")
    out = bytearray(PREFIX.pack(MAGIC, CURRENT_VERSION, len(header_bytes)))
    out += header_bytes
    out += secrets_bytes
    out += tag
    return bytes(out)


def encode(header: VaultHeader, secrets: Iterable[SecretEntry], integrity_key: bytes) -> bytes:
    """Serialize a vault and seal it with the integrity tag."""
    header_bytes = encode_header(header)
    secrets_bytes = encode_secrets(secrets)
    tag = compute_integrity_tag(integrity_key, header_bytes, secrets_bytes)
    return assemble(header_bytes, secrets_bytes, tag)


def decode(data: bytes) -> DecodedVault:
    """Split and fully parse a vault file. The integrity tag is not checked here."""
    frame = split(data)
    return DecodedVault(
        header=decode_header(frame.header_bytes),
        secrets=decode_secrets(frame.secrets_bytes),
        header_bytes=frame.header_bytes,
        secrets_bytes=frame.secrets_bytes,
        tag=frame.tag,
    )
