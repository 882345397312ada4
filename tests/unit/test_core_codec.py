"""Unit tests for the binary vault codec."""

import base64
import json
from dataclasses import replace

import pytest
from envvault.core import codec
from envvault.core.exceptions import FormatError, TruncatedError, UnsupportedVersionError
from envvault.core.models import KdfParams, SecretEntry, VaultHeader
from envvault.security.crypto import compute_integrity_tag

INTEGRITY_KEY = b"i" * 32


@pytest.fixture
def header():
    return VaultHeader(
        salt=b"s" * 32,
        kdf=KdfParams(8192, 1, 1),
        environment="dev",
        created_at="2024-01-01T00:00:00+00:00",
    )


@pytest.fixture
def entries():
    return [
        SecretEntry("DB_URL", b"n" * 12, b"c" * 40, "t0", "t1"),
        SecretEntry("API_KEY", b"m" * 12, b"d" * 16, "t2", "t3"),
    ]


def _header_record(**changes):
    record = {
        "kdf_memory_kib": 8192,
        "kdf_iterations": 1,
        "kdf_parallelism": 1,
        "salt": base64.b64encode(b"s" * 32).decode(),
        "format_flags": 0,
    }
    record.update(changes)
    return json.dumps(record).encode()


# ==============================================================================
# Tests: Header
# ==============================================================================

def test_header_roundtrip(header):
    assert codec.decode_header(codec.encode_header(header)) == header


def test_header_encoding_is_canonical(header):
    raw = codec.encode_header(header)
    assert raw == codec.encode_header(codec.decode_header(raw))
    assert b" " not in raw
    assert list(json.loads(raw)) == sorted(json.loads(raw))


def test_keyfile_flag_follows_hash(header):
    with_keyfile = replace(header, keyfile_hash=b"h" * 32)
    decoded = codec.decode_header(codec.encode_header(with_keyfile))
    assert decoded.format_flags & codec.FLAG_KEYFILE
    assert decoded.requires_keyfile


def test_optional_fields_may_be_absent():
    decoded = codec.decode_header(_header_record())
    assert decoded.environment is None
    assert decoded.keyfile_hash is None


@pytest.mark.parametrize(
    "raw",
    [
        b"not json",
        b"[1, 2]",
        _header_record(unexpected=1),
        _header_record(kdf_iterations="3"),
        _header_record(kdf_memory_kib=16),
        _header_record(salt="!!!"),
        _header_record(salt=base64.b64encode(b"short").decode()),
        _header_record(format_flags=0x80),
        _header_record(format_flags=1),
        _header_record(keyfile_hash=base64.b64encode(b"h" * 32).decode()),
        _header_record(environment=5),
    ],
)
def test_malformed_header_is_format_error(raw):
    with pytest.raises(FormatError):
        codec.decode_header(raw)


def test_missing_header_field():
    record = json.loads(_header_record())
    del record["salt"]
    with pytest.raises(FormatError, match="missing header fields: salt"):
        codec.decode_header(json.dumps(record).encode())


# ==============================================================================
# Tests: Secrets block
# ==============================================================================

def test_secrets_roundtrip_preserves_order(entries):
    assert list(codec.decode_secrets(codec.encode_secrets(entries))) == entries


def test_empty_secrets_block():
    raw = codec.encode_secrets([])
    assert raw == b"\x00\x00\x00\x00"
    assert codec.decode_secrets(raw) == ()


def test_secret_count_past_end_is_truncated(entries):
    raw = bytearray(codec.encode_secrets(entries))
    raw[3] = 3
    with pytest.raises(TruncatedError):
        codec.decode_secrets(bytes(raw))


def test_ciphertext_length_past_end_is_truncated(entries):
    raw = codec.encode_secrets(entries)
    with pytest.raises(TruncatedError):
        codec.decode_secrets(raw[:-1])


def test_trailing_bytes_rejected(entries):
    with pytest.raises(FormatError, match="trailing"):
        codec.decode_secrets(codec.encode_secrets(entries) + b"\x00")


def test_duplicate_names_rejected(entries):
    with pytest.raises(FormatError, match="duplicate"):
        codec.decode_secrets(codec.encode_secrets([entries[0], entries[0]]))


def test_invalid_name_rejected():
    bad = SecretEntry("BAD NAME", b"n" * 12, b"c" * 16, "t", "t")
    with pytest.raises(FormatError):
        codec.decode_secrets(codec.encode_secrets([bad]))


def test_encode_rejects_wrong_nonce_size():
    with pytest.raises(FormatError, match="nonce"):
        codec.encode_secrets([SecretEntry("A", b"n" * 8, b"c" * 16, "t", "t")])


# ==============================================================================
# Tests: Whole file
# ==============================================================================

def test_encode_decode_file(header, entries):
    data = codec.encode(header, entries, INTEGRITY_KEY)
    assert data.startswith(codec.MAGIC + bytes([codec.CURRENT_VERSION]))
    decoded = codec.decode(data)
    assert decoded.header == header
    assert list(decoded.secrets) == entries
    assert decoded.tag == compute_integrity_tag(INTEGRITY_KEY, decoded.header_bytes, decoded.secrets_bytes)


def test_split_layout(header, entries):
    data = codec.encode(header, entries, INTEGRITY_KEY)
    frame = codec.split(data)
    assert frame.version == 1
    assert len(frame.tag) == 32
    assert codec.assemble(frame.header_bytes, frame.secrets_bytes, frame.tag) == data


def test_bad_magic_is_format_error(header):
    data = codec.encode(header, [], INTEGRITY_KEY)
    with pytest.raises(FormatError, match="magic"):
        codec.split(b"XXXX" + data[4:])


def test_empty_input_is_format_error():
    with pytest.raises(FormatError):
        codec.split(b"")


def test_newer_version_is_unsupported(header):
    data = bytearray(codec.encode(header, [], INTEGRITY_KEY))
    data[4] = 2
    with pytest.raises(UnsupportedVersionError) as exc_info:
        codec.split(bytes(data))
    assert exc_info.value.version == 2
    assert exc_info.value.supported == 1


def test_version_zero_is_format_error(header):
    data = bytearray(codec.encode(header, [], INTEGRITY_KEY))
    data[4] = 0
    with pytest.raises(FormatError):
        codec.split(bytes(data))


def test_prefix_only_is_truncated():
    with pytest.raises(TruncatedError):
        codec.split(codec.MAGIC + b"\x01\x00")


def test_header_len_past_end_is_truncated(header):
    data = bytearray(codec.encode(header, [], INTEGRITY_KEY))
    data[5:9] = (len(data)).to_bytes(4, "big")
    with pytest.raises(TruncatedError):
        codec.split(bytes(data))


def test_every_truncation_is_rejected(header, entries):
    """Cutting the file anywhere never yields a partial vault."""
    data = codec.encode(header, entries, INTEGRITY_KEY)
    for cut in range(0, len(data), 7):
        with pytest.raises(FormatError):
            codec.decode(data[:cut])


def test_assemble_checks_tag_length():
    with pytest.raises(FormatError):
        codec.assemble(b"{}", b"\x00" * 4, b"short")
