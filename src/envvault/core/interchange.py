"""
Plaintext interchange: .env and JSON to and from name -> value mappings

The vault itself only exposes export_plaintext()/import_plaintext(); the
text formats live here so the core never parses environment files.
"""

from __future__ import annotations

import io
import json
import logging
from pathlib import Path
from typing import Dict, Mapping, Optional, Union

from dotenv import dotenv_values

from .exceptions import InterchangeError

logger = logging.getLogger(__name__)

FORMATS = ("env", "json")

# characters that force a value into double quotes on export
_QUOTE_TRIGGERS = (" ", "#", '"', "'", "\n", "\r", "\t", "$")

# escapes python-dotenv decodes inside double quotes
_ESCAPES = (("\\", "\\\\"), ('"', '\\"'), ("\n", "\\n"), ("\r", "\\r"), ("\t", "\\t"))


def _text(value: Union[str, bytes]) -> str:
    if isinstance(value, (bytes, bytearray)):
        try:
            return bytes(value).decode("utf-8")
        except UnicodeDecodeError:
            raise InterchangeError("secret value is not valid UTF-8 text") from None
    return value


def detect_format(path: Path | str) -> str:
    """``json`` for ``*.json`` files, ``env`` for everything else."""
    return "json" if Path(path).suffix.lower() == ".json" else "env"


def parse_dotenv(text: str) -> Dict[str, str]:
    """Parse .env content; keys without a value (no ``=``) are skipped."""
    values = dotenv_values(stream=io.StringIO(text), interpolate=False)
    return {key: value for key, value in values.items() if value is not None}


def parse_json(text: str) -> Dict[str, str]:
    """Parse a flat JSON object; non-string values keep their JSON representation."""
    try:
        data = json.loads(text)
    except ValueError as e:
        raise InterchangeError(f"invalid JSON: {e}") from None
    if not isinstance(data, dict):
        raise InterchangeError("JSON import must be an object of name -> value")
    return {key: value if isinstance(value, str) else json.dumps(value) for key, value in data.items()}


def read_file(path: Path | str, fmt: Optional[str] = None) -> Dict[str, str]:
    """Read secrets from a .env or JSON file."""
    path = Path(path)
    fmt = fmt or detect_format(path)
    if fmt not in FORMATS:
        raise InterchangeError(f"unknown import format '{fmt}'; use 'env' or 'json'")
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as e:
        raise InterchangeError(f"failed to read {path}: {e}") from e
    secrets = parse_json(text) if fmt == "json" else parse_dotenv(text)
    logger.debug("read %d entries from %s (%s)", len(secrets), path, fmt)
    return secrets


def format_dotenv(secrets: Mapping[str, Union[str, bytes]]) -> str:
    """Render ``NAME=value`` lines, sorted by name; risky values are double-quoted."""
    lines = []
    for name in sorted(secrets):
        value = _text(secrets[name])
        if value == "" or value != value.strip() or any(ch in value for ch in _QUOTE_TRIGGERS):
            escaped = value
            for raw, escape in _ESCAPES:
                escaped = escaped.replace(raw, escape)
            lines.append(f'{name}="{escaped}"')
        else:
            lines.append(f"{name}={value}")
    return "".join(line + "\n" for line in lines)


def format_json(secrets: Mapping[str, Union[str, bytes]]) -> str:
    return json.dumps({name: _text(secrets[name]) for name in sorted(secrets)}, indent=2, ensure_ascii=False)


def render(secrets: Mapping[str, Union[str, bytes]], fmt: str = "env") -> str:
    if fmt == "env":
        return format_dotenv(secrets)
    if fmt == "json":
        return format_json(secrets)
    raise InterchangeError(f"unknown export format '{fmt}'; use 'env' or 'json'")
