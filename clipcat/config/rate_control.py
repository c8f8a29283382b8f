"""Helpers for bitrate/byte-size value parsing and display."""

from __future__ import annotations

from dataclasses import dataclass
import re
from typing import Any, Dict

_VALUE_PATTERN = re.compile(r"^(?P<number>\d+(?:\.\d+)?)(?P<suffix>[A-Za-z]*)$")
_RATE_SUFFIX_MULTIPLIERS: Dict[str, float] = {
    "": 1.0,
    "bps": 1.0,
    "k": 1_000.0,
    "kbps": 1_000.0,
    "m": 1_000_000.0,
    "mbps": 1_000_000.0,
}
# Decimal units: a "10MB" upload limit means 10,000,000 bytes.
_SIZE_SUFFIX_MULTIPLIERS: Dict[str, float] = {
    "": 1.0,
    "b": 1.0,
    "k": 1_000.0,
    "kb": 1_000.0,
    "m": 1_000_000.0,
    "mb": 1_000_000.0,
    "g": 1_000_000_000.0,
    "gb": 1_000_000_000.0,
}


@dataclass(frozen=True)
class ParsedValue:
    raw: str
    value: float


def _format_float(value: float) -> str:
    return f"{value:.3f}".rstrip("0").rstrip(".")


def format_bps_human(bps: int) -> str:
    if bps >= 1_000_000:
        return f"{_format_float(bps / 1_000_000)} Mbps"
    if bps >= 1_000:
        return f"{_format_float(bps / 1_000)} kbps"
    return f"{bps} bps"


def format_size_human(size_bytes: int) -> str:
    if size_bytes >= 1_000_000:
        return f"{_format_float(size_bytes / 1_000_000)} MB"
    if size_bytes >= 1_000:
        return f"{_format_float(size_bytes / 1_000)} kB"
    return f"{size_bytes} B"


def _parse_with_suffix(raw_value: Any, multipliers: Dict[str, float], kind: str, hint: str) -> ParsedValue:
    text = str(raw_value).strip()
    if not text:
        raise ValueError(f"{kind} value cannot be empty.")

    compact = text.replace(" ", "")
    match = _VALUE_PATTERN.fullmatch(compact)
    if not match:
        raise ValueError(f"Invalid {kind} value '{text}'. {hint}")

    number = float(match.group("number"))
    suffix = match.group("suffix").lower()
    if suffix not in multipliers:
        raise ValueError(f"Unsupported {kind} suffix '{suffix}' in '{text}'. {hint}")

    value = number * multipliers[suffix]
    if value <= 0:
        raise ValueError(f"{kind.capitalize()} must be > 0 (got '{text}').")
    return ParsedValue(raw=text, value=value)


def parse_rate_value(raw_value: Any) -> ParsedValue:
    return _parse_with_suffix(
        raw_value,
        _RATE_SUFFIX_MULTIPLIERS,
        "rate",
        "Use numeric bps or suffixes like k, M, kbps, Mbps.",
    )


def parse_size_value(raw_value: Any) -> ParsedValue:
    return _parse_with_suffix(
        raw_value,
        _SIZE_SUFFIX_MULTIPLIERS,
        "size",
        "Use bytes or suffixes like kB, MB, GB.",
    )


def parse_rate_bps(raw_value: Any) -> int:
    if isinstance(raw_value, int) and not isinstance(raw_value, bool):
        if raw_value <= 0:
            raise ValueError(f"Rate must be > 0 (got {raw_value}).")
        return raw_value
    return max(1, int(round(parse_rate_value(raw_value).value)))


def parse_size_bytes(raw_value: Any) -> int:
    if isinstance(raw_value, int) and not isinstance(raw_value, bool):
        if raw_value <= 0:
            raise ValueError(f"Size must be > 0 (got {raw_value}).")
        return raw_value
    return max(1, int(round(parse_size_value(raw_value).value)))
