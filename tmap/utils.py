"""
Utility functions for tmap.
"""
from typing import Any, Dict, Optional, Tuple


def get_without_prefix(value: str, prefix: str) -> str:
    """Strip ``prefix`` from ``value`` if present."""
    return value[len(prefix):] if value.startswith(prefix) else value


def get_basename(title: str, separator: str = "/") -> str:
    """The last segment of a hierarchical title."""
    return title.rsplit(separator, 1)[-1]


def get_properties_by_prefix(data: Dict[str, Any], prefix: str, remove_prefix: bool = False) -> Dict[str, Any]:
    """Select the entries of ``data`` whose key starts with ``prefix``."""
    return {
        (key[len(prefix):] if remove_prefix else key): value
        for key, value in data.items()
        if key.startswith(prefix)
    }


def is_true(value: Any, default: bool = False) -> bool:
    """Interpret a stored field value as a boolean."""
    if value is None:
        return default
    if isinstance(value, str):
        return value.strip().lower() in ("true", "yes", "1", "on")
    return bool(value)


def parse_version(version: Optional[str]) -> Tuple[int, ...]:
    """
    Parse a dotted version string into a comparable tuple.

    Missing or malformed versions are treated as 0.0.0.
    """
    if not version:
        return (0, 0, 0)
    parts = []
    for part in str(version).strip().lstrip("v").split("."):
        digits = "".join(ch for ch in part if ch.isdigit())
        parts.append(int(digits) if digits else 0)
    while len(parts) < 3:
        parts.append(0)
    return tuple(parts)


def check_versions(version_a: Optional[str], version_b: Optional[str]) -> bool:
    """Return True if version A is greater than or equal to version B."""
    return parse_version(version_a) >= parse_version(version_b)
