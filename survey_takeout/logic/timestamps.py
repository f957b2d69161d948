"""UTC timestamp helper shared by writers."""

from __future__ import annotations

from datetime import datetime, timezone


def utc_now_iso() -> str:
    """RFC3339 UTC timestamp with microseconds and trailing 'Z'.

    Microseconds keep lexical order equal to chronological order for rows
    written in quick succession.
    """
    return datetime.now(timezone.utc).isoformat(timespec="microseconds").replace("+00:00", "Z")


__all__ = ["utc_now_iso"]
