"""Human-readable formatting helpers for CLI messages."""

from __future__ import annotations


def human_duration(seconds: float) -> str:
    # Simple duration formatter: "850ms", "2s 40ms", "3m 5s", "1h 2m".
    ms = int(round(seconds * 1000))
    if ms < 1000:
        return f"{ms}ms"
    secs, ms = divmod(ms, 1000)
    if secs < 60:
        return f"{secs}s {ms}ms" if ms else f"{secs}s"
    mins, secs = divmod(secs, 60)
    if mins < 60:
        return f"{mins}m {secs}s" if secs else f"{mins}m"
    hours, mins = divmod(mins, 60)
    return f"{hours}h {mins}m" if mins else f"{hours}h"


def plural(count: int, singular: str, plural_form: str) -> str:
    return singular if count == 1 else plural_form


def with_line_start(text: str, line_start: str) -> str:
    """Prefix every line of ``text`` with ``line_start``."""
    return "\n".join(f"{line_start} {line}" for line in text.split("\n"))
