"""
procurement_engines.batch_code -- Sequential receipt batch codes.

Responsibility:
    Allocate the next batch code ``<yy>/P<n>``: ``n`` is one more than the
    largest ``P<digits>`` suffix found in any existing code (of any year),
    ``yy`` is the current two-digit year.

Architecture position:
    Engines -- pure calculation layer.  The current date is passed in by
    the caller (from a Clock); the engine never reads the time itself.

Invariants enforced:
    - Pure: the same codes and date always give the same result.
    - Monotonic over the input: the result's number exceeds every number
      already present.

Non-goals:
    - No uniqueness check against concurrent allocation.  Two callers
      working from the same stale snapshot receive the same code.
"""

from __future__ import annotations

import re
from collections.abc import Iterable
from datetime import date

from procurement_engines.tracer import traced_engine


def year_suffix(today: date) -> str:
    return f"{today.year % 100:02d}"


def batch_number(code: str | None, prefix: str = "P") -> int:
    """Numeric suffix of a batch code, 0 when it has none."""
    if not code or prefix not in code:
        return 0
    match = re.search(re.escape(prefix) + r"(\d+)", code)
    return int(match.group(1)) if match else 0


@traced_engine("batch_code", "1.0", fingerprint_fields=("today", "prefix"))
def next_batch_code(
    batch_codes: Iterable[str | None],
    *,
    today: date,
    prefix: str = "P",
) -> str:
    """Next batch code after every code in ``batch_codes``."""
    numbers = [n for n in (batch_number(code, prefix) for code in batch_codes) if n > 0]
    highest = max(numbers, default=0)
    return f"{year_suffix(today)}/{prefix}{highest + 1}"
