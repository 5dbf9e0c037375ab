"""Recover an existing build id from a pipeline start conflict message.

When a pipeline is already running remotely the build service answers the
start call with code 409 and a message such as::

    pipeline is running, id: 4521, please wait

The contract is: the first run of digits that directly follows ``id:`` and
optional whitespace. Anything else is not a recoverable conflict.
"""

from __future__ import annotations

import re
from typing import Any, Optional

CONFLICT_CODE = "409"

_BUILD_ID_PATTERN = re.compile(r"\bid:\s*(\d+)")


def parse_conflict_build_id(message: Optional[str]) -> Optional[int]:
    if not message:
        return None
    match = _BUILD_ID_PATTERN.search(message)
    if not match:
        return None
    return int(match.group(1))


def is_conflict(code: Any) -> bool:
    return code is not None and str(code) == CONFLICT_CODE


def parse_build_id(value: Any) -> Optional[int]:
    """Coerce a `buildId` field to int; None for anything that is not a whole number."""
    if isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, str) and value.strip().isdigit():
        return int(value.strip())
    return None
