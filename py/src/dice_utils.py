# Utility functions.
import logging
import os
import typing

import dice_config
from dotenv import load_dotenv

log = logging.getLogger(__name__)

_environment_loaded = False


# Apply environment variables from a `.env` file, if present.
# Done once, the first time a setting is read, rather than on import.
def load_environment():
    global _environment_loaded
    if not _environment_loaded:
        load_dotenv()
        _environment_loaded = True


# Integer division rounding toward zero, so -1 / 2 is 0 rather than -1.
def trunc_div(x: int, y: int) -> int:
    quotient = abs(x) // abs(y)
    if (x < 0) != (y < 0):
        return -quotient
    return quotient


# Get the maximum number of operand pairs a single probability computation may
# enumerate, or None for no limit.
def get_probability_loop_limit() -> typing.Optional[int]:
    load_environment()
    raw = os.getenv(dice_config.PROBABILITY_LOOP_LIMIT_ENV)
    if raw is None or raw.strip() == "":
        return dice_config.DEFAULT_PROBABILITY_LOOP_LIMIT
    try:
        limit = int(raw)
    except ValueError as err:
        raise ValueError(
            f"{dice_config.PROBABILITY_LOOP_LIMIT_ENV} must be an integer, got {raw!r}"
        ) from err
    if limit < 0:
        raise ValueError(
            f"{dice_config.PROBABILITY_LOOP_LIMIT_ENV} must not be negative ({limit})"
        )
    return limit


# Show `source` with a pointer under the character at `position`.
# Tabs before the position are kept so the pointer lines up in terminals.
def point_at(source: str, position: int) -> str:
    position = max(0, min(position, len(source)))
    padding = "".join(c if c == "\t" else " " for c in source[:position])
    return f"{source}\n{padding}{dice_config.DIAGNOSTIC_POINTER}"
