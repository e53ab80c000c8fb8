"""
Due-date expressions.

A due date is given either as an absolute timestamp (``YYYY-MM-DD`` or
``YYYY-MM-DD HH:MM:SS``) or as an offset from now built from
``<integer><unit>`` pairs:

    y  years     M  months    w  weeks    d  days
    h  hours     m  minutes   s  seconds

e.g. ``2d``, ``1w3h``, ``3h30m``, ``1y2M``. ``M`` and ``m`` are different units.
Anything left over after the pairs are removed must itself be a clock
duration such as ``0`` or ``500µs``.
"""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass, replace
from datetime import datetime, timedelta
from decimal import Decimal
from typing import Iterable, List, Optional, Tuple

from dateutil.relativedelta import relativedelta

from .models import DATE_FORMAT, TIMESTAMP_FORMAT

logger = logging.getLogger(__name__)

UNIT_PATTERN = re.compile(r"([0-9]+)\s*(y|M|w|d|h|m|s)")

# Quantities must fit a signed 64-bit integer.
MAX_QUANTITY = 2**63 - 1

ABSOLUTE_FORMATS = (TIMESTAMP_FORMAT, DATE_FORMAT)

_CLOCK_SECONDS = {"h": 3600, "m": 60, "s": 1}

# Clock-duration units in microseconds; longer spellings first so "ms" wins over "m".
_CLOCK_PART = re.compile(r"([0-9]*(?:\.[0-9]*)?)(ns|us|µs|μs|ms|s|m|h)")
_CLOCK_MICROS = {
    "ns": Decimal("0.001"),
    "us": Decimal(1),
    "µs": Decimal(1),
    "μs": Decimal(1),
    "ms": Decimal(1000),
    "s": Decimal(1_000_000),
    "m": Decimal(60_000_000),
    "h": Decimal(3_600_000_000),
}

Token = Tuple[int, str]


class DurationError(ValueError):
    """Base class for due-date expressions that cannot be resolved."""


class EmptyDurationError(DurationError):
    pass


class UnrecognizedDurationError(DurationError):
    pass


class UnparsedResidueError(DurationError):
    def __init__(self, residue: str) -> None:
        super().__init__(f"invalid or unparsed components in duration: '{residue}'")
        self.residue = residue


class InvalidNumberError(DurationError):
    pass


@dataclass(frozen=True)
class Offset:
    """Calendar part (years, months, days) plus a clock part."""

    years: int = 0
    months: int = 0
    days: int = 0
    clock: timedelta = timedelta(0)

    def apply(self, now: datetime) -> datetime:
        # Day overflow rolls into the following month (Jan 31 + 1M lands in March),
        # so the day is added to the first of the target month unclipped.
        try:
            first = now.replace(day=1) + relativedelta(years=self.years, months=self.months)
            return first + timedelta(days=now.day - 1 + self.days) + self.clock
        except (OverflowError, ValueError) as e:
            raise InvalidNumberError(f"offset moves the date out of range: {e}") from e


def _quantity(raw: str) -> int:
    value = int(raw)
    if value > MAX_QUANTITY:
        raise InvalidNumberError(f"invalid number '{raw}' in duration")
    return value


def tokenize(text: str) -> Tuple[List[Token], str]:
    """
    Split ``text`` into (quantity, unit) pairs and the trimmed remainder.

    Each matched substring is removed once from the remainder.
    """
    tokens: List[Token] = []
    remainder = text
    for m in UNIT_PATTERN.finditer(text):
        tokens.append((_quantity(m.group(1)), m.group(2)))
        remainder = remainder.replace(m.group(0), "", 1)
    return tokens, remainder.strip()


def accumulate(tokens: Iterable[Token]) -> Offset:
    years = months = days = 0
    clock = timedelta(0)
    for qty, unit in tokens:
        if unit == "y":
            years += qty
        elif unit == "M":
            months += qty
        elif unit == "w":
            days += qty * 7
        elif unit == "d":
            days += qty
        else:
            try:
                clock += timedelta(seconds=qty * _CLOCK_SECONDS[unit])
            except OverflowError as e:
                raise InvalidNumberError(f"{qty}{unit} is too large") from e
    return Offset(years=years, months=months, days=days, clock=clock)


def parse_clock_duration(text: str) -> timedelta:
    """
    Parse a pure clock duration such as ``1h2m``, ``30s``, ``1.5h`` or ``-90m``.

    Accepts an optional sign and one or more ``<decimal><unit>`` groups with
    units ns, us (µs), ms, s, m, h. The bare string ``0`` is zero.
    Raises ValueError when the text is not a clock duration.
    """
    s = text
    sign = 1
    if s[:1] in ("+", "-"):
        sign = -1 if s[0] == "-" else 1
        s = s[1:]
    if s == "0":
        return timedelta(0)
    if not s:
        raise ValueError(f"invalid clock duration '{text}'")

    total = Decimal(0)
    pos = 0
    while pos < len(s):
        m = _CLOCK_PART.match(s, pos)
        if not m or m.group(1) in ("", "."):
            raise ValueError(f"invalid clock duration '{text}'")
        total += Decimal(m.group(1)) * _CLOCK_MICROS[m.group(2)]
        pos = m.end()

    return timedelta(microseconds=sign * int(total))


def parse(text: str, now: datetime) -> datetime:
    """Resolve a relative duration expression against ``now``."""
    if not text or not text.strip():
        raise EmptyDurationError("empty duration expression")

    tokens, remainder = tokenize(text)

    if not tokens:
        try:
            return now + parse_clock_duration(text.strip())
        except ValueError as e:
            raise UnrecognizedDurationError(
                f"'{text}' is not a recognized relative duration"
            ) from e
        except OverflowError as e:
            raise InvalidNumberError(f"duration '{text}' is out of range") from e

    offset = accumulate(tokens)
    if remainder:
        try:
            extra = parse_clock_duration(remainder)
        except ValueError as e:
            raise UnparsedResidueError(remainder) from e
        except OverflowError as e:
            raise InvalidNumberError(f"duration '{remainder}' is out of range") from e
        offset = replace(offset, clock=offset.clock + extra)

    return offset.apply(now)


def parse_absolute(text: str) -> datetime:
    for fmt in ABSOLUTE_FORMATS:
        try:
            return datetime.strptime(text, fmt)
        except ValueError:
            continue
    raise ValueError(f"'{text}' matches none of {', '.join(ABSOLUTE_FORMATS)}")


def resolve_due(text: str, now: datetime) -> Optional[datetime]:
    """
    Turn a --due argument into an absolute due date, truncated to seconds.

    Relative expressions are tried first, then the absolute formats. When
    nothing matches a warning is logged and None is returned so the task can
    still be created without a due date.
    """
    try:
        due = parse(text, now)
    except DurationError as exc:
        logger.debug("'%s' is not a relative duration: %s", text, exc)
        try:
            due = parse_absolute(text)
        except ValueError:
            logger.warning(
                "Invalid due date format: '%s'. Use 'YYYY-MM-DD', 'YYYY-MM-DD HH:MM:SS', "
                "or relative like '2d', '3h30m'. Task added without due date.",
                text,
            )
            return None
    return due.replace(microsecond=0)
