"""Sortable identifier generation from a ``%``-token pattern.

Default pattern ``%y%m%d-%T%RRR`` yields ids such as ``260109-02F7K9M``.

Tokens
------
- ``%y`` ``%m`` ``%d``  two-digit year, month, day
- ``%j``                three-digit day of year
- ``%T``                seconds since midnight, 4 base-32 characters
- ``%R``                one random base-32 character (``%RRR`` = three)
- ``%%``                a literal ``%``

Patterns are parsed up front so an unknown token fails before any id is
generated.
"""

from __future__ import annotations

import logging
import random
import re
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from queuestack.errors import IdExhaustedError, InvalidPatternError

logger = logging.getLogger(__name__)

DEFAULT_PATTERN = "%y%m%d-%T%RRR"
MAX_ATTEMPTS = 100

#: Crockford base-32 alphabet (no I, L, O, U)
ALPHABET = "0123456789ABCDEFGHJKMNPQRSTVWXYZ"


def encode_base32(value: int, width: int) -> str:
    """Encode *value* most-significant digit first, zero-padded to *width*."""
    if value < 0:
        raise ValueError("value must be non-negative")
    chars = []
    for _ in range(width):
        chars.append(ALPHABET[value % 32])
        value //= 32
    return "".join(reversed(chars))


# ---------------------------------------------------------------------------
# Pattern parsing
# ---------------------------------------------------------------------------


@dataclass(frozen=True)
class Token:
    kind: str  # "literal", "y", "m", "d", "j", "T", "R"
    value: str = ""
    count: int = 1


def parse_pattern(pattern: str) -> list[Token]:
    """Split *pattern* into tokens, raising :class:`InvalidPatternError` early."""
    tokens: list[Token] = []
    literal: list[str] = []
    i = 0
    while i < len(pattern):
        ch = pattern[i]
        if ch != "%":
            literal.append(ch)
            i += 1
            continue
        if i + 1 >= len(pattern):
            raise InvalidPatternError(pattern, "")
        code = pattern[i + 1]
        i += 2
        if code == "%":
            literal.append("%")
            continue
        if code not in "ymdjTR":
            raise InvalidPatternError(pattern, code)
        if literal:
            tokens.append(Token("literal", "".join(literal)))
            literal = []
        if code == "R":
            count = 1
            while i < len(pattern) and pattern[i] == "R":
                count += 1
                i += 1
            tokens.append(Token("R", count=count))
        else:
            tokens.append(Token(code))
    if literal:
        tokens.append(Token("literal", "".join(literal)))
    return tokens


# ---------------------------------------------------------------------------
# Generation
# ---------------------------------------------------------------------------


def _expand(token: Token, now: datetime, rng: random.Random) -> str:
    if token.kind == "literal":
        return token.value
    if token.kind == "y":
        return f"{now.year % 100:02d}"
    if token.kind == "m":
        return f"{now.month:02d}"
    if token.kind == "d":
        return f"{now.day:02d}"
    if token.kind == "j":
        return f"{now.timetuple().tm_yday:03d}"
    if token.kind == "T":
        seconds = now.hour * 3600 + now.minute * 60 + now.second
        return encode_base32(seconds, 4)
    return "".join(rng.choice(ALPHABET) for _ in range(token.count))


def generate(pattern: str, now: datetime, rng: random.Random | None = None) -> str:
    """Expand *pattern* at instant *now*.

    Only ``%R`` tokens consume randomness, so two calls at the same instant
    differ only in their random characters.
    """
    rng = rng or random.SystemRandom()
    return "".join(_expand(tok, now, rng) for tok in parse_pattern(pattern))


def generate_unique(
    pattern: str,
    now: datetime,
    exists: Callable[[str], bool],
    *,
    max_attempts: int = MAX_ATTEMPTS,
    rng: random.Random | None = None,
) -> str:
    """Generate ids until ``exists(candidate)`` is false.

    Raises :class:`IdExhaustedError` after *max_attempts* collisions.
    """
    tokens = parse_pattern(pattern)
    rng = rng or random.SystemRandom()
    for attempt in range(1, max_attempts + 1):
        candidate = "".join(_expand(tok, now, rng) for tok in tokens)
        if not exists(candidate):
            return candidate
        logger.debug("id collision on %s (attempt %d)", candidate, attempt)
    raise IdExhaustedError(pattern, max_attempts)


def id_regex(pattern: str) -> re.Pattern[str]:
    """Compile a regex matching ids produced by *pattern*."""
    char = f"[{ALPHABET}]"
    parts = []
    for tok in parse_pattern(pattern):
        if tok.kind == "literal":
            parts.append(re.escape(tok.value))
        elif tok.kind in "ymd":
            parts.append(r"\d{2}")
        elif tok.kind == "j":
            parts.append(r"\d{3}")
        elif tok.kind == "T":
            parts.append(f"{char}{{4}}")
        else:
            parts.append(f"{char}{{{tok.count}}}")
    return re.compile("^(" + "".join(parts) + r")(?=-|\.md$|$)")


def extract_id(filename: str, pattern: str | None = None) -> str | None:
    """Recover the id prefix from an item filename such as ``260109-02F7K9M-fix-bug.md``.

    When *pattern* is given and the name matches it, the pattern decides the
    id's extent. Otherwise the id is the leading run of hyphen-separated
    segments without lowercase letters (slugs are always lowercase), and it
    must contain a digit so names like ``README.md`` are not mistaken for ids.
    """
    if pattern:
        m = id_regex(pattern).match(filename)
        if m:
            return m.group(1)
    stem = filename[:-3] if filename.endswith(".md") else filename
    id_parts: list[str] = []
    for segment in stem.split("-"):
        if not segment or any(c.islower() for c in segment):
            break
        id_parts.append(segment)
    item_id = "-".join(id_parts)
    return item_id if any(c.isdigit() for c in item_id) else None
