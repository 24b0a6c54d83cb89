"""Unit tests for queuestack.ids."""

import random
from datetime import datetime, timezone

import pytest

from queuestack.errors import IdExhaustedError, InvalidPatternError
from queuestack.ids import (
    ALPHABET,
    DEFAULT_PATTERN,
    encode_base32,
    extract_id,
    generate,
    generate_unique,
    parse_pattern,
)

NOW = datetime(2026, 1, 9, 10, 30, 0, tzinfo=timezone.utc)

# ---------------------------------------------------------------------------
# encode_base32
# ---------------------------------------------------------------------------


class TestEncodeBase32:
    def test_zero_is_padded(self):
        assert encode_base32(0, 4) == "0000"

    def test_width(self):
        assert encode_base32(1, 1) == "1"
        assert encode_base32(1, 4) == "0001"
        assert encode_base32(32, 4) == "0010"

    def test_most_significant_first(self):
        assert encode_base32(37800, 4) == "14X8"

    def test_last_second_of_day_fits(self):
        assert len(encode_base32(86399, 4)) == 4

    def test_alphabet_excludes_ambiguous_letters(self):
        assert len(ALPHABET) == 32
        for ch in "ILOU":
            assert ch not in ALPHABET


# ---------------------------------------------------------------------------
# parse_pattern
# ---------------------------------------------------------------------------


class TestParsePattern:
    def test_unknown_token_fails(self):
        with pytest.raises(InvalidPatternError) as exc_info:
            parse_pattern("%y-%q")
        assert exc_info.value.token == "q"

    def test_trailing_percent_fails(self):
        with pytest.raises(InvalidPatternError):
            parse_pattern("abc%")

    def test_random_run_is_one_token(self):
        tokens = parse_pattern("%RRR")
        assert len(tokens) == 1
        assert tokens[0].count == 3

    def test_literals_are_merged(self):
        tokens = parse_pattern("ab%%c")
        assert [t.value for t in tokens] == ["ab%c"]


# ---------------------------------------------------------------------------
# generate
# ---------------------------------------------------------------------------


class TestGenerate:
    def test_date_tokens(self):
        assert generate("%y%m%d", NOW) == "260109"

    def test_day_of_year(self):
        assert generate("%j", NOW) == "009"

    def test_time_token(self):
        assert generate("%y%m%d-%T", NOW) == "260109-14X8"

    def test_default_pattern_shape(self):
        value = generate(DEFAULT_PATTERN, NOW)
        assert len(value) == 14
        assert value.startswith("260109-14X8")
        assert all(c in ALPHABET for c in value[11:])

    def test_random_length(self):
        assert len(generate("%R", NOW)) == 1
        assert len(generate("%RR", NOW)) == 2
        assert len(generate("%RRR", NOW)) == 3

    def test_literal_passthrough(self):
        value = generate("prefix-%y-suffix", NOW)
        assert value == "prefix-26-suffix"

    def test_escaped_percent(self):
        assert generate("100%%", NOW) == "100%"

    def test_same_instant_differs_only_in_random_part(self):
        a = generate(DEFAULT_PATTERN, NOW, random.Random(1))
        b = generate(DEFAULT_PATTERN, NOW, random.Random(2))
        assert a[:11] == b[:11]

    def test_seeded_rng_is_deterministic(self):
        assert generate("%RRRR", NOW, random.Random(3)) == generate("%RRRR", NOW, random.Random(3))


# ---------------------------------------------------------------------------
# generate_unique
# ---------------------------------------------------------------------------


class TestGenerateUnique:
    def test_many_ids_are_distinct(self):
        taken: set[str] = set()
        rng = random.Random(11)
        for _ in range(200):
            taken.add(generate_unique("%RRR", NOW, taken.__contains__, rng=rng))
        assert len(taken) == 200

    def test_retries_on_collision(self):
        seen: list[str] = []

        def exists(candidate: str) -> bool:
            seen.append(candidate)
            return len(seen) < 3

        generate_unique("%RRRR", NOW, exists, rng=random.Random(0))
        assert len(seen) == 3

    def test_exhaustion(self):
        with pytest.raises(IdExhaustedError) as exc_info:
            generate_unique("fixed", NOW, lambda _: True, max_attempts=5)
        assert exc_info.value.attempts == 5

    def test_invalid_pattern_fails_before_checking(self):
        calls: list[str] = []
        with pytest.raises(InvalidPatternError):
            generate_unique("%Z", NOW, lambda c: calls.append(c) or False)
        assert calls == []


# ---------------------------------------------------------------------------
# extract_id
# ---------------------------------------------------------------------------


class TestExtractId:
    def test_with_pattern(self):
        assert extract_id("260109-0A2B3C4-fix-bug.md", DEFAULT_PATTERN) == "260109-0A2B3C4"

    def test_numeric_slug_with_pattern(self):
        assert extract_id("260109-0A2B3C4-123.md", DEFAULT_PATTERN) == "260109-0A2B3C4"

    def test_empty_slug(self):
        assert extract_id("260109-0A2B3C4.md", DEFAULT_PATTERN) == "260109-0A2B3C4"

    def test_fallback_for_other_patterns(self):
        assert extract_id("260101-AAA-title.md", DEFAULT_PATTERN) == "260101-AAA"
        assert extract_id("260109-0A2B3C4-fix-bug.md") == "260109-0A2B3C4"

    def test_no_id(self):
        assert extract_id("notes.md") is None

    def test_uppercase_name_without_digits(self):
        assert extract_id("README.md") is None
