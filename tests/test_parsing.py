import datetime as dt
import random

import pytest

from guestlist.parsing import (
    coerce_floors,
    format_arrival,
    format_floors,
    format_visit_date,
    normalize_arrival,
    normalize_visit_date,
    parse_floor_access,
    widest_range,
)


@pytest.mark.parametrize(
    "text, expected",
    [
        ("3,1,2", [1, 2, 3]),
        ("2-4,7", [2, 3, 4, 7]),
        ("5-3", []),
        ("abc,,2", [2]),
        ("0,-1,2", [2]),
        ("", []),
        ("   ", []),
        ("a-b,x", []),
        (" 2 - 4 , 7 ", [2, 3, 4, 7]),
        ("4,4,2-5,3", [2, 3, 4, 5]),
        ("7-7", [7]),
        ("2abc", [2]),
        ("+3", [3]),
        ("1-2-3", [1, 2]),
        ("1-", []),
    ],
)
def test_parse_floor_access(text, expected):
    assert parse_floor_access(text) == expected


def test_range_bounds_are_not_required_to_be_positive():
    # Single values must be positive, range members need not be.
    assert parse_floor_access("0-2") == [0, 1, 2]
    assert parse_floor_access("0") == []


def test_parse_matches_union_of_tokens():
    rng = random.Random(20250616)
    for _ in range(200):
        expected: set[int] = set()
        tokens = []
        for _ in range(rng.randint(1, 6)):
            if rng.random() < 0.5:
                start = rng.randint(1, 40)
                end = start + rng.randint(0, 5)
                tokens.append(f"{start}-{end}")
                expected.update(range(start, end + 1))
            else:
                floor = rng.randint(1, 60)
                tokens.append(str(floor))
                expected.add(floor)
        result = parse_floor_access(",".join(tokens))
        assert result == sorted(expected)
        assert all(a < b for a, b in zip(result, result[1:]))


@pytest.mark.parametrize("text", ["3,1,2", "2-4,7", "10-12, 1, 11", "abc,,2", "9"])
def test_parse_is_stable_when_reserialized(text):
    floors = parse_floor_access(text)
    assert parse_floor_access(",".join(str(f) for f in floors)) == floors


def test_coerce_floors_from_stored_values():
    assert coerce_floors(None) == ()
    assert coerce_floors([3, 1, 3]) == (1, 3)
    assert coerce_floors(["2", "1"]) == (1, 2)
    assert coerce_floors("2-4") == (2, 3, 4)


def test_format_floors():
    assert format_floors((2, 3, 7)) == "2, 3, 7"
    assert format_floors(()) == "Not specified"


def test_normalize_visit_date():
    assert normalize_visit_date("2025-06-16") == dt.date(2025, 6, 16)
    assert normalize_visit_date(dt.date(2025, 6, 16)) == dt.date(2025, 6, 16)
    with pytest.raises(ValueError):
        normalize_visit_date("16/06/2025")


def test_normalize_arrival_accepts_optional_seconds():
    assert normalize_arrival("9:05") == "09:05:00"
    assert normalize_arrival(" 14:30:15 ") == "14:30:15"
    assert normalize_arrival("") is None
    assert normalize_arrival(None) is None
    with pytest.raises(ValueError):
        normalize_arrival("25:00")
    with pytest.raises(ValueError):
        normalize_arrival("noon")


def test_format_arrival():
    assert format_arrival("14:30:00") == "2:30 PM"
    assert format_arrival("00:15") == "12:15 AM"
    assert format_arrival("12:00") == "12:00 PM"
    assert format_arrival(None) == "Not specified"


def test_format_arrival_keeps_unparseable_text():
    assert format_arrival("2:30 PM") == "2:30 PM"
    assert format_arrival(" after lunch ") == "after lunch"


def test_widest_range_counts_well_formed_ranges_only():
    assert widest_range("1-100000000") == 100000000
    assert widest_range("2-4,7,0-1") == 3
    assert widest_range("5-3,-1,9") == 0


def test_format_visit_date():
    assert format_visit_date(dt.date(2025, 6, 16)) == "Monday, June 16, 2025"
