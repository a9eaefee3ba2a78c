from datetime import datetime, timezone

import pytest

from quickval.core.utils import (
    fnv1a_32,
    lower_median,
    normalize_address,
    parse_date,
    parse_float,
    parse_int,
    parse_location,
    parse_price,
    round_half_up,
    seeded_rand,
)


class TestParsePrice:
    @pytest.mark.parametrize("text,expected", [
        ("$1,250,000", 1_250_000),
        ("1.2m", 1_200_000),
        ("$850k", 850_000),
        ("1.1 million", 1_100_000),
        ("Offers over $950,000", 950_000),
        ("$1.5m - $1.6m", 1_500_000),
        ("1450000", 1_450_000),
        ("Call 0412 345 678, offers over $1.1m", 1_100_000),
    ])
    def test_price_strings(self, text, expected):
        assert parse_price(text) == expected

    @pytest.mark.parametrize("value", [
        None, "", "Contact agent", "Auction", "3 bed", 0, -5, True,
        "Contact agent 0412345678", "Call 0412 345 678", "Lot 4200 Pacific Hwy",
    ])
    def test_no_price_is_none_not_zero(self, value):
        assert parse_price(value) is None

    def test_numbers_pass_through(self):
        assert parse_price(750_000) == 750_000
        assert parse_price(750_000.4) == 750_000


class TestNumericFields:
    @pytest.mark.parametrize("value,expected", [(3, 3), ("3", 3), (" 2 ", 2), (3.0, 3), ("2.0", 2)])
    def test_room_counts(self, value, expected):
        assert parse_int(value) == expected

    @pytest.mark.parametrize("value", [None, "", "two", "3+", True, float("nan"), -1, [3], {"n": 3}])
    def test_unusable_counts_are_dropped(self, value):
        assert parse_int(value) is None

    def test_measurements(self):
        assert parse_float("420.5") == 420.5
        assert parse_float("1,012") == 1012.0
        assert parse_float(0.4) == 0.4
        assert parse_float("abc") is None
        assert parse_float(float("inf")) is None
        assert parse_float(False) is None


class TestParseDate:
    def test_iso_date_becomes_aware_utc(self):
        assert parse_date("2025-03-01") == datetime(2025, 3, 1, tzinfo=timezone.utc)

    def test_iso_with_zulu(self):
        assert parse_date("2024-03-01T10:00:00Z") == datetime(2024, 3, 1, 10, tzinfo=timezone.utc)

    def test_display_formats(self):
        assert parse_date("12 Mar 2024") == datetime(2024, 3, 12, tzinfo=timezone.utc)
        assert parse_date("01/02/2024") == datetime(2024, 2, 1, tzinfo=timezone.utc)

    @pytest.mark.parametrize("value", [None, "", "Recently", 12345])
    def test_unparseable(self, value):
        assert parse_date(value) is None


class TestStatsHelpers:
    def test_lower_median_odd(self):
        assert lower_median([300, 100, 200]) == 200

    def test_lower_median_even_takes_lower_middle(self):
        assert lower_median([100, 200, 300, 400]) == 200

    def test_lower_median_empty(self):
        assert lower_median([]) is None

    def test_round_half_up(self):
        assert round_half_up(2.5) == 3
        assert round_half_up(2.4999) == 2
        assert round_half_up(855_000.0) == 855_000


class TestParseLocation:
    def test_suburb_state_postcode(self):
        assert parse_location("Bondi, NSW 2026") == ("Bondi", "NSW", "2026", None)

    def test_street_address(self):
        assert parse_location("12 Smith St, Bondi NSW 2026") == ("Bondi", "NSW", "2026", "12 Smith St")

    def test_single_part(self):
        assert parse_location("Fitzroy VIC 3065") == ("Fitzroy", "VIC", "3065", None)

    def test_state_defaults_to_nsw(self):
        assert parse_location("Bondi") == ("Bondi", "NSW", None, None)


def test_normalize_address():
    assert normalize_address("  12  Smith   St ") == "12 smith st"


def test_seeded_rand_is_deterministic():
    seed = fnv1a_32("bondi|NSW|3")
    first = seeded_rand(seed, 4)
    assert first == seeded_rand(seed, 4)
    assert all(0 <= r < 1 for r in first)
    assert fnv1a_32("") == 0x811C9DC5
