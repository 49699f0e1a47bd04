"""
Tests: request-input helpers (app.utils.helpers).
"""

from datetime import datetime, timedelta, timezone

import pytest

from app.core.exceptions import ValidationError
from app.utils.helpers import as_utc, require_int


class TestRequireInt:
    @pytest.mark.parametrize("value, expected", [(12, 12), ("12", 12), ("007", 7)])
    def test_accepts_ints_and_digit_strings(self, value, expected):
        assert require_int({"actor_id": value}, "actor_id") == expected

    @pytest.mark.parametrize("value", [2.9, 2.0, True, False, "1.5", "-3", "abc", " 4", "²", [1]])
    def test_rejects_everything_else(self, value):
        with pytest.raises(ValidationError) as exc:
            require_int({"actor_id": value}, "actor_id")
        assert exc.value.details == {"actor_id": "invalid"}

    @pytest.mark.parametrize("data", [{}, {"actor_id": None}, {"actor_id": ""}, None])
    def test_missing_value_is_required(self, data):
        with pytest.raises(ValidationError) as exc:
            require_int(data, "actor_id")
        assert exc.value.details == {"actor_id": "required"}


class TestAsUtc:
    def test_naive_is_read_as_utc(self):
        naive = datetime(2026, 1, 5, 9, 30)
        assert as_utc(naive) == datetime(2026, 1, 5, 9, 30, tzinfo=timezone.utc)

    def test_offset_is_converted(self):
        plus_two = datetime(2026, 1, 5, 11, 30, tzinfo=timezone(timedelta(hours=2)))
        assert as_utc(plus_two).hour == 9

    def test_none_passes_through(self):
        assert as_utc(None) is None
