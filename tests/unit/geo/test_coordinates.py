"""Tests for osmify.geo.coordinates and osmify.geo.precision."""

from __future__ import annotations

import pytest

from osmify.errors import ErrorCode, OsmifyCoordinateError
from osmify.geo import (
    CoordinatePrecision,
    Coordinates,
    clamp_latitude,
    wrap_longitude,
)


class TestRangeHelpers:
    def test_clamp_latitude_inside_range_unchanged(self):
        assert clamp_latitude(45.5) == 45.5

    def test_clamp_latitude_caps_both_ends(self):
        assert clamp_latitude(91.0) == 90.0
        assert clamp_latitude(-123.0) == -90.0

    def test_wrap_longitude_inside_range_unchanged(self):
        assert wrap_longitude(179.0) == 179.0
        assert wrap_longitude(180.0) == 180.0
        assert wrap_longitude(-180.0) == -180.0

    def test_wrap_longitude_past_antimeridian(self):
        assert wrap_longitude(190.0) == pytest.approx(-170.0)
        assert wrap_longitude(-190.0) == pytest.approx(170.0)

    def test_wrap_longitude_full_turns(self):
        assert wrap_longitude(370.0) == pytest.approx(10.0)


class TestCoordinates:
    def test_from_value_accepts_bounds(self):
        c = Coordinates.from_value(-90.0, 180.0)
        assert c.as_tuple() == (-90.0, 180.0)

    def test_from_value_rejects_latitude(self):
        with pytest.raises(OsmifyCoordinateError) as exc_info:
            Coordinates.from_value(90.5, 0.0)
        assert exc_info.value.code == ErrorCode.COORDINATE_ERROR
        assert exc_info.value.context["axis"] == "latitude"
        assert exc_info.value.context["value"] == 90.5

    def test_from_value_rejects_longitude(self):
        with pytest.raises(OsmifyCoordinateError) as exc_info:
            Coordinates.from_value(0.0, -180.1)
        assert exc_info.value.context["axis"] == "longitude"

    def test_from_clamped_normalizes(self):
        c = Coordinates.from_clamped(100.0, 200.0)
        assert c.lat == 90.0
        assert c.lon == pytest.approx(-160.0)

    def test_addition_clamps(self):
        c = Coordinates(80.0, 170.0) + Coordinates(20.0, 20.0)
        assert c.lat == 90.0
        assert c.lon == pytest.approx(-170.0)

    def test_subtraction(self):
        c = Coordinates(10.0, 10.0) - Coordinates(2.5, 12.5)
        assert c.as_tuple() == (7.5, -2.5)

    def test_scalar_multiplication_clamps(self):
        assert (Coordinates(10.0, -20.0) * 2).as_tuple() == (20.0, -40.0)
        c = Coordinates(60.0, 100.0) * 2
        assert c.lat == 90.0
        assert c.lon == pytest.approx(-160.0)

    def test_scalar_division(self):
        assert (Coordinates(10.0, -20.0) / 4).as_tuple() == (2.5, -5.0)

    def test_division_by_zero(self):
        with pytest.raises(ZeroDivisionError):
            Coordinates(1.0, 1.0) / 0

    @pytest.mark.parametrize(
        ("a", "b", "expected"),
        [
            ((1.0, 1.0), (2.0, 2.0), -1),
            ((1.0, 2.0), (2.0, 2.0), -1),
            ((2.0, 1.0), (2.0, 2.0), -1),
            ((2.0, 2.0), (2.0, 2.0), 0),
            ((3.0, 2.0), (2.0, 2.0), 1),
            ((3.0, 3.0), (2.0, 2.0), 1),
            ((1.0, 3.0), (2.0, 2.0), None),
            ((3.0, 1.0), (2.0, 2.0), None),
        ],
    )
    def test_partial_cmp(self, a, b, expected):
        assert Coordinates(*a).partial_cmp(Coordinates(*b)) == expected

    def test_comparison_operators(self):
        sw, ne = Coordinates(1.0, 1.0), Coordinates(2.0, 2.0)
        assert sw < ne and sw <= ne
        assert ne > sw and ne >= sw
        assert sw <= Coordinates(1.0, 1.0) and sw >= Coordinates(1.0, 1.0)

    def test_unordered_points_compare_false_both_ways(self):
        nw, se = Coordinates(2.0, 1.0), Coordinates(1.0, 2.0)
        assert not (nw < se or nw > se or nw <= se or nw >= se)

    def test_comparison_with_other_types(self):
        with pytest.raises(TypeError):
            Coordinates(1.0, 1.0) < (2.0, 2.0)  # noqa: B015

    def test_str_uses_hemispheres(self):
        assert str(Coordinates(12.5, -3.25)) == "12.5 °N 3.25 °W"
        assert str(Coordinates(-1.0, 2.0)) == "1.0 °S 2.0 °E"

    def test_frozen(self):
        c = Coordinates(1.0, 2.0)
        with pytest.raises(AttributeError):
            c.lat = 3.0  # type: ignore[misc]


class TestCoordinatePrecision:
    def test_double_is_identity(self):
        assert CoordinatePrecision.DOUBLE.quantize(51.123456789) == 51.123456789

    def test_single_rounds_to_binary32(self):
        value = 51.123456789
        quantized = CoordinatePrecision.SINGLE.quantize(value)
        assert quantized != value
        assert quantized == pytest.approx(value, abs=1e-5)
        # Idempotent.
        assert CoordinatePrecision.SINGLE.quantize(quantized) == quantized

    def test_format_strips_trailing_zeros(self):
        assert CoordinatePrecision.DOUBLE.format(51.5) == "51.5"
        assert CoordinatePrecision.DOUBLE.format(10.0) == "10"

    def test_format_limits_to_seven_decimals(self):
        assert CoordinatePrecision.DOUBLE.format(1.123456789) == "1.1234568"

    def test_format_negative_zero(self):
        assert CoordinatePrecision.DOUBLE.format(-0.0) == "0"
        assert CoordinatePrecision.DOUBLE.format(-0.00000001) == "0"

    def test_values_match_config_literals(self):
        assert CoordinatePrecision("single") is CoordinatePrecision.SINGLE
        assert CoordinatePrecision("double") is CoordinatePrecision.DOUBLE
