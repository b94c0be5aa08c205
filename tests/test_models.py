"""Tests for the store and location models."""

from __future__ import annotations

import pytest
from pydantic import ValidationError

from geopresence.models import LocationErrorKind, LocationFix, StatusRecord

# ------------------------------------------------------------------
# StatusRecord
# ------------------------------------------------------------------


class TestStatusRecord:
    def test_store_payload_is_flat_camel_case(self) -> None:
        record = StatusRecord(
            at_target=False,
            latitude=40.744,
            longitude=-74.0062,
            distance_meters=200,
            sampled_at_epoch_millis=1_767_225_600_000,
        )

        assert record.to_store_payload() == {
            "atTarget": False,
            "latitude": 40.744,
            "longitude": -74.0062,
            "distanceMeters": 200,
            "sampledAtEpochMillis": 1_767_225_600_000,
        }

    def test_parses_store_value(self) -> None:
        record = StatusRecord.from_store(
            {
                "atTarget": True,
                "latitude": 40.742352,
                "longitude": -74.00621,
                "distanceMeters": 3,
                "sampledAtEpochMillis": 1_767_225_600_000,
                "serverTimestamp": 1_767_225_600_456,
            }
        )

        assert record is not None
        assert record.at_target is True
        assert record.distance_meters == 3
        assert record.server_timestamp == 1_767_225_600_456
        assert record.has_coordinates

    def test_absent_value_means_no_record(self) -> None:
        assert StatusRecord.from_store(None) is None
        assert StatusRecord.from_store({}) is None

    def test_non_mapping_is_rejected(self) -> None:
        with pytest.raises(ValueError):
            StatusRecord.from_store("not a record")

    def test_sentinels_and_missing_fields_default(self) -> None:
        record = StatusRecord.from_store({"atTarget": False, "latitude": "--", "distanceMeters": ""})

        assert record is not None
        assert record.latitude is None
        assert record.distance_meters is None
        assert not record.has_coordinates

    def test_distance_is_rounded(self) -> None:
        record = StatusRecord.model_validate({"distanceMeters": 199.7})
        assert record.distance_meters == 200

    def test_sample_time_in_seconds_is_normalized(self) -> None:
        record = StatusRecord.model_validate({"sampledAtEpochMillis": 1_767_225_600})
        assert record.sampled_at_epoch_millis == 1_767_225_600_000

    def test_invalid_flag_fails_validation(self) -> None:
        with pytest.raises(ValidationError):
            StatusRecord.from_store({"atTarget": "perhaps"})

    def test_frozen(self) -> None:
        record = StatusRecord(at_target=True)
        with pytest.raises(ValidationError):
            record.at_target = False  # type: ignore[misc]


# ------------------------------------------------------------------
# LocationFix
# ------------------------------------------------------------------


class TestLocationFix:
    def test_short_aliases(self) -> None:
        fix = LocationFix.model_validate({"lat": "40.5", "lng": -74.25, "accuracy": 12, "timestamp": 1_700_000_000})

        assert fix.latitude == 40.5
        assert fix.longitude == -74.25
        assert fix.accuracy_meters == 12.0
        assert fix.captured_at_epoch_millis == 1_700_000_000_000

    def test_nested_coords(self) -> None:
        fix = LocationFix.model_validate({"coords": {"latitude": 1.5, "longitude": 2.5}, "timestamp": 1_700_000_000_123})

        assert (fix.latitude, fix.longitude) == (1.5, 2.5)
        assert fix.captured_at_epoch_millis == 1_700_000_000_123

    def test_missing_coordinates_fail(self) -> None:
        with pytest.raises(ValidationError):
            LocationFix.model_validate({"lat": "--"})

    def test_age(self) -> None:
        fix = LocationFix(latitude=0.0, longitude=0.0, captured_at_epoch_millis=1_700_000_000_000)
        assert fix.age_millis(1_700_000_030_000) == 30_000


def test_every_error_kind_has_a_message() -> None:
    for kind in LocationErrorKind:
        assert kind.message
    assert LocationErrorKind.TIMEOUT.message == "Location request timed out"
    assert LocationErrorKind.POSITION_UNAVAILABLE.message == "Location information is unavailable"
