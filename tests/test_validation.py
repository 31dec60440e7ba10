"""Tests for booking input validation."""

from datetime import date, time

import pytest

from app.booking.errors import ValidationError
from app.booking.validation import (
    normalize_email,
    normalize_gender,
    normalize_mobile,
    parse_date,
    parse_enum,
    parse_time_range,
    require_fields,
    validate_name,
    validate_patient_details,
)
from app.models.scheduling import AppointmentType


class TestMobileNumbers:
    """Tests for mobile number normalization."""

    @pytest.mark.parametrize(
        "raw,expected",
        [
            ("9876543210", "9876543210"),
            ("98765 43210", "9876543210"),
            ("+91 9876543210", "+919876543210"),
            ("+91-9876543210", "+91-9876543210"),
            ("+1 98765 43210", "+19876543210"),
        ],
    )
    def test_valid_numbers(self, raw: str, expected: str) -> None:
        assert normalize_mobile(raw) == expected

    @pytest.mark.parametrize("raw", ["12345", "98765432101", "+9198765abcde", "", None])
    def test_invalid_numbers(self, raw) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_mobile(raw)
        assert exc_info.value.code == "INVALID_MOBILE"


class TestContactFields:
    """Tests for names, emails and gender."""

    def test_name_is_stripped(self) -> None:
        assert validate_name("  Priya ") == "Priya"

    def test_short_name(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            validate_name(" P ")
        assert exc_info.value.code == "INVALID_NAME"

    def test_blank_email_is_none(self) -> None:
        assert normalize_email("") is None
        assert normalize_email(None) is None

    def test_invalid_email(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_email("priya@example")
        assert exc_info.value.code == "INVALID_EMAIL"

    def test_gender_is_case_insensitive(self) -> None:
        assert normalize_gender("MALE") == "male"

    def test_unknown_gender(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            normalize_gender("robot")
        assert exc_info.value.code == "INVALID_GENDER"


class TestDatesAndTimes:
    """Tests for date and time range parsing."""

    def test_parse_date(self) -> None:
        assert parse_date("2030-03-10") == date(2030, 3, 10)
        assert parse_date(date(2030, 3, 10)) == date(2030, 3, 10)

    def test_missing_date(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_date(None)
        assert exc_info.value.code == "MISSING_FIELDS"

    def test_time_range(self) -> None:
        assert parse_time_range("09:00", "09:30") == (time(9, 0), time(9, 30))

    def test_end_before_start(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            parse_time_range("09:30", "09:00")
        assert exc_info.value.code == "INVALID_TIME_RANGE"

    def test_enum_parsing(self) -> None:
        assert parse_enum(AppointmentType, "Follow-Up", "appointment_type") == (
            AppointmentType.FOLLOW_UP
        )


class TestPatientDetails:
    """Tests for the fields required to register a patient."""

    def test_required_fields_are_listed(self) -> None:
        with pytest.raises(ValidationError) as exc_info:
            require_fields({"full_name": "Priya", "mobile": " "}, ["full_name", "mobile", "state"])
        assert exc_info.value.message == "Missing required fields: mobile, state"

    def test_details_are_normalized(self) -> None:
        cleaned = validate_patient_details(
            {
                "full_name": " Priya Sharma ",
                "mobile": "98765 43210",
                "gender": "Female",
                "state": " Kerala ",
                "email": "",
                "city": "Kochi",
            }
        )

        assert cleaned == {
            "full_name": "Priya Sharma",
            "mobile": "9876543210",
            "gender": "female",
            "state": "Kerala",
            "email": None,
            "city": "Kochi",
        }
