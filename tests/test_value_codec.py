import uuid
from datetime import date, datetime

import pytest

from app.core.exceptions import ValidationError
from app.db.schema import Characteristic, CharacteristicType, FileRecord
from app.services.characteristic_value import (
    VALUE_KINDS,
    ValueKind,
    file_location,
    is_file_type,
    normalize_value,
    snapshot_files,
    split_existing_files,
    validate_definition,
)


def _characteristic(type_, options=None, units=None, name="Field"):
    return Characteristic(
        id=uuid.uuid4(),
        entity_id=uuid.uuid4(),
        name=name,
        type=type_,
        options=options,
        units=units,
    )


def test_every_type_has_a_value_kind():
    assert set(VALUE_KINDS) == set(CharacteristicType)
    assert len(CharacteristicType) == 18
    assert is_file_type(CharacteristicType.FILE)
    assert VALUE_KINDS[CharacteristicType.DATE_HOUR] is ValueKind.DATE_TIME


# ==========================================================================
# Definitions
# ==========================================================================


@pytest.mark.parametrize("type_", [
    CharacteristicType.SELECT,
    CharacteristicType.RADIO,
    CharacteristicType.MULTI_SELECT,
    CharacteristicType.CHECKBOX,
])
def test_option_types_need_two_options(type_):
    with pytest.raises(ValidationError) as exc:
        validate_definition(type_, ["Only"], None)
    assert exc.value.details["field"] == "options"

    with pytest.raises(ValidationError):
        validate_definition(type_, None, None)


def test_options_are_trimmed_and_deduplicated_before_counting():
    with pytest.raises(ValidationError):
        validate_definition(CharacteristicType.SELECT, ["S", " S ", "  "], None)

    options, units = validate_definition(CharacteristicType.SELECT, [" S", "M ", "S", "L"], None)
    assert options == ["S", "M", "L"]
    assert units is None


def test_scalar_types_reject_options():
    with pytest.raises(ValidationError):
        validate_definition(CharacteristicType.TEXT, ["a", "b"], None)


def test_units_only_on_numeric_types():
    assert validate_definition(CharacteristicType.NUMBER, None, " kg ") == (None, "kg")
    assert validate_definition(CharacteristicType.FLOAT, None, "  ") == (None, None)

    with pytest.raises(ValidationError) as exc:
        validate_definition(CharacteristicType.TEXT, None, "kg")
    assert exc.value.details["field"] == "units"


# ==========================================================================
# Values
# ==========================================================================


def test_text_values():
    c = _characteristic(CharacteristicType.TEXT)
    assert normalize_value(c, "  oak ") == "oak"
    assert normalize_value(c, "") is None
    assert normalize_value(c, None) is None

    with pytest.raises(ValidationError):
        normalize_value(c, 12)


def test_link_and_email_values():
    link = _characteristic(CharacteristicType.LINK, name="Datasheet")
    assert normalize_value(link, "https://example.com/sheet.pdf") == "https://example.com/sheet.pdf"
    with pytest.raises(ValidationError) as exc:
        normalize_value(link, "not a url")
    assert "Datasheet" in exc.value.message

    email = _characteristic(CharacteristicType.EMAIL)
    assert normalize_value(email, "buyer@acme-supplies.com") == "buyer@acme-supplies.com"
    with pytest.raises(ValidationError):
        normalize_value(email, "buyer-at-acme")


def test_number_values():
    c = _characteristic(CharacteristicType.NUMBER, units="kg")
    assert normalize_value(c, 42) == 42
    assert normalize_value(c, "42") == 42
    assert normalize_value(c, "") is None

    for bad in ("heavy", 4.5, True):
        with pytest.raises(ValidationError):
            normalize_value(c, bad)


def test_float_values():
    c = _characteristic(CharacteristicType.FLOAT)
    assert normalize_value(c, "2.5") == 2.5
    assert normalize_value(c, 3) == 3.0

    with pytest.raises(ValidationError):
        normalize_value(c, "nan")


@pytest.mark.parametrize("raw, expected", [
    (True, True),
    ("true", True),
    (False, False),
    ("false", False),
    ("yes", False),
    (1, False),
    (None, False),
])
def test_boolean_values(raw, expected):
    c = _characteristic(CharacteristicType.BOOLEAN)
    assert normalize_value(c, raw) is expected


def test_date_values():
    c = _characteristic(CharacteristicType.DATE)
    assert normalize_value(c, {"date": "2024-01-31"}) == {"date": "2024-01-31"}
    assert normalize_value(c, date(2024, 1, 31)) == {"date": "2024-01-31"}
    assert normalize_value(c, {"date": ""}) is None

    with pytest.raises(ValidationError):
        normalize_value(c, "31/31/2024")

    hour = _characteristic(CharacteristicType.DATE_HOUR)
    assert normalize_value(hour, datetime(2024, 1, 31, 9, 30)) == {"date": "2024-01-31T09:30:00"}


def test_range_values():
    c = _characteristic(CharacteristicType.DATE_RANGE)
    assert normalize_value(c, {"from": "2024-01-01", "to": "2024-02-01"}) == {
        "from": "2024-01-01", "to": "2024-02-01"}
    assert normalize_value(c, {"from": "2024-01-01", "to": None}) is None

    with pytest.raises(ValidationError):
        normalize_value(c, "2024-01-01")


def test_single_option_values():
    c = _characteristic(CharacteristicType.SELECT, options=["S", "M", "L"])
    assert normalize_value(c, "M") == ["M"]
    assert normalize_value(c, ["L"]) == ["L"]
    assert normalize_value(c, []) == []

    with pytest.raises(ValidationError):
        normalize_value(c, "XL")
    with pytest.raises(ValidationError):
        normalize_value(c, ["S", "M"])


def test_multi_select_keeps_input_order_without_duplicates():
    c = _characteristic(CharacteristicType.MULTI_SELECT, options=["Red", "Green", "Blue"])
    assert normalize_value(c, ["Blue", "Red", "Blue"]) == ["Blue", "Red"]


def test_checkbox_accepts_lists_and_mappings():
    c = _characteristic(CharacteristicType.CHECKBOX, options=["Food safe", "Waterproof", "Recycled"])
    assert normalize_value(c, ["Recycled", "Food safe"]) == ["Food safe", "Recycled"]
    assert normalize_value(c, {"Waterproof": True, "Recycled": False}) == ["Waterproof"]
    assert normalize_value(c, [{"Recycled": "true"}, {"Food safe": True}]) == ["Food safe", "Recycled"]

    with pytest.raises(ValidationError):
        normalize_value(c, {"Fireproof": True})


def test_multi_text_values():
    c = _characteristic(CharacteristicType.MULTI_TEXT)
    entries = [{"title": "Care", "text": "Oil yearly"}]
    assert normalize_value(c, {"multiText": entries}) == {"multiText": entries}
    assert normalize_value(c, entries) == {"multiText": entries}

    with pytest.raises(ValidationError):
        normalize_value(c, "Oil yearly")


def test_file_values_carry_no_scalar():
    c = _characteristic(CharacteristicType.FILE)
    assert normalize_value(c, "ignored") is None


# ==========================================================================
# Files
# ==========================================================================


def test_file_helpers():
    material_id, characteristic_id = uuid.uuid4(), uuid.uuid4()
    assert file_location(material_id, characteristic_id) == (
        f"materials/{material_id}/characteristics/{characteristic_id}")

    first = FileRecord(name="a.pdf", type="application/pdf", path="x/a.pdf")
    second = FileRecord(name="b.png", type="image/png", path="x/b.png")

    kept, detached = split_existing_files([first, second], [first.id, uuid.uuid4()])
    assert kept == [second]
    assert detached == [first]

    assert snapshot_files([second]) == {
        "file": [{"type": "image/png", "name": "b.png", "path": "x/b.png"}]}
    assert snapshot_files([]) == {"file": []}
