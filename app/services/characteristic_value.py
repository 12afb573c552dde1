"""
Typed value codec.

Maps every CharacteristicType to a value kind, validates characteristic
definitions against their type, and normalizes raw material input into the
JSON shape stored on MaterialCharacteristic.value. No database access; file
bytes are handed to the blob store by the material service.
"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, Callable, Dict, Iterable, List, Mapping, Optional, Tuple

from pydantic import BaseModel, EmailStr, HttpUrl, TypeAdapter
from pydantic import ValidationError as PydanticValidationError

from app.core.exceptions import ValidationError
from app.db.schema import Characteristic, CharacteristicType, FileRecord


class ValueKind(str, Enum):
    TEXT = "text"
    LINK = "link"
    EMAIL = "email"
    NUMBER = "number"
    FLOAT = "float"
    BOOLEAN = "boolean"
    DATE = "date"
    DATE_TIME = "date_time"
    DATE_RANGE = "date_range"
    DATE_TIME_RANGE = "date_time_range"
    SINGLE_OPTION = "single_option"
    MULTI_OPTION = "multi_option"
    CHECKBOX = "checkbox"
    MULTI_TEXT = "multi_text"
    FILE = "file"


VALUE_KINDS: Dict[CharacteristicType, ValueKind] = {
    CharacteristicType.TEXT: ValueKind.TEXT,
    CharacteristicType.TEXTAREA: ValueKind.TEXT,
    CharacteristicType.LINK: ValueKind.LINK,
    CharacteristicType.EMAIL: ValueKind.EMAIL,
    CharacteristicType.NUMBER: ValueKind.NUMBER,
    CharacteristicType.FLOAT: ValueKind.FLOAT,
    CharacteristicType.BOOLEAN: ValueKind.BOOLEAN,
    CharacteristicType.DATE: ValueKind.DATE,
    CharacteristicType.DATE_HOUR: ValueKind.DATE_TIME,
    CharacteristicType.DATE_RANGE: ValueKind.DATE_RANGE,
    CharacteristicType.DATE_HOUR_RANGE: ValueKind.DATE_TIME_RANGE,
    CharacteristicType.SELECT: ValueKind.SINGLE_OPTION,
    CharacteristicType.RADIO: ValueKind.SINGLE_OPTION,
    CharacteristicType.MULTI_SELECT: ValueKind.MULTI_OPTION,
    CharacteristicType.CHECKBOX: ValueKind.CHECKBOX,
    CharacteristicType.MULTI_TEXT: ValueKind.MULTI_TEXT,
    CharacteristicType.MULTI_TEXT_AREA: ValueKind.MULTI_TEXT,
    CharacteristicType.FILE: ValueKind.FILE,
}

OPTION_TYPES = frozenset({
    CharacteristicType.SELECT,
    CharacteristicType.RADIO,
    CharacteristicType.MULTI_SELECT,
    CharacteristicType.CHECKBOX,
})
UNIT_TYPES = frozenset({CharacteristicType.NUMBER, CharacteristicType.FLOAT})
MIN_OPTIONS = 2

_email_adapter = TypeAdapter(EmailStr)
_url_adapter = TypeAdapter(HttpUrl)
_int_adapter = TypeAdapter(int)
_float_adapter = TypeAdapter(float)
_date_adapter = TypeAdapter(date)
_datetime_adapter = TypeAdapter(datetime)


class MultiTextEntry(BaseModel):
    title: str = ""
    text: str = ""


_multi_text_adapter = TypeAdapter(List[MultiTextEntry])


# ==========================================================================
# DEFINITIONS
# ==========================================================================


def validate_definition(
    characteristic_type: CharacteristicType,
    options: Optional[Iterable[str]],
    units: Optional[str],
) -> Tuple[Optional[List[str]], Optional[str]]:
    """
    Checks the type dependent shape of a characteristic definition.

    Returns the cleaned (options, units) pair: options trimmed, blanks and
    duplicates dropped, order kept.

    Raises:
        ValidationError: option based type with fewer than two options,
            options on a scalar type, or units on a non numeric type.
    """
    cleaned: List[str] = []
    for option in options or []:
        if not isinstance(option, str):
            raise ValidationError("Options must be strings.", field="options")
        option = option.strip()
        if option and option not in cleaned:
            cleaned.append(option)

    if characteristic_type in OPTION_TYPES:
        if len(cleaned) < MIN_OPTIONS:
            raise ValidationError(
                f"A '{characteristic_type.value}' characteristic needs at least {MIN_OPTIONS} distinct options.",
                field="options"
            )
        clean_options: Optional[List[str]] = cleaned
    else:
        if cleaned:
            raise ValidationError(
                f"A '{characteristic_type.value}' characteristic does not accept options.",
                field="options"
            )
        clean_options = None

    units = units.strip() if isinstance(units, str) else units
    if units and characteristic_type not in UNIT_TYPES:
        raise ValidationError(
            f"Units are only allowed on number and float characteristics, not '{characteristic_type.value}'.",
            field="units"
        )

    return clean_options, (units or None)


# ==========================================================================
# VALUES
# ==========================================================================


def _invalid(characteristic: Characteristic, reason: str) -> ValidationError:
    return ValidationError(
        f"Invalid value for '{characteristic.name}': {reason}",
        field=str(characteristic.id),
        type=characteristic.type.value,
    )


def _blank(raw: Any) -> bool:
    return raw is None or (isinstance(raw, str) and not raw.strip())


def _normalize_text(characteristic: Characteristic, raw: Any) -> Optional[str]:
    if _blank(raw):
        return None
    if not isinstance(raw, str):
        raise _invalid(characteristic, "expected a string.")
    return raw.strip()


def _normalize_link(characteristic: Characteristic, raw: Any) -> Optional[str]:
    text = _normalize_text(characteristic, raw)
    if text is None:
        return None
    try:
        _url_adapter.validate_python(text)
    except PydanticValidationError:
        raise _invalid(characteristic, f"'{text}' is not a valid http(s) URL.")
    return text


def _normalize_email(characteristic: Characteristic, raw: Any) -> Optional[str]:
    text = _normalize_text(characteristic, raw)
    if text is None:
        return None
    try:
        return _email_adapter.validate_python(text)
    except PydanticValidationError:
        raise _invalid(characteristic, f"'{text}' is not a valid email address.")


def _normalize_number(characteristic: Characteristic, raw: Any) -> Optional[int]:
    if _blank(raw):
        return None
    if isinstance(raw, bool):
        raise _invalid(characteristic, "expected a whole number.")
    if isinstance(raw, str):
        raw = raw.strip()
    try:
        return _int_adapter.validate_python(raw)
    except PydanticValidationError:
        raise _invalid(characteristic, "expected a whole number.")


def _normalize_float(characteristic: Characteristic, raw: Any) -> Optional[float]:
    if _blank(raw):
        return None
    if isinstance(raw, bool):
        raise _invalid(characteristic, "expected a number.")
    if isinstance(raw, str):
        raw = raw.strip()
    try:
        value = _float_adapter.validate_python(raw)
    except PydanticValidationError:
        raise _invalid(characteristic, "expected a number.")
    if value != value or value in (float("inf"), float("-inf")):
        raise _invalid(characteristic, "expected a finite number.")
    return value


def _normalize_boolean(characteristic: Characteristic, raw: Any) -> bool:
    return raw is True or raw == "true"


def _parse_date(characteristic: Characteristic, raw: Any) -> str:
    if isinstance(raw, datetime):
        return raw.date().isoformat()
    try:
        return _date_adapter.validate_python(raw).isoformat()
    except PydanticValidationError:
        pass
    try:
        return _datetime_adapter.validate_python(raw).date().isoformat()
    except PydanticValidationError:
        raise _invalid(characteristic, f"'{raw}' is not a valid date.")


def _parse_datetime(characteristic: Characteristic, raw: Any) -> str:
    try:
        return _datetime_adapter.validate_python(raw).isoformat()
    except PydanticValidationError:
        raise _invalid(characteristic, f"'{raw}' is not a valid date and time.")


def _unwrap_date(raw: Any) -> Any:
    if isinstance(raw, Mapping):
        return raw.get("date")
    return raw


def _normalize_date(characteristic: Characteristic, raw: Any) -> Optional[Dict[str, str]]:
    raw = _unwrap_date(raw)
    if _blank(raw):
        return None
    return {"date": _parse_date(characteristic, raw)}


def _normalize_date_time(characteristic: Characteristic, raw: Any) -> Optional[Dict[str, str]]:
    raw = _unwrap_date(raw)
    if _blank(raw):
        return None
    return {"date": _parse_datetime(characteristic, raw)}


def _normalize_range(
    characteristic: Characteristic,
    raw: Any,
    parse: Callable[[Characteristic, Any], str],
) -> Optional[Dict[str, str]]:
    if raw is None:
        return None
    if not isinstance(raw, Mapping):
        raise _invalid(characteristic, "expected an object with 'from' and 'to'.")
    start, end = raw.get("from"), raw.get("to")
    # Half-open ranges are discarded as a whole.
    if _blank(start) or _blank(end):
        return None
    return {"from": parse(characteristic, start), "to": parse(characteristic, end)}


def _normalize_date_range(characteristic: Characteristic, raw: Any) -> Optional[Dict[str, str]]:
    return _normalize_range(characteristic, raw, _parse_date)


def _normalize_date_time_range(characteristic: Characteristic, raw: Any) -> Optional[Dict[str, str]]:
    return _normalize_range(characteristic, raw, _parse_datetime)


def _check_options(characteristic: Characteristic, selected: Iterable[Any]) -> List[str]:
    allowed = characteristic.options or []
    result: List[str] = []
    for option in selected:
        if not isinstance(option, str):
            raise _invalid(characteristic, "options must be strings.")
        if option not in allowed:
            raise _invalid(characteristic, f"'{option}' is not one of {allowed}.")
        if option not in result:
            result.append(option)
    return result


def _normalize_single_option(characteristic: Characteristic, raw: Any) -> Optional[List[str]]:
    if _blank(raw):
        return None
    if isinstance(raw, str):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise _invalid(characteristic, "expected a single option.")
    selected = _check_options(characteristic, raw)
    if len(selected) > 1:
        raise _invalid(characteristic, "only one option can be selected.")
    return selected


def _normalize_multi_option(characteristic: Characteristic, raw: Any) -> Optional[List[str]]:
    if raw is None:
        return None
    if isinstance(raw, str):
        raw = [raw] if raw.strip() else []
    if not isinstance(raw, (list, tuple)):
        raise _invalid(characteristic, "expected a list of options.")
    return _check_options(characteristic, raw)


def _normalize_checkbox(characteristic: Characteristic, raw: Any) -> Optional[List[str]]:
    """
    Accepts a list of checked labels, a {label: checked} mapping, or a list of
    such mappings. Always stored as the checked labels in option order.
    """
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = [raw]
    if not isinstance(raw, (list, tuple)):
        raise _invalid(characteristic, "expected a list of checked options.")

    checked: List[Any] = []
    for entry in raw:
        if isinstance(entry, Mapping):
            checked.extend(label for label, state in entry.items() if state is True or state == "true")
        else:
            checked.append(entry)

    selected = set(_check_options(characteristic, checked))
    return [option for option in characteristic.options or [] if option in selected]


def _normalize_multi_text(characteristic: Characteristic, raw: Any) -> Optional[Dict[str, List[Dict[str, str]]]]:
    if raw is None:
        return None
    if isinstance(raw, Mapping):
        raw = raw.get("multiText", [])
    try:
        entries = _multi_text_adapter.validate_python(raw or [])
    except PydanticValidationError:
        raise _invalid(characteristic, "expected a list of {title, text} entries.")
    return {"multiText": [entry.model_dump() for entry in entries]}


def _normalize_file(characteristic: Characteristic, raw: Any) -> None:
    # The payload of a file characteristic lives in its file links.
    return None


_NORMALIZERS: Dict[ValueKind, Callable[[Characteristic, Any], Any]] = {
    ValueKind.TEXT: _normalize_text,
    ValueKind.LINK: _normalize_link,
    ValueKind.EMAIL: _normalize_email,
    ValueKind.NUMBER: _normalize_number,
    ValueKind.FLOAT: _normalize_float,
    ValueKind.BOOLEAN: _normalize_boolean,
    ValueKind.DATE: _normalize_date,
    ValueKind.DATE_TIME: _normalize_date_time,
    ValueKind.DATE_RANGE: _normalize_date_range,
    ValueKind.DATE_TIME_RANGE: _normalize_date_time_range,
    ValueKind.SINGLE_OPTION: _normalize_single_option,
    ValueKind.MULTI_OPTION: _normalize_multi_option,
    ValueKind.CHECKBOX: _normalize_checkbox,
    ValueKind.MULTI_TEXT: _normalize_multi_text,
    ValueKind.FILE: _normalize_file,
}

_unmapped_types = [t.value for t in CharacteristicType if t not in VALUE_KINDS]
_unhandled_kinds = [k.value for k in ValueKind if k not in _NORMALIZERS]
if _unmapped_types or _unhandled_kinds:
    raise RuntimeError(
        f"Value codec is incomplete. Unmapped types: {_unmapped_types}, kinds without normalizer: {_unhandled_kinds}")


def value_kind(characteristic_type: CharacteristicType) -> ValueKind:
    return VALUE_KINDS[characteristic_type]


def is_file_type(characteristic_type: CharacteristicType) -> bool:
    return VALUE_KINDS[characteristic_type] is ValueKind.FILE


def normalize_value(characteristic: Characteristic, raw: Any) -> Any:
    """
    Converts raw input into the stored JSON variant for the characteristic's type.

    Raises:
        ValidationError: the input does not fit the type (or its options).
    """
    return _NORMALIZERS[value_kind(characteristic.type)](characteristic, raw)


# ==========================================================================
# FILES
# ==========================================================================


def file_location(material_id: uuid.UUID, characteristic_id: uuid.UUID) -> str:
    """Deterministic storage location hint for a material's characteristic files."""
    return f"materials/{material_id}/characteristics/{characteristic_id}"


def split_existing_files(
    existing: List[FileRecord],
    file_to_delete: Iterable[uuid.UUID],
) -> Tuple[List[FileRecord], List[FileRecord]]:
    """
    Splits the files attached to a value row into (kept, detached).
    Ids that are not attached to the row are ignored.
    """
    to_delete = set(file_to_delete)
    kept = [f for f in existing if f.id not in to_delete]
    detached = [f for f in existing if f.id in to_delete]
    return kept, detached


def snapshot_files(files: Iterable[FileRecord]) -> Dict[str, List[Dict[str, str]]]:
    """Denormalized file value as stored in history snapshots."""
    return {"file": [{"type": f.type, "name": f.name, "path": f.path} for f in files]}
