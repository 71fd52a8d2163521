# utils/validation.py
from datetime import date
from typing import Dict, List, Mapping, Optional

# field -> max length
_MAX_LEN = {"license_plate": 20, "brand": 50, "model": 50, "color": 30, "vin": 17}


def _blank(value) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _check_pin(value, errors: Dict[str, List[str]]) -> None:
    if _blank(value):
        errors.setdefault("pin_code", []).append("The PIN is required")
    elif not (isinstance(value, str) and value.isascii() and value.isdigit() and 4 <= len(value) <= 6):
        errors.setdefault("pin_code", []).append("The PIN must be between 4 and 6 digits")


def _check_plate(value, errors: Dict[str, List[str]]) -> None:
    if _blank(value) or not isinstance(value, str):
        errors.setdefault("license_plate", []).append("The license plate is required")
    elif len(value) > _MAX_LEN["license_plate"]:
        errors.setdefault("license_plate", []).append("The license plate must not exceed 20 characters")


def validate_link_request(body: Mapping) -> Dict[str, List[str]]:
    errors: Dict[str, List[str]] = {}
    _check_plate(body.get("license_plate"), errors)
    _check_pin(body.get("pin_code"), errors)
    return errors


def coerce_year(value) -> Optional[int]:
    if _blank(value):
        return None
    if isinstance(value, bool):
        raise ValueError(value)
    return int(value)


def validate_create_request(body: Mapping) -> Dict[str, List[str]]:
    """Field checks for a new car; uniqueness is left to the registry."""
    errors: Dict[str, List[str]] = {}
    _check_plate(body.get("license_plate"), errors)
    _check_pin(body.get("pin_code"), errors)

    for field in ("brand", "model", "color", "vin"):
        value = body.get(field)
        if _blank(value):
            continue
        if not isinstance(value, str):
            errors.setdefault(field, []).append(f"The {field} must be a string")
        elif len(value) > _MAX_LEN[field]:
            errors.setdefault(field, []).append(f"The {field} must not exceed {_MAX_LEN[field]} characters")

    try:
        year = coerce_year(body.get("year"))
    except (TypeError, ValueError):
        errors.setdefault("year", []).append("The year must be an integer")
    else:
        if year is not None and not (1900 <= year <= date.today().year + 1):
            errors.setdefault("year", []).append(f"The year must be between 1900 and {date.today().year + 1}")

    return errors


def car_attrs(body: Mapping) -> dict:
    """Descriptive car fields from a validated request body."""
    attrs = {"license_plate": body.get("license_plate")}
    for field in ("brand", "model", "color", "vin"):
        value = body.get(field)
        attrs[field] = value.strip() if isinstance(value, str) and value.strip() else None
    attrs["year"] = coerce_year(body.get("year"))
    return attrs
