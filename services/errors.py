# services/errors.py
"""
Domain errors raised by the car services.

Each error carries an ``ErrorKind`` so callers can branch on the kind of
failure without string matching, plus the HTTP status the routes answer with
by default. Only unexpected storage failures escape as other exception types.
"""
import enum
from typing import Optional


class ErrorKind(enum.Enum):
    CAR_NOT_FOUND = "car_not_found"
    INVALID_CREDENTIAL = "invalid_credential"
    ALREADY_LINKED = "already_linked"
    DUPLICATE_PLATE = "duplicate_plate"
    DUPLICATE_VIN = "duplicate_vin"
    INVALID_PIN = "invalid_pin"
    NOT_LINKED = "not_linked"
    SOLE_CAR_UNDETACHABLE = "sole_car_undetachable"


class CarError(Exception):
    kind: ErrorKind
    status: int = 400
    message: str = "Car operation failed"
    field: Optional[str] = None  # request field the error belongs to, if any

    def __init__(self, message: Optional[str] = None):
        super().__init__(message or self.message)
        if message:
            self.message = message


# ───────────── NotFound ────────────────────────────────────────────────────────
class CarNotFound(CarError):
    kind = ErrorKind.CAR_NOT_FOUND
    status = 404
    message = "No car found with that license plate"


class NotLinked(CarError):
    kind = ErrorKind.NOT_LINKED
    status = 403
    message = "You do not have access to this car"


# ───────────── Unauthorized ────────────────────────────────────────────────────
class InvalidCredential(CarError):
    kind = ErrorKind.INVALID_CREDENTIAL
    status = 401
    message = "Incorrect PIN"


# ───────────── Conflict ────────────────────────────────────────────────────────
class AlreadyLinked(CarError):
    kind = ErrorKind.ALREADY_LINKED
    status = 409
    message = "This car is already linked to your account"


class DuplicatePlate(CarError):
    kind = ErrorKind.DUPLICATE_PLATE
    status = 422
    message = "A car with this license plate already exists"
    field = "license_plate"


class DuplicateVin(CarError):
    kind = ErrorKind.DUPLICATE_VIN
    status = 422
    message = "A car with this VIN already exists"
    field = "vin"


# ───────────── Validation / business rules ────────────────────────────────────
class InvalidPin(CarError):
    kind = ErrorKind.INVALID_PIN
    status = 422
    message = "The PIN must be between 4 and 6 digits"
    field = "pin_code"


class SoleCarUndetachable(CarError):
    kind = ErrorKind.SOLE_CAR_UNDETACHABLE
    status = 422
    message = "You cannot unlink your only car"
