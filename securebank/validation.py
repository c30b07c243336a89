"""
Validation Rules Module

Pure, stateless checks over already-parsed input: sign-up profile fields,
card numbers (network detection + Luhn), routing numbers and funding amounts.
Validators return the normalized value or raise BadRequestError describing
the first rule that failed.
"""

import re
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP, InvalidOperation
from typing import Optional, Union

from .errors import BadRequestError


EMAIL_PATTERN = re.compile(r'[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}')
COMMON_EMAIL_TYPOS = (".con", ".cm", ".om", ".co.")

PASSWORD_MIN_LENGTH = 8
PASSWORD_SPECIAL_CHARACTERS = "!@#$%^&*()_+-=[]{};':\"\\|,.<>/?"

MINIMUM_AGE = 18

# US states, DC and territories
VALID_STATE_CODES = frozenset({
    "AL", "AK", "AZ", "AR", "CA", "CO", "CT", "DE", "FL", "GA",
    "HI", "ID", "IL", "IN", "IA", "KS", "KY", "LA", "ME", "MD",
    "MA", "MI", "MN", "MS", "MO", "MT", "NE", "NV", "NH", "NJ",
    "NM", "NY", "NC", "ND", "OH", "OK", "OR", "PA", "RI", "SC",
    "SD", "TN", "TX", "UT", "VT", "VA", "WA", "WV", "WI", "WY",
    "DC", "AS", "GU", "MP", "PR", "VI",
})

# Format patterns are applied with fullmatch and only accept ASCII digits
DIGITS_PATTERN = re.compile(r'[0-9]+')
PHONE_PATTERN = re.compile(r'\+?1?[0-9]{10}')
SSN_PATTERN = re.compile(r'[0-9]{9}')
ZIP_CODE_PATTERN = re.compile(r'[0-9]{5}')
ROUTING_NUMBER_PATTERN = re.compile(r'[0-9]{9}')
STATE_CODE_PATTERN = re.compile(r'[A-Za-z]{2}')

CARD_NETWORKS = (
    ("visa", re.compile(r'4[0-9]{12}(?:[0-9]{3})?')),
    ("mastercard", re.compile(r'5[1-5][0-9]{14}')),
    ("amex", re.compile(r'3[47][0-9]{13}')),
    ("discover", re.compile(r'6(?:011|5[0-9]{2})[0-9]{12}')),
)

FUNDING_SOURCE_TYPES = ("card", "bank")
MIN_FUNDING_AMOUNT = Decimal("0.01")
MAX_FUNDING_AMOUNT = Decimal("10000")
CENTS = Decimal("0.01")


# Profile fields

def validate_email(value: str) -> str:
    """Validate an email address and return it lower-cased"""
    if not EMAIL_PATTERN.fullmatch(value or ""):
        raise BadRequestError("Invalid email address")
    normalized = value.lower()
    if normalized.endswith(COMMON_EMAIL_TYPOS):
        raise BadRequestError("Possible email typo detected. Please verify your email address.")
    return normalized


def validate_password(value: str) -> str:
    """Check password strength; the first unmet rule is reported"""
    if len(value) < PASSWORD_MIN_LENGTH:
        raise BadRequestError(f"Password must be at least {PASSWORD_MIN_LENGTH} characters")
    if not re.search(r'[A-Z]', value):
        raise BadRequestError("Password must contain at least one uppercase letter")
    if not re.search(r'[a-z]', value):
        raise BadRequestError("Password must contain at least one lowercase letter")
    if not re.search(r'[0-9]', value):
        raise BadRequestError("Password must contain at least one number")
    if not any(ch in PASSWORD_SPECIAL_CHARACTERS for ch in value):
        raise BadRequestError("Password must contain at least one special character")
    return value


def parse_date(value: Union[str, date]) -> Optional[date]:
    """Parse an ISO date or datetime string, returning None when unparseable"""
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    try:
        return date.fromisoformat(value)
    except (TypeError, ValueError):
        pass
    try:
        return datetime.fromisoformat(value).date()
    except (TypeError, ValueError):
        return None


def calculate_age(date_of_birth: date, today: date) -> int:
    """Whole years elapsed, accounting for month and day"""
    age = today.year - date_of_birth.year
    if (today.month, today.day) < (date_of_birth.month, date_of_birth.day):
        age -= 1
    return age


def validate_date_of_birth(value: Union[str, date], today: Optional[date] = None) -> str:
    """Validate a date of birth and return it as an ISO date string"""
    dob = parse_date(value)
    if dob is None:
        raise BadRequestError("Invalid date format")

    today = today or datetime.now(timezone.utc).date()
    if dob > today:
        raise BadRequestError("Date of birth cannot be in the future")
    if calculate_age(dob, today) < MINIMUM_AGE:
        raise BadRequestError("You must be at least 18 years old to open an account")
    return dob.isoformat()


def validate_state_code(value: str) -> str:
    """Validate a two-letter US state/territory code and upper-case it"""
    if not STATE_CODE_PATTERN.fullmatch(value or ""):
        raise BadRequestError("State must be a 2-letter code")
    normalized = value.upper()
    if normalized not in VALID_STATE_CODES:
        raise BadRequestError("Please enter a valid US state code")
    return normalized


def validate_phone_number(value: str) -> str:
    if not PHONE_PATTERN.fullmatch(value or ""):
        raise BadRequestError("Phone number must be a valid US number (10 digits, optional +1 prefix)")
    return value


def validate_ssn(value: str) -> str:
    if not SSN_PATTERN.fullmatch(value or ""):
        raise BadRequestError("SSN must be exactly 9 digits")
    return value


def validate_zip_code(value: str) -> str:
    if not ZIP_CODE_PATTERN.fullmatch(value or ""):
        raise BadRequestError("ZIP code must be exactly 5 digits")
    return value


def validate_required(value: str, field_name: str) -> str:
    if not value or not value.strip():
        raise BadRequestError(f"{field_name} is required")
    return value


# Funding sources

def detect_card_type(card_number: str) -> Optional[str]:
    """Return the card network for a number, or None if unrecognized"""
    for network, pattern in CARD_NETWORKS:
        if pattern.fullmatch(card_number or ""):
            return network
    return None


def is_valid_luhn(card_number: str) -> bool:
    """
    Luhn checksum.

    Starting from the rightmost digit, every second digit is doubled and 9 is
    subtracted from results above 9; the number is valid iff the digit sum is
    a multiple of 10.
    """
    if not card_number or not DIGITS_PATTERN.fullmatch(card_number):
        return False

    total = 0
    double = False
    for ch in reversed(card_number):
        digit = int(ch)
        if double:
            digit *= 2
            if digit > 9:
                digit -= 9
        total += digit
        double = not double
    return total % 10 == 0


def validate_card_number(card_number: str) -> str:
    """Validate a card number and return its network"""
    card_type = detect_card_type(card_number)
    if card_type is None:
        raise BadRequestError("Invalid card number. We accept Visa, Mastercard, Amex, and Discover.")
    if not is_valid_luhn(card_number):
        raise BadRequestError("Invalid card number. Please check and try again.")
    return card_type


def validate_routing_number(routing_number: Optional[str]) -> str:
    if not routing_number or not ROUTING_NUMBER_PATTERN.fullmatch(routing_number):
        raise BadRequestError("A valid 9-digit routing number is required for bank transfers")
    return routing_number


def validate_funding_source(source_type: str, account_number: str,
                            routing_number: Optional[str] = None) -> None:
    """Validate a card or bank funding source"""
    if source_type not in FUNDING_SOURCE_TYPES:
        raise BadRequestError("Funding source type must be 'card' or 'bank'")
    if not account_number:
        raise BadRequestError("Account/card number is required")

    if source_type == "bank":
        validate_routing_number(routing_number)
    else:
        validate_card_number(account_number)


# Amounts

def to_decimal(value: Union[Decimal, int, float, str]) -> Decimal:
    """Convert to Decimal via str so floats keep their shortest repr"""
    if isinstance(value, Decimal):
        return value
    try:
        result = Decimal(str(value))
    except InvalidOperation:
        raise BadRequestError("Amount must be a number")
    if not result.is_finite():
        raise BadRequestError("Amount must be a number")
    return result


def round_money(value: Union[Decimal, int, float, str]) -> Decimal:
    """Round to cents, half away from zero"""
    return to_decimal(value).quantize(CENTS, rounding=ROUND_HALF_UP)


def validate_funding_amount(value: Union[Decimal, int, float, str],
                            minimum: Decimal = MIN_FUNDING_AMOUNT,
                            maximum: Decimal = MAX_FUNDING_AMOUNT) -> Decimal:
    """Check the funding range and return the amount rounded to cents"""
    amount = to_decimal(value)
    if amount < minimum:
        raise BadRequestError(f"Amount must be at least ${minimum}")
    if amount > maximum:
        raise BadRequestError(f"Amount cannot exceed ${maximum:,}")
    return round_money(amount)
