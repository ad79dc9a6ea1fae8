"""
Input Validation Utilities

Provides validation for user inputs including:
- Phone number normalization (Tanzanian mobile format)
- Money amount parsing and splitting
- Text sanitization for stored free text
"""
import re
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Iterable

from splitbill.core.config import settings

TWO_PLACES = Decimal("0.01")

# Largest total a Numeric(12, 2) column holds
MAX_AMOUNT = Decimal("9999999999.99")


class ValidationPatterns:
    """Regex patterns for validation"""

    # Separators users type inside a number: spaces, hyphens, parentheses
    PHONE_SEPARATORS = re.compile(r"[\s\-()]")

    # 9 national digits of a mobile number: 6 or 7 followed by 8 digits
    PHONE_NATIONAL = re.compile(r"^[67][0-9]{8}$")


class PhoneNumberValidator:
    """Phone number validation and normalization"""

    @staticmethod
    def normalize(phone: str | None, country_code: str | None = None) -> str | None:
        """
        Normalize a phone number to +<country><9 digits>.

        Accepted inputs (after stripping spaces, hyphens and parentheses):
        0XXXXXXXXX, XXXXXXXXX, 255XXXXXXXXX and +255XXXXXXXXX, where the
        national part is a mobile number starting with 6 or 7.

        Args:
            phone: Raw user input
            country_code: Digits of the country code, defaults to PHONE_COUNTRY_CODE

        Returns:
            Canonical number, or None when the input is not a valid number
        """
        if not phone:
            return None

        code = (country_code or settings.PHONE_COUNTRY_CODE).lstrip("+")
        cleaned = ValidationPatterns.PHONE_SEPARATORS.sub("", phone)

        if cleaned.startswith("+"):
            if not cleaned.startswith("+" + code):
                return None
            national = cleaned[len(code) + 1:]
        elif cleaned.startswith(code) and len(cleaned) == len(code) + 9:
            national = cleaned[len(code):]
        elif cleaned.startswith("0"):
            national = cleaned[1:]
        else:
            national = cleaned

        if not ValidationPatterns.PHONE_NATIONAL.match(national):
            return None

        return f"+{code}{national}"

    @staticmethod
    def validate(phone: str | None, country_code: str | None = None) -> bool:
        """True when the number normalizes"""
        return PhoneNumberValidator.normalize(phone, country_code) is not None

    @staticmethod
    def parse_list(raw: str | None, country_code: str | None = None) -> list[str]:
        """
        Parse a comma-separated list of numbers.

        Invalid entries are dropped. Every valid entry is kept in input order,
        repeats included.
        """
        if not raw:
            return []

        result: list[str] = []
        for part in raw.split(","):
            normalized = PhoneNumberValidator.normalize(part.strip(), country_code)
            if normalized:
                result.append(normalized)
        return result

    @staticmethod
    def mask(phone: str) -> str:
        """
        Mask phone number for logging (privacy).

        Args:
            phone: Phone number to mask

        Returns:
            Masked phone number (e.g., +25571234****)
        """
        if not phone or len(phone) < 4:
            return "****"
        return phone[:-4] + "****"


class AmountValidator:
    """Monetary amount parsing and arithmetic"""

    @staticmethod
    def parse(raw: str | None) -> Decimal | None:
        """
        Parse a user-typed amount.

        The whole stripped text must be a finite decimal number that is at
        least one cent once rounded and no larger than MAX_AMOUNT. Trailing
        garbage ("100abc"), NaN and infinities are rejected. The value is
        returned exactly as typed, without rounding.
        """
        if raw is None:
            return None
        text = raw.strip()
        if not text:
            return None
        try:
            value = Decimal(text)
        except InvalidOperation:
            return None
        if not AmountValidator.is_storable(value):
            return None
        return value

    @staticmethod
    def is_storable(amount: Decimal) -> bool:
        """Finite, at most MAX_AMOUNT, and not zero after rounding to cents"""
        if not amount.is_finite() or amount <= 0 or amount > MAX_AMOUNT:
            return False
        return AmountValidator.quantize(amount) > 0

    @staticmethod
    def quantize(amount: Decimal) -> Decimal:
        """Round to cents, half away from zero"""
        return amount.quantize(TWO_PLACES, rounding=ROUND_HALF_UP)

    @staticmethod
    def split(amount: Decimal, members: int) -> Decimal:
        """Even share per member, rounded to cents"""
        if members < 1:
            raise ValueError("members must be at least 1")
        return AmountValidator.quantize(amount / Decimal(members))

    @staticmethod
    def format(amount: Decimal) -> str:
        """Display form with exactly two decimals (50000 -> 50000.00)"""
        return f"{AmountValidator.quantize(amount):.2f}"


class TextSanitizer:
    """Text sanitization for stored free text"""

    @staticmethod
    def sanitize(text: str, max_length: int = 1000) -> str:
        """
        Sanitize text input for safe storage.

        Trims whitespace, enforces max length, removes null bytes and
        collapses runs of spaces.
        """
        if not text:
            return ""

        sanitized = text.strip()[:max_length]
        sanitized = sanitized.replace("\x00", "")
        sanitized = re.sub(r" +", " ", sanitized)

        return sanitized

    @staticmethod
    def remove_control_characters(text: str) -> str:
        """Remove control characters, keeping newlines and tabs"""
        if not text:
            return ""

        return "".join(
            char for char in text
            if char >= " " or char in "\n\r\t"
        )


# Pydantic field validators for reuse
def phone_validator(v: str | None) -> str | None:
    """Pydantic field validator for phone numbers"""
    if v is None:
        return None
    normalized = PhoneNumberValidator.normalize(v)
    if normalized is None:
        raise ValueError("Invalid phone number format")
    return normalized


def phone_list_validator(v: Iterable[str]) -> list[str]:
    """Pydantic field validator for member lists: every entry must be valid"""
    result: list[str] = []
    for phone in v:
        normalized = PhoneNumberValidator.normalize(phone)
        if normalized is None:
            raise ValueError(f"Invalid phone number format: {phone}")
        result.append(normalized)
    if not result:
        raise ValueError("At least one member phone number is required")
    return result


def amount_validator(v: Decimal) -> Decimal:
    """Pydantic field validator for positive money amounts"""
    if not AmountValidator.is_storable(v):
        raise ValueError(f"Amount must be between 0.01 and {MAX_AMOUNT}")
    return v


def sanitized_text_validator(v: str | None, max_length: int = 1000) -> str | None:
    """Pydantic field validator for sanitized text"""
    if v is None:
        return None
    return TextSanitizer.sanitize(TextSanitizer.remove_control_characters(v), max_length)
