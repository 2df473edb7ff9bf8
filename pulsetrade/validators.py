import re
from typing import Any, Dict, Iterable, Optional, Tuple
from decimal import Decimal, InvalidOperation

from pulsetrade.errors import ValidationError
from pulsetrade.fee_calculator import quantize_money

# Email validation regex
EMAIL_REGEX = re.compile(r"^[a-zA-Z0-9._%+-]+@[a-zA-Z0-9.-]+\.[a-zA-Z]{2,}$")

# Bank account numbers are digits, optionally separated by dashes or spaces
ACCOUNT_NUMBER_REGEX = re.compile(r"^[0-9][0-9 -]{4,30}[0-9]$")

MIN_PASSWORD_LENGTH = 6

def validate_email(email: str) -> Tuple[bool, Optional[str]]:
    """Validate email format"""
    if not email:
        return False, "Email cannot be empty"
   
    if not EMAIL_REGEX.match(email):
        return False, "Invalid email format"
       
    return True, None

def validate_password(password: str) -> Tuple[bool, Optional[str]]:
    """Validate password length"""
    if not password or len(password) < MIN_PASSWORD_LENGTH:
        return False, f"Password must be at least {MIN_PASSWORD_LENGTH} characters"
    return True, None

def validate_choice(value: Any, choices: Iterable[str], field: str) -> Tuple[bool, Optional[str]]:
    """Validate that a value is one of the allowed strings"""
    choices = list(choices)
    if value not in choices:
        return False, f"{field} must be one of: {', '.join(choices)}"
    return True, None

def validate_percentage(value: Decimal, min_value: float = 0.0, max_value: float = 100.0) -> Tuple[bool, Optional[str]]:
    """Validate percentage value is within range"""
    if value < Decimal(str(min_value)) or value > Decimal(str(max_value)):
        return False, f"Percentage must be between {min_value} and {max_value}"
   
    return True, None

def validate_bank_account(bank_name: str, account_number: str, account_name: str) -> Tuple[bool, Optional[str]]:
    """Validate bank account fields"""
    if not bank_name or not bank_name.strip():
        return False, "Bank name is required"
    if not account_name or not account_name.strip():
        return False, "Account name is required"
    if not account_number or not ACCOUNT_NUMBER_REGEX.match(account_number.strip()):
        return False, "Invalid account number"
    return True, None

def validate_profile(data: Dict[str, Any]) -> Dict[str, str]:
    """Validate profile fields and return dict of errors"""
    errors = {}
   
    if data.get("email") is not None:
        is_valid, error = validate_email(data["email"])
        if not is_valid:
            errors["email"] = error
   
    if data.get("phone_number") and not re.match(r"^\+?[0-9 -]{6,20}$", data["phone_number"]):
        errors["phone_number"] = "Invalid phone number"
   
    return errors

def parse_decimal(value: Any, field: str = "amount") -> Decimal:
    """Parse a numeric value into a finite Decimal, raising ValidationError"""
    if value is None or isinstance(value, bool):
        raise ValidationError(f"{field} is required")
    try:
        # str() keeps floats from carrying binary noise into the Decimal
        parsed = Decimal(str(value).strip())
    except (InvalidOperation, ValueError):
        raise ValidationError(f"{field} must be a number")
    if not parsed.is_finite():
        raise ValidationError(f"{field} must be a number")
    return parsed

def parse_positive_decimal(value: Any, field: str = "amount") -> Decimal:
    """Parse a strictly positive Decimal"""
    parsed = parse_decimal(value, field)
    if parsed <= 0:
        raise ValidationError(f"{field} must be a positive number")
    return parsed

def parse_money(value: Any, field: str = "amount") -> Decimal:
    """Parse a monetary amount rounded to cents; it must stay above zero after rounding"""
    try:
        parsed = quantize_money(parse_decimal(value, field))
    except InvalidOperation:
        raise ValidationError(f"{field} is out of range")
    if parsed <= 0:
        raise ValidationError(f"{field} must be at least 0.01")
    return parsed

def ensure_valid(result: Tuple[bool, Optional[str]]) -> None:
    """Raise ValidationError for a failed (is_valid, error) tuple"""
    is_valid, error = result
    if not is_valid:
        raise ValidationError(error)
