"""
Module: ledger_kernel.db.types
Responsibility: Annotated column aliases and the helpers that keep monetary
    arithmetic in fixed-point Decimal.  Centralizes precision, rounding, and
    currency validation so every model and service uses the same rules.
Architecture position: Kernel > DB.  May be imported by models/, domain/,
    services/, and selectors/.  MUST NOT import from any of those layers.

Invariants enforced:
    - No floats.  to_decimal() converts through str so a float coming from an
      upstream event never leaks binary rounding into a ledger amount.
    - Balance comparisons happen at MONEY_DECIMAL_PLACES (2) via round_money().
    - Currency codes are ISO 4217.

Failure modes:
    - InvalidCurrencyError (from ledger_kernel.exceptions) on an unknown code.
    - decimal.InvalidOperation on a non-numeric amount.
"""

from decimal import Decimal, ROUND_HALF_UP
from enum import Enum
from typing import Annotated, Any

from sqlalchemy import Enum as SAEnum, Numeric, String

from ledger_kernel.exceptions import InvalidCurrencyError

# 38 digits, 9 decimal places
Money = Annotated[Decimal, Numeric(38, 9)]

# Exchange rate
Rate = Annotated[Decimal, Numeric(38, 18)]

# ISO 4217 currency code
Currency = Annotated[str, String(3)]

# Account codes, entry numbers, invoice numbers
ShortCode = Annotated[str, String(50)]

LongText = Annotated[str, String(1000)]

MONEY_DECIMAL_PLACES = 2
DEFAULT_ROUNDING = ROUND_HALF_UP
ZERO = Decimal("0")


def enum_column(enum_cls: type[Enum], length: int = 20) -> SAEnum:
    """
    VARCHAR column type that stores a str-Enum by value.

    Loaded rows come back as enum members, not bare strings.
    """
    return SAEnum(
        enum_cls,
        native_enum=False,
        length=length,
        values_callable=lambda members: [m.value for m in members],
        validate_strings=True,
    )


def to_decimal(value: Any) -> Decimal:
    """
    Convert an amount from an event payload or caller to Decimal.

    None becomes zero.  Floats go through ``str`` so ``0.1`` becomes
    ``Decimal("0.1")`` rather than its binary expansion.
    """
    if value is None:
        return ZERO
    if isinstance(value, Decimal):
        return value
    if isinstance(value, float):
        return Decimal(str(value))
    return Decimal(value)


def round_money(
    value: Decimal,
    decimal_places: int = MONEY_DECIMAL_PLACES,
    rounding: str = DEFAULT_ROUNDING,
) -> Decimal:
    """
    Round a monetary value to the given number of decimal places.

    This is the only rounding function used on ledger amounts.
    """
    quantize_str = "0." + "0" * decimal_places if decimal_places else "0"
    return value.quantize(Decimal(quantize_str), rounding=rounding)


def money_equal(left: Decimal, right: Decimal) -> bool:
    """True when two amounts agree to the smallest currency unit."""
    return round_money(left) == round_money(right)


ISO_4217_CURRENCIES: frozenset[str] = frozenset({
    "AED", "AFN", "ALL", "AMD", "ANG", "AOA", "ARS", "AUD", "AWG", "AZN",
    "BAM", "BBD", "BDT", "BGN", "BHD", "BIF", "BMD", "BND", "BOB", "BRL",
    "BSD", "BTN", "BWP", "BYN", "BZD", "CAD", "CDF", "CHF", "CLP", "CNY",
    "COP", "CRC", "CUP", "CVE", "CZK", "DJF", "DKK", "DOP", "DZD", "EGP",
    "ERN", "ETB", "EUR", "FJD", "FKP", "GBP", "GEL", "GHS", "GIP", "GMD",
    "GNF", "GTQ", "GYD", "HKD", "HNL", "HTG", "HUF", "IDR", "ILS", "INR",
    "IQD", "IRR", "ISK", "JMD", "JOD", "JPY", "KES", "KGS", "KHR", "KMF",
    "KPW", "KRW", "KWD", "KYD", "KZT", "LAK", "LBP", "LKR", "LRD", "LSL",
    "LYD", "MAD", "MDL", "MGA", "MKD", "MMK", "MNT", "MOP", "MRU", "MUR",
    "MVR", "MWK", "MXN", "MYR", "MZN", "NAD", "NGN", "NIO", "NOK", "NPR",
    "NZD", "OMR", "PAB", "PEN", "PGK", "PHP", "PKR", "PLN", "PYG", "QAR",
    "RON", "RSD", "RUB", "RWF", "SAR", "SBD", "SCR", "SDG", "SEK", "SGD",
    "SHP", "SLE", "SOS", "SRD", "SSP", "STN", "SVC", "SYP", "SZL", "THB",
    "TJS", "TMT", "TND", "TOP", "TRY", "TTD", "TWD", "TZS", "UAH", "UGX",
    "USD", "UYU", "UZS", "VES", "VND", "VUV", "WST", "XAF", "XCD", "XOF",
    "XPF", "YER", "ZAR", "ZMW", "ZWL",
})


def validate_currency(currency: str) -> str:
    """
    Validate and normalize an ISO 4217 currency code.

    Returns:
        The upper-cased, trimmed code.

    Raises:
        InvalidCurrencyError: If the code is empty or unknown.
    """
    if not currency or not isinstance(currency, str):
        raise InvalidCurrencyError(str(currency))

    normalized = currency.upper().strip()
    if normalized not in ISO_4217_CURRENCIES:
        raise InvalidCurrencyError(currency)
    return normalized
