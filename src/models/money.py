from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
import enum
import re
from typing import Any, Optional, Union

from pydantic import BaseModel, field_validator, ConfigDict

CENTS = Decimal("0.01")

# Symbols seen in receipts and provider payloads
CURRENCY_SYMBOLS = {
    "$": "USD",
    "£": "GBP",
    "€": "EUR",
}

_AMOUNT_CLEANUP = re.compile(r"[,\s]")
_ISO_CODE = re.compile(r"^([A-Za-z]{3})?(.*?)([A-Za-z]{3})?$")


class Currency(str, enum.Enum):
    """Enum for currencies"""
    USD = "USD"
    EUR = "EUR"
    GBP = "GBP"
    CAD = "CAD"
    JPY = "JPY"
    AUD = "AUD"
    CHF = "CHF"
    CNY = "CNY"


class Money(BaseModel):
    """
    Money represents a currency-tagged decimal amount.

    Every amount that flows through ingestion, scoring and renewal tracking
    carries its currency; there is no untagged money in the system.
    """
    amount: Decimal
    currency: Currency

    model_config = ConfigDict(
        json_encoders={
            Decimal: str
        },
        use_enum_values=False,
        frozen=True
    )

    @field_validator('amount', mode='before')
    @classmethod
    def ensure_amount_is_decimal(cls, v: Any) -> Decimal:
        if not isinstance(v, Decimal):
            try:
                v = Decimal(str(v))
            except (InvalidOperation, ValueError) as e:
                raise ValueError(f"Invalid amount value: {v}. Could not convert to Decimal.") from e
        if not v.is_finite():
            raise ValueError(f"Invalid amount value: {v}. Amount must be finite.")
        return v

    @classmethod
    def parse(cls, value: Union[str, int, float, Decimal, None], currency: Optional[str]) -> 'Money':
        """
        Build Money from a provider value such as "$9.99", "1,299.00 EUR" or 9.99.

        A currency symbol or ISO code in the value is used when no currency
        code is given.
        Raises ValueError when either part cannot be resolved.
        """
        if value is None:
            raise ValueError("Amount is missing")

        code = currency
        if isinstance(value, str):
            text = _AMOUNT_CLEANUP.sub("", value.strip())
            prefix, text, suffix = _ISO_CODE.match(text).groups()
            code = code or prefix or suffix
            if text and text[0] in CURRENCY_SYMBOLS:
                code = code or CURRENCY_SYMBOLS[text[0]]
                text = text[1:]
            elif text.startswith("-") and len(text) > 1 and text[1] in CURRENCY_SYMBOLS:
                code = code or CURRENCY_SYMBOLS[text[1]]
                text = "-" + text[2:]
            value = text

        if not code:
            raise ValueError("Currency is missing")
        try:
            resolved = Currency(str(code).upper())
        except ValueError as e:
            raise ValueError(f"Unsupported currency: {code}") from e

        return cls(amount=value, currency=resolved)

    def quantized(self) -> 'Money':
        return Money(amount=self.amount.quantize(CENTS, rounding=ROUND_HALF_UP), currency=self.currency)

    def __str__(self) -> str:
        return f"{self.amount} {self.currency.value}"
