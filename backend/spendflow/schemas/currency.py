from decimal import Decimal

from pydantic import BaseModel


class CurrencyOut(BaseModel):
    code: str
    symbol: str


class ConversionOut(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    rate: Decimal
    converted: Decimal
    formatted: str
