from decimal import Decimal
from typing import Annotated

from fastapi import APIRouter, Depends, Query

from spendflow.core.deps import require_operation
from spendflow.core.identity import Identity
from spendflow.core.permissions import Operation
from spendflow.schemas.currency import ConversionOut, CurrencyOut
from spendflow.services import fx

router = APIRouter()


@router.get("/supported", response_model=list[CurrencyOut])
async def supported_currencies():
    return [
        CurrencyOut(code=code, symbol=fx.SYMBOLS.get(code, code))
        for code in fx.supported_currencies()
    ]


@router.get("/convert", response_model=ConversionOut)
async def convert(
    identity: Annotated[Identity, Depends(require_operation(Operation.CURRENCY_CONVERT))],
    amount: Decimal = Query(..., gt=0),
    from_currency: str = Query(..., alias="from", min_length=3, max_length=3),
    to_currency: str = Query(..., alias="to", min_length=3, max_length=3),
):
    converted = fx.convert(amount, from_currency, to_currency)
    return ConversionOut(
        amount=amount,
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        rate=fx.exchange_rate(from_currency, to_currency).quantize(Decimal("0.000001")),
        converted=converted,
        formatted=fx.format_amount(converted, to_currency),
    )
