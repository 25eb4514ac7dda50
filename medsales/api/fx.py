# medsales/api/fx.py
from __future__ import annotations

from decimal import Decimal
from typing import Dict, List

from fastapi import APIRouter, Depends, Query
from pydantic import BaseModel

from .deps import get_current_user, get_rate_provider, CurrentUser
from ..core.errors import ValidationError
from ..services.currency import RateProvider, convert, is_supported, supported_currencies

router = APIRouter(prefix="/fx", tags=["fx"])


class RatesOut(BaseModel):
    currencies: List[str]
    rates: Dict[str, Dict[str, Decimal]]


class ConvertOut(BaseModel):
    amount: Decimal
    from_currency: str
    to_currency: str
    result: Decimal


@router.get("/rates", response_model=RatesOut, summary="Static conversion matrix")
def get_rates(
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    curs = list(supported_currencies())
    rates: Dict[str, Dict[str, Decimal]] = {}
    for a in curs:
        row = {}
        for b in curs:
            r = provider.get_rate(a, b)
            if r is not None:
                row[b] = r
        rates[a] = row
    return RatesOut(currencies=curs, rates=rates)


@router.get("/convert", response_model=ConvertOut, summary="Convert an amount between currencies")
def convert_amount(
    amount: Decimal = Query(..., ge=0),
    from_currency: str = Query(..., alias="from"),
    to_currency: str = Query(..., alias="to"),
    provider: RateProvider = Depends(get_rate_provider),
    current: CurrentUser = Depends(get_current_user),
):
    # Uç nokta bilinmeyen para birimini sessizce geçirmez; servis fonksiyonu geçirir
    for cur in (from_currency, to_currency):
        if not is_supported(cur):
            raise ValidationError(f"Unsupported currency: {cur!r}")
    return ConvertOut(
        amount=amount,
        from_currency=from_currency.upper(),
        to_currency=to_currency.upper(),
        result=convert(amount, from_currency, to_currency, provider),
    )
