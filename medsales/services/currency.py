# medsales/services/currency.py
from __future__ import annotations

import logging
from datetime import date
from decimal import Decimal, InvalidOperation
from functools import lru_cache
from typing import Dict, Optional, Protocol, Tuple, Union

from ..core.config import settings

logger = logging.getLogger(__name__)

# Kapalı küme: sadece bu üç para birimi desteklenir
SUPPORTED_CURRENCIES: Tuple[str, ...] = ("TRY", "USD", "EUR")

Number = Union[Decimal, int, float, str]


class RateProvider(Protocol):
    """Kur kaynağı. Bilinmeyen çift için None döner."""

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        ...


class StaticRateProvider:
    """
    Build-time sabit 3x3 kur matrisi.
    Her para biriminin TRY karşılığından türetilir:
        rate[a][b] = to_try[a] / to_try[b]
    Köşegen tam olarak 1'dir.
    """

    def __init__(self, to_try: Dict[str, Decimal]):
        rates = {"TRY": Decimal("1")}
        for cur, val in to_try.items():
            rates[cur.upper()] = Decimal(str(val))
        for cur, val in rates.items():
            if val <= 0:
                raise ValueError(f"rate for {cur} must be > 0")

        self._matrix: Dict[str, Dict[str, Decimal]] = {}
        for a in SUPPORTED_CURRENCIES:
            if a not in rates:
                continue
            row: Dict[str, Decimal] = {}
            for b in SUPPORTED_CURRENCIES:
                if b not in rates:
                    continue
                row[b] = Decimal("1") if a == b else rates[a] / rates[b]
            self._matrix[a] = row

    @classmethod
    def from_settings(cls) -> "StaticRateProvider":
        return cls({"USD": settings.FX_USD_TRY, "EUR": settings.FX_EUR_TRY})

    def get_rate(self, from_currency: str, to_currency: str) -> Optional[Decimal]:
        return self._matrix.get(from_currency, {}).get(to_currency)

    def matrix(self) -> Dict[str, Dict[str, Decimal]]:
        return {k: dict(v) for k, v in self._matrix.items()}


@lru_cache(maxsize=1)
def default_provider() -> StaticRateProvider:
    return StaticRateProvider.from_settings()


def supported_currencies() -> Tuple[str, ...]:
    return SUPPORTED_CURRENCIES


def is_supported(currency: Optional[str]) -> bool:
    return bool(currency) and currency.upper() in SUPPORTED_CURRENCIES


def to_decimal(value: Number) -> Decimal:
    if isinstance(value, Decimal):
        return value
    try:
        return Decimal(str(value))
    except (InvalidOperation, ValueError) as e:
        raise ValueError(f"not a number: {value!r}") from e


def convert(
    amount: Number,
    from_currency: Optional[str],
    to_currency: Optional[str],
    provider: Optional[RateProvider] = None,
) -> Decimal:
    """
    amount'u from_currency'den to_currency'ye çevirir.

    - from == to ise amount aynen döner (yuvarlama yok).
    - Kaynak para birimi yok/bilinmiyorsa veya oran bulunamazsa amount
      DEĞİŞMEDEN döner ve uyarı loglanır. Sonuç bu durumda yalnızca tavsiye
      niteliğindedir.
    """
    value = to_decimal(amount)
    if not from_currency or not to_currency:
        logger.warning("FX conversion skipped, missing currency: %r -> %r", from_currency, to_currency)
        return value

    src = from_currency.upper()
    dst = to_currency.upper()
    if src == dst:
        return value

    rate = (provider or default_provider()).get_rate(src, dst)
    if rate is None:
        logger.warning("FX rate not found: %s -> %s, amount passed through", src, dst)
        return value
    return value * rate


def currency_snapshot(
    currency: str,
    provider: Optional[RateProvider] = None,
    today: Optional[date] = None,
) -> str:
    """Teklif notlarına gömülen, gönderim anındaki kurların okunabilir özeti."""
    prov = provider or default_provider()
    cur = currency.upper()
    day = (today or date.today()).strftime("%d.%m.%Y")

    lines = [
        f"------ CURRENCY CONVERSION INFO ({day}) ------",
        f"Proposal currency: {cur}",
        f"Rates ({cur} based):",
    ]
    for target in SUPPORTED_CURRENCIES:
        if target == cur:
            continue
        rate = prov.get_rate(cur, target)
        if rate is not None:
            lines.append(f"1 {cur} = {rate:.4f} {target}")
    lines.append("-" * 51)
    return "\n".join(lines) + "\n\n"
