from __future__ import annotations
from datetime import date, datetime
from decimal import Decimal, InvalidOperation, ROUND_HALF_UP
from typing import Any

from tageskasse.services.errors import ValidationError

Q2 = Decimal("0.01")
ZERO = Decimal("0.00")
# Numeric(10, 2)
MAX_AMOUNT = Decimal("99999999.99")
# Jahr 9999 hat keinen Folgemonat mehr
MAX_YEAR = 9998


def D(x) -> Decimal:
    if isinstance(x, Decimal):
        return x
    if x is None:
        return ZERO
    return Decimal(str(x))


def round2(x: Decimal) -> Decimal:
    return x.quantize(Q2, rounding=ROUND_HALF_UP)


def parse_amount(val: Any, field: str) -> Decimal:
    """
    Betrag aus Formular/JSON lesen. Leer -> 0, Komma als Dezimaltrenner erlaubt.
    Negative oder nicht-numerische Werte -> ValidationError.
    """
    if val is None or val == "":
        return ZERO
    if isinstance(val, bool):
        raise ValidationError(f"Ungueltiger Betrag fuer {field}.")
    s = str(val).strip().replace(",", ".")
    try:
        amount = Decimal(s)
    except InvalidOperation:
        raise ValidationError(f"Ungueltiger Betrag fuer {field}.")
    if not amount.is_finite():
        raise ValidationError(f"Ungueltiger Betrag fuer {field}.")
    if amount < 0:
        raise ValidationError(f"Negative Betraege nicht erlaubt ({field}).")
    # vor dem Runden pruefen, quantize scheitert bei sehr grossen Zahlen
    if amount > MAX_AMOUNT or round2(amount) > MAX_AMOUNT:
        raise ValidationError(f"Betrag zu gross fuer {field} (max. {MAX_AMOUNT}).")
    return round2(amount)


def parse_day(s: Any) -> date:
    """Nur kanonisches ISO-Datum YYYY-MM-DD."""
    if not isinstance(s, str):
        raise ValidationError("Ungueltiges Datum.")
    try:
        d = datetime.strptime(s, "%Y-%m-%d").date()
    except ValueError:
        raise ValidationError(f"Ungueltiges Datum: {s!r}.")
    if d.isoformat() != s or d.year > MAX_YEAR:
        raise ValidationError(f"Ungueltiges Datum: {s!r}.")
    return d


def parse_year_month(s: Any) -> tuple[int, int]:
    """'YYYY-MM' -> (jahr, monat)."""
    if not isinstance(s, str):
        raise ValidationError("Ungueltiger Monat.")
    try:
        d = datetime.strptime(s, "%Y-%m").date()
    except ValueError:
        raise ValidationError(f"Ungueltiger Monat: {s!r}.")
    if f"{d.year:04d}-{d.month:02d}" != s or d.year > MAX_YEAR:
        raise ValidationError(f"Ungueltiger Monat: {s!r}.")
    return d.year, d.month


def month_range(year: int, month: int) -> tuple[date, date]:
    """Halboffenes Intervall [erster Tag, erster Tag Folgemonat)."""
    if not (1 <= month <= 12) or not (1 <= year <= MAX_YEAR):
        raise ValidationError(f"Ungueltiger Monat: {year}-{month}.")
    start = date(year, month, 1)
    end = date(year + 1, 1, 1) if month == 12 else date(year, month + 1, 1)
    return start, end
