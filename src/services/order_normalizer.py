"""
Normalisering av orderdata från token/formulär.

Olika versioner av offertverktyget har skickat samma data under olika
fältnamn (monthly/recurring, oneTime/setup, vat). Här översätts allt till
en kanonisk OrderPayload – eller så samlas ALLA fel ihop i en lista.
"""
from __future__ import annotations

import math
from typing import Any, Dict, List, Mapping, Optional, Sequence, Tuple

from pydantic import ValidationError

from src.core.errors import IncompletePayload
from src.server.schemas.order import Customer, OrderPayload, OrderRow

# Kanoniskt fält -> godkända källnycklar i prioritetsordning
FIELD_ALIASES: Dict[str, Tuple[str, ...]] = {
    "monthlyRows": ("monthlyRows", "monthly", "recurring"),
    "oneTimeRows": ("oneTimeRows", "oneTime", "setup"),
    "vatRate": ("vatRate", "vat"),
}

ENVELOPE_KEY = "order"

_FIXED_KEYS = ("offerId", "customer", "createdAt")
_CONSUMED_KEYS = frozenset(
    [k for aliases in FIELD_ALIASES.values() for k in aliases]
    + list(_FIXED_KEYS)
    + list(OrderPayload.model_fields)
)


def describe_field(canonical: str) -> str:
    """'vatRate' -> 'vatRate (eller vat)' för felmeddelanden."""
    aliases = FIELD_ALIASES.get(canonical, ())[1:]
    if not aliases:
        return canonical
    return f"{canonical} (eller {'/'.join(aliases)})"


def resolve_field(data: Mapping[str, Any], canonical: str) -> Tuple[Optional[str], Any]:
    """
    Första nyckel som finns och inte är null vinner.
    Returnerar (källnyckel, värde) eller (None, None).
    """
    for key in FIELD_ALIASES.get(canonical, (canonical,)):
        value = data.get(key)
        if value is not None:
            return key, value
    return None, None


def unwrap_envelope(raw: Any) -> Any:
    """Äldre klienter skickar {"order": {...}} – packa upp det."""
    if (
        isinstance(raw, Mapping)
        and "offerId" not in raw
        and isinstance(raw.get(ENVELOPE_KEY), Mapping)
    ):
        return raw[ENVELOPE_KEY]
    return raw


def _is_rate(value: Any) -> bool:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return False
    return math.isfinite(value) and 0 <= value < 1


def _location(prefix: str, loc: Sequence[Any]) -> str:
    out = prefix
    for part in loc:
        if isinstance(part, int):
            out += f"[{part}]"
        else:
            out += f".{part}"
    return out


def _collect_errors(prefix: str, exc: ValidationError, problems: List[str]) -> None:
    for err in exc.errors():
        where = _location(prefix, err.get("loc") or ())
        if where not in problems:
            problems.append(where)


def _validate_rows(canonical: str, rows: List[Any], problems: List[str]) -> List[OrderRow]:
    out: List[OrderRow] = []
    for index, row in enumerate(rows):
        try:
            out.append(OrderRow.model_validate(row))
        except ValidationError as e:
            _collect_errors(f"{canonical}[{index}]", e, problems)
    return out


def normalize_order(raw: Any) -> OrderPayload:
    """
    Tar emot godtycklig avkodad data och returnerar en kanonisk OrderPayload.

    Kastar IncompletePayload med samtliga saknade/ogiltiga fält
    (offerId, monthlyRows, oneTimeRows, vatRate, därefter rad- och kundfel).
    """
    data = unwrap_envelope(raw)
    if not isinstance(data, Mapping):
        data = {}

    problems: List[str] = []

    offer_id = data.get("offerId")
    if not isinstance(offer_id, str) or not offer_id.strip():
        problems.append("offerId")

    _, monthly = resolve_field(data, "monthlyRows")
    if not isinstance(monthly, list):
        problems.append("monthlyRows")

    _, one_time = resolve_field(data, "oneTimeRows")
    if not isinstance(one_time, list):
        problems.append("oneTimeRows")

    _, vat = resolve_field(data, "vatRate")
    if not _is_rate(vat):
        problems.append("vatRate")

    monthly_rows = _validate_rows("monthlyRows", monthly, problems) if isinstance(monthly, list) else []
    one_time_rows = _validate_rows("oneTimeRows", one_time, problems) if isinstance(one_time, list) else []

    customer = Customer()
    raw_customer = data.get("customer")
    if raw_customer is not None:
        try:
            customer = Customer.model_validate(raw_customer)
        except ValidationError as e:
            _collect_errors("customer", e, problems)

    if problems:
        raise IncompletePayload(
            problems,
            "Orderdata ofullständiga/ogiltiga: "
            + ", ".join(describe_field(p) for p in problems),
        )

    created_at = data.get("createdAt")
    if isinstance(created_at, bool) or not isinstance(created_at, (int, float)):
        created_at = None

    extras = {k: v for k, v in data.items() if k not in _CONSUMED_KEYS}

    return OrderPayload(
        offer_id=offer_id,
        customer=customer,
        monthly_rows=monthly_rows,
        one_time_rows=one_time_rows,
        vat_rate=float(vat),
        created_at=created_at,
        **extras,
    )
