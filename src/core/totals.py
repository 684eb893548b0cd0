"""
Rad- och totalsummor för en order.
Radsumman beräknas alltid vid användning – den skrivs aldrig tillbaka in i raden.
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Iterable, Mapping, Union

from src.server.schemas.order import OrderPayload, OrderRow

RowLike = Union[OrderRow, Mapping[str, Any]]


def _as_row(row: RowLike) -> OrderRow:
    if isinstance(row, OrderRow):
        return row
    return OrderRow.model_validate(row)


def row_unit(row: RowLike) -> float:
    """Nettopris per enhet: unit, annars offerUnit, annars listUnit."""
    r = _as_row(row)
    for value in (r.unit, r.offer_unit, r.list_unit):
        if value is not None:
            return float(value)
    return 0.0


def row_total(row: RowLike) -> float:
    """Explicit total om den finns (litas på som den är), annars quantity * unit."""
    r = _as_row(row)
    if r.total is not None:
        return float(r.total)
    return r.quantity * row_unit(r)


def row_list_total(row: RowLike) -> float:
    """Radsumma till listpris – används bara för rabattvisning."""
    r = _as_row(row)
    if r.list_total is not None:
        return float(r.list_total)
    unit = r.list_unit if r.list_unit is not None else row_unit(r)
    return r.quantity * float(unit)


@dataclass(frozen=True)
class SectionTotals:
    list_net: float
    net: float
    discount: float
    vat: float
    gross: float


@dataclass(frozen=True)
class OrderTotals:
    vat_rate: float
    monthly: SectionTotals
    one_time: SectionTotals


def section_totals(rows: Iterable[RowLike], vat_rate: float) -> SectionTotals:
    list_net = 0.0
    net = 0.0
    for row in rows:
        list_net += row_list_total(row)
        net += row_total(row)
    vat = net * vat_rate
    return SectionTotals(
        list_net=list_net,
        net=net,
        discount=max(0.0, list_net - net),
        vat=vat,
        gross=net + vat,
    )


def calc_totals(order: OrderPayload) -> OrderTotals:
    return OrderTotals(
        vat_rate=order.vat_rate,
        monthly=section_totals(order.monthly_rows, order.vat_rate),
        one_time=section_totals(order.one_time_rows, order.vat_rate),
    )
