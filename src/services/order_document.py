from __future__ import annotations

import re
from datetime import datetime, timezone
from html import escape
from pathlib import Path
from typing import Any, Dict, Iterable, List, Optional, Tuple

from src.core.totals import SectionTotals, calc_totals, row_total, row_unit
from src.server.schemas.order import OrderPayload, OrderRow, Signer


# Roten till projektet
ROOT = Path(__file__).resolve().parents[2]
TEMPLATE_DIR = ROOT / "templates"

OFFER_TEMPLATE = "order_offer_email.html"
CONFIRMATION_TEMPLATE = "order_confirmation_email.html"
REVIEW_TEMPLATE = "order_review.html"
ERROR_TEMPLATE = "order_error.html"

PLACEHOLDER_RE = re.compile(r"\[\[([a-zA-Z0-9_]+)\]\]")


def _format_currency(value: float | int | None) -> str:
    """
    Formatera tal som valuta: 7875 -> '7 875,00'.
    Om value är None returneras tom sträng.
    """
    if value is None:
        return ""
    try:
        num = float(value)
    except (TypeError, ValueError):
        return str(value)

    # 7,875.00 -> 7 875,00
    s = f"{num:,.2f}"
    s = s.replace(",", " ").replace(".", ",")
    return s


def format_money(value: float | int | None, currency: str) -> str:
    amount = _format_currency(value)
    return f"{amount} {currency}".strip() if amount else ""


def _esc(value: Any, fallback: str = "–") -> str:
    if value is None or value == "":
        return fallback
    return escape(str(value))


def _document_date(created_at: Optional[float]) -> str:
    """createdAt kan vara sekunder eller millisekunder sedan epoch."""
    today = datetime.now(timezone.utc).strftime("%Y-%m-%d")
    if created_at is None:
        return today
    ts = float(created_at)
    if ts > 1e11:
        ts = ts / 1000.0
    try:
        return datetime.fromtimestamp(ts, tz=timezone.utc).strftime("%Y-%m-%d")
    except (OverflowError, OSError, ValueError):
        # utanför plattformens tidsintervall
        return today


def build_rows_html(rows: Iterable[OrderRow], currency: str) -> str:
    """
    Bygg HTML-raderna (tbody) för en sektion.
    Om offertpriset är lägre än listpriset visas listpriset överstruket.
    """
    html_rows: List[str] = []
    for row in rows:
        unit = row_unit(row)
        unit_html = escape(format_money(unit, currency))
        if row.list_unit is not None and row.list_unit > unit:
            unit_html = (
                f'<span style="text-decoration:line-through;color:#6b7280">'
                f"{escape(format_money(row.list_unit, currency))}</span> {unit_html}"
            )

        html_rows.append(
            "<tr>"
            f'<td style="padding:8px 12px;border-top:1px solid #eee;">{_esc(row.sku, "")}</td>'
            f'<td style="padding:8px 12px;border-top:1px solid #eee;">{_esc(row.name, "")}</td>'
            f'<td style="padding:8px 12px;border-top:1px solid #eee;text-align:right;">{row.quantity}</td>'
            f'<td style="padding:8px 12px;border-top:1px solid #eee;text-align:right;">{unit_html}</td>'
            f'<td style="padding:8px 12px;border-top:1px solid #eee;text-align:right;font-weight:600;">'
            f"{escape(format_money(row_total(row), currency))}</td>"
            "</tr>"
        )

    if not html_rows:
        return (
            '<tr><td colspan="5" style="padding:8px 12px;color:#6b7280;font-size:12px;'
            'border-top:1px solid #eee;">Inga positioner</td></tr>'
        )
    return "\n".join(html_rows)


def build_totals_html(totals: SectionTotals, vat_rate: float, currency: str) -> str:
    lines: List[Tuple[str, float, bool]] = []
    if totals.discount > 0:
        lines.append(("Listpris delsumma (netto)", totals.list_net, False))
        lines.append(("Rabatt totalt", -totals.discount, False))
        lines.append(("Delsumma efter rabatt", totals.net, False))
    else:
        lines.append(("Delsumma (netto)", totals.net, False))
    lines.append((f"Moms ({round(vat_rate * 100)} %)", totals.vat, False))
    lines.append(("Totalsumma (inkl. moms)", totals.gross, True))

    out = []
    for label, value, strong in lines:
        weight = "font-weight:600;" if strong else ""
        out.append(
            f'<div style="display:flex;justify-content:space-between;{weight}">'
            f"<span>{escape(label)}</span><span>{escape(format_money(value, currency))}</span></div>"
        )
    return '<div style="font-size:13px;margin:8px 0 0 auto;max-width:360px;">' + "".join(out) + "</div>"


def _signer_html(signer: Optional[Signer]) -> str:
    if signer is None or not (signer.name or signer.email):
        return ""
    return (
        '<p style="margin-top:16px;font-size:12px;color:#6b7280;">'
        f"Undertecknad av: <strong>{_esc(signer.name, '—')}</strong> · {_esc(signer.email, '—')}</p>"
    )


def build_context_from_order(
    order: OrderPayload,
    *,
    company_name: str,
    currency: str,
    document_title: str = "Offert",
    signer: Optional[Signer] = None,
) -> Dict[str, str]:
    """
    Bygg context-dict med alla fält som templaten använder.
    Alla kunddata escapas här – templaten får bara färdig HTML.
    """
    c = order.customer
    totals = calc_totals(order)
    address = ", ".join(p for p in (c.street, c.zip, c.city) if p)

    return {
        "document_title": escape(document_title),
        "document_date": _document_date(order.created_at),
        "year": str(datetime.now(timezone.utc).year),
        "company_name": escape(company_name),
        "offer_id": escape(order.offer_id),
        "customer_company": _esc(c.company),
        "customer_contact": _esc(c.contact),
        "customer_email": _esc(c.email),
        "customer_phone": _esc(c.phone),
        "customer_address": _esc(address),
        "monthly_rows_html": build_rows_html(order.monthly_rows, currency),
        "one_time_rows_html": build_rows_html(order.one_time_rows, currency),
        "monthly_totals_html": build_totals_html(totals.monthly, order.vat_rate, currency),
        "one_time_totals_html": build_totals_html(totals.one_time, order.vat_rate, currency),
        "signer_html": _signer_html(signer),
    }


def render_template(name: str, context: Dict[str, Any]) -> str:
    """
    Läs HTML-templaten och ersätt alla [[nyckel]] med context-värden.
    Allt som inte finns i context ersätts med tom sträng.
    """
    html = (TEMPLATE_DIR / name).read_text(encoding="utf-8")

    # En enda genomgång: insatta värden skannas aldrig igen
    return PLACEHOLDER_RE.sub(lambda m: str(context.get(m.group(1), "")), html)


# ---------------------------------------------------------
# Dokument
# ---------------------------------------------------------

def render_offer_email(order: OrderPayload, *, company_name: str, currency: str) -> Tuple[str, str]:
    subject = f"{company_name} – Offert {order.offer_id}"
    ctx = build_context_from_order(
        order,
        company_name=company_name,
        currency=currency,
        document_title=f"Din {company_name}-offert",
    )
    return subject, render_template(OFFER_TEMPLATE, ctx)


def render_order_text(order: OrderPayload, *, currency: str) -> str:
    c = order.customer
    totals = calc_totals(order)
    address = ", ".join(p for p in (c.street, c.zip, c.city) if p) or "-"
    return "\n".join(
        [
            f"Orderbekräftelse – Offert {order.offer_id}",
            "",
            f"Kund: {c.company or '-'} / Kontakt: {c.contact or '-'} / E-post: {c.email or '-'}",
            f"Adress: {address}",
            "",
            "Månatligt (netto/brutto): "
            f"{format_money(totals.monthly.net, currency)} / {format_money(totals.monthly.gross, currency)}",
            "Engångs (netto/brutto): "
            f"{format_money(totals.one_time.net, currency)} / {format_money(totals.one_time.gross, currency)}",
        ]
    )


def render_confirmation_email(
    order: OrderPayload,
    *,
    company_name: str,
    currency: str,
    signer: Optional[Signer] = None,
) -> Tuple[str, str, str]:
    """Returnerar (subject, html, text) för orderbekräftelsen."""
    subject = f"Orderbekräftelse – Offert {order.offer_id}"
    ctx = build_context_from_order(
        order,
        company_name=company_name,
        currency=currency,
        document_title="Orderbekräftelse",
        signer=signer,
    )
    html = render_template(CONFIRMATION_TEMPLATE, ctx)
    return subject, html, render_order_text(order, currency=currency)


def render_review_page(
    order: OrderPayload,
    *,
    token: str,
    company_name: str,
    currency: str,
    submit_endpoint: str = "/api/place-order",
) -> str:
    ctx = build_context_from_order(
        order,
        company_name=company_name,
        currency=currency,
        document_title="Beställning",
    )
    ctx["token"] = escape(token, quote=True)
    ctx["submit_endpoint"] = escape(submit_endpoint, quote=True)
    return render_template(REVIEW_TEMPLATE, ctx)


def render_error_page(message: str, token: str = "") -> str:
    fingerprint = f"{token[:12]}…" if token else "–"
    return render_template(
        ERROR_TEMPLATE,
        {"error_message": escape(message), "token_fingerprint": escape(fingerprint)},
    )
