from __future__ import annotations

import logging
from typing import Any, Dict, Optional, Tuple

from fastapi import APIRouter, Depends, Request
from pydantic import ValidationError

from src.core.errors import SubmissionError
from src.server.dependencies import get_codec, get_sender, get_settings
from src.server.schemas.order import OrderPayload, Signer
from src.server.settings.config import Settings
from src.services.notifications import NotificationSender, build_recipients, dispatch
from src.services.order_document import render_confirmation_email, render_offer_email
from src.services.order_normalizer import normalize_order
from src.services.order_token import DecodedToken, OrderTokenCodec, order_url

logger = logging.getLogger("orderlink.api")

router = APIRouter(prefix="/api", tags=["orders"])

TOKEN_HEADER = "x-offer-token"
TOKEN_COOKIE = "offerToken"


# ==============================
# HELPERS
# ==============================

def is_truthy(value: Any) -> bool:
    """Godtar true, "true", 1 (även 1.0) och "1" – inget annat."""
    if isinstance(value, bool):
        return value
    if isinstance(value, (int, float)):
        return value == 1
    if isinstance(value, str):
        return value in ("true", "1")
    return False


async def _read_json_body(request: Request) -> Dict[str, Any]:
    """Trasig eller icke-objekt-JSON behandlas som tom body."""
    try:
        body = await request.json()
    except ValueError:
        return {}
    return body if isinstance(body, dict) else {}


def _extract_token(body: Dict[str, Any], request: Request) -> str:
    """Token ur body, annars ?token=, header X-Offer-Token eller cookie offerToken."""
    for candidate in (
        body.get("token"),
        request.query_params.get("token"),
        request.headers.get(TOKEN_HEADER),
        request.cookies.get(TOKEN_COOKIE),
    ):
        if isinstance(candidate, str) and candidate.strip():
            return candidate.strip()
    return ""


def _parse_signer(raw: Any) -> Optional[Signer]:
    if not isinstance(raw, dict):
        return None
    try:
        signer = Signer.model_validate(raw)
    except ValidationError:
        logger.info("Ignorerar ogiltig signer: %r", raw)
        return None
    if not (signer.name or signer.email):
        return None
    return signer


def _decode_submission(
    body: Dict[str, Any],
    request: Request,
    codec: OrderTokenCodec,
    cfg: Settings,
) -> Tuple[DecodedToken, OrderPayload]:
    """
    Gemensamt för send-offer och place-order:
    submit-flagga → token → avkodning → normalisering.
    """
    if not is_truthy(body.get("submit")):
        raise SubmissionError("missing_submit", "submit==true krävs.")

    token = _extract_token(body, request)
    if not token:
        raise SubmissionError("missing_token", "Token saknas.")

    decoded = codec.decode(token)
    if not decoded.verified:
        if cfg.require_signed_token:
            raise SubmissionError("unsigned_token", "Endast signerade beställningslänkar accepteras.")
        logger.warning("Osignerat token accepterat (lös avkodning)")

    return decoded, normalize_order(decoded.payload)


# ==============================
# ORDERLÄNK
# ==============================

@router.post("/order-link", summary="Signera en offert och skapa beställningslänk")
async def create_order_link(
    request: Request,
    codec: OrderTokenCodec = Depends(get_codec),
    cfg: Settings = Depends(get_settings),
):
    body = await _read_json_body(request)
    order = normalize_order(body)
    token = codec.sign(order)
    return {
        "ok": True,
        "offerId": order.offer_id,
        "token": token,
        "url": order_url(cfg.order_base_url, token),
    }


# ==============================
# SKICKA OFFERT
# ==============================

@router.post("/send-offer", summary="Skicka offerten via e-post")
async def send_offer(
    request: Request,
    codec: OrderTokenCodec = Depends(get_codec),
    sender: NotificationSender = Depends(get_sender),
    cfg: Settings = Depends(get_settings),
):
    body = await _read_json_body(request)
    decoded, order = _decode_submission(body, request, codec, cfg)
    signer = _parse_signer(body.get("signer"))

    subject, html = render_offer_email(order, company_name=cfg.company_name, currency=cfg.currency)
    recipients = build_recipients(
        cfg.sales_mailbox,
        body.get("salesEmail"),
        order.customer.email,
    )
    mail = dispatch(sender, subject, html, recipients)
    logger.info("Offert %s skickad till %d mottagare (ok=%s)", order.offer_id, len(recipients), mail.ok)

    out: Dict[str, Any] = {
        "ok": True,
        "message": "Offerten har skickats.",
        "offerId": order.offer_id,
        "emails": mail.to_dict(),
        "verified": decoded.verified,
    }
    if signer is not None:
        out["signer"] = signer.to_wire()
    return out


# ==============================
# BESTÄLL
# ==============================

@router.post("/place-order", summary="Bekräfta beställning och skicka orderbekräftelse")
async def place_order(
    request: Request,
    codec: OrderTokenCodec = Depends(get_codec),
    sender: NotificationSender = Depends(get_sender),
    cfg: Settings = Depends(get_settings),
):
    body = await _read_json_body(request)
    decoded, order = _decode_submission(body, request, codec, cfg)
    signer = _parse_signer(body.get("signer"))

    subject, html, text = render_confirmation_email(
        order,
        company_name=cfg.company_name,
        currency=cfg.currency,
        signer=signer,
    )
    recipients = build_recipients(
        cfg.sales_mailbox,
        body.get("salesEmail"),
        order.customer.email,
        signer.email if signer else None,
    )
    mail = dispatch(sender, subject, html, recipients, text=text)
    logger.info("Order %s bekräftad, %d mottagare (ok=%s)", order.offer_id, len(recipients), mail.ok)

    out: Dict[str, Any] = {
        "ok": True,
        "message": "Beställningen har tagits emot.",
        "offerId": order.offer_id,
        "emails": mail.to_dict(),
        "verified": decoded.verified,
    }
    if signer is not None:
        out["signer"] = signer.to_wire()
    return out
