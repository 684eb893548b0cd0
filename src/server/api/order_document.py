from fastapi import APIRouter, Depends, Query
from fastapi.responses import HTMLResponse

from src.core.errors import IncompletePayload, TokenError
from src.server.dependencies import get_codec, get_settings
from src.server.settings.config import Settings
from src.services.order_document import render_error_page, render_review_page
from src.services.order_normalizer import normalize_order
from src.services.order_token import OrderTokenCodec

router = APIRouter(tags=["order-document"])  # öppen, token räcker


@router.get(
    "/order",
    response_class=HTMLResponse,
    summary="Beställningssida (HTML) för kunden",
)
def get_order_page(
    token: str = Query(""),
    codec: OrderTokenCodec = Depends(get_codec),
    cfg: Settings = Depends(get_settings),
):
    token = token.strip()
    if not token:
        return HTMLResponse(render_error_page("Inget token hittades"), status_code=400)

    try:
        decoded = codec.decode(token)
        if cfg.require_signed_token and not decoded.verified:
            return HTMLResponse(
                render_error_page("Länken är inte signerad", token),
                status_code=400,
            )
        order = normalize_order(decoded.payload)
    except (TokenError, IncompletePayload) as e:
        return HTMLResponse(render_error_page(e.message, token), status_code=400)

    html = render_review_page(
        order,
        token=token,
        company_name=cfg.company_name,
        currency=cfg.currency,
    )
    return HTMLResponse(content=html)
