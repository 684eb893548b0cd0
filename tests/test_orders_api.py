import json

import pytest
from fastapi.testclient import TestClient

from src.server.dependencies import get_codec, get_sender, get_settings
from src.server.http_error_handlers import INTERNAL_ERROR_MESSAGE
from src.server.main import app
from src.server.settings.config import settings as base_settings
from src.services.notifications import UnconfiguredSender
from src.services.order_token import OrderTokenCodec, StaticSecret, b64url_encode

from conftest import SECRET, RecordingSender


def _loose(payload) -> str:
    return b64url_encode(json.dumps(payload).encode("utf-8"))


@pytest.fixture
def cfg():
    return base_settings.model_copy(
        update={
            "order_secret": SECRET,
            "order_base_url": "https://shop.example.com",
            "require_signed_token": False,
            "sales_mailbox": "vertrieb@example.com",
            "company_name": "xVoice UC",
            "currency": "€",
        }
    )


@pytest.fixture
def sender():
    return RecordingSender()


@pytest.fixture
def client(cfg, sender):
    app.dependency_overrides[get_settings] = lambda: cfg
    app.dependency_overrides[get_sender] = lambda: sender
    with TestClient(app, raise_server_exceptions=False) as c:
        yield c
    app.dependency_overrides.clear()


@pytest.fixture
def token(codec, sample_payload):
    return codec.sign(sample_payload)


# ---------- system ----------

def test_health(client):
    r = client.get("/health")
    assert r.status_code == 200
    assert r.json() == {"status": "ok"}


# ---------- send-offer ----------

def test_send_offer_with_signed_token(client, sender, token):
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200
    data = r.json()
    assert data["ok"] is True
    assert data["offerId"] == "Q-2025-001"
    assert data["verified"] is True
    assert data["message"] == "Offerten har skickats."
    assert data["emails"]["ok"] is True
    assert sender.recipients == ["vertrieb@example.com", "kund@example.com"]
    assert sender.sent[0]["subject"] == "xVoice UC – Offert Q-2025-001"
    assert "signer" not in data


@pytest.mark.parametrize("submit", [True, "true", "1", 1, 1.0])
def test_submit_flag_variants_accepted(client, token, submit):
    r = client.post("/api/send-offer", json={"submit": submit, "token": token})
    assert r.status_code == 200


@pytest.mark.parametrize("submit", [False, "yes", "TRUE", " 1 ", 0, 2, 1.5, None])
def test_submit_flag_required(client, sender, token, submit):
    r = client.post("/api/send-offer", json={"submit": submit, "token": token})
    assert r.status_code == 400
    assert r.json()["reason"] == "missing_submit"
    assert r.json()["ok"] is False
    assert sender.sent == []


def test_broken_json_body_is_treated_as_empty(client):
    r = client.post("/api/send-offer", content=b"{inte json", headers={"Content-Type": "application/json"})
    assert r.status_code == 400
    assert r.json()["reason"] == "missing_submit"


def test_missing_token(client):
    r = client.post("/api/send-offer", json={"submit": True})
    assert r.status_code == 400
    assert r.json()["reason"] == "missing_token"


def test_sales_email_is_deduplicated(client, sender, token):
    r = client.post(
        "/api/send-offer",
        json={"submit": True, "token": token, "salesEmail": "VERTRIEB@example.com"},
    )
    assert r.status_code == 200
    assert sender.recipients == ["vertrieb@example.com", "kund@example.com"]


def test_extra_sales_email_is_added(client, sender, token):
    client.post("/api/send-offer", json={"submit": True, "token": token, "salesEmail": "anna@example.com"})
    assert sender.recipients == ["vertrieb@example.com", "anna@example.com", "kund@example.com"]


def test_signer_is_echoed(client, token):
    signer = {"name": "Erika Muster", "email": "erika@example.com"}
    r = client.post("/api/send-offer", json={"submit": True, "token": token, "signer": signer})
    assert r.json()["signer"] == signer


def test_tampered_token_is_rejected(client, sender, token):
    body = token.split(".")[0]
    r = client.post("/api/send-offer", json={"submit": True, "token": f"{body}.{b64url_encode(bytes(32))}"})
    assert r.status_code == 400
    assert r.json()["reason"] == "invalid_signature"
    assert sender.sent == []


def test_loose_token_is_accepted_unverified(client, sender):
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19})
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200
    assert r.json()["verified"] is False
    assert sender.recipients == ["vertrieb@example.com"]


def test_loose_token_needs_no_secret(client, cfg):
    cfg.order_secret = ""
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19})
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200


def test_order_envelope_in_loose_token(client):
    token = _loose({"order": {"offerId": "Q-9", "monthlyRows": [], "oneTimeRows": [], "vatRate": 0.19}})
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.json()["offerId"] == "Q-9"


def test_unsigned_token_rejected_when_required(client, cfg, sender):
    cfg.require_signed_token = True
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19})
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 400
    assert r.json()["reason"] == "unsigned_token"
    assert sender.sent == []


def test_incomplete_payload_lists_missing_fields(client):
    r = client.post("/api/send-offer", json={"submit": True, "token": _loose({"offerId": "Q-1"})})
    assert r.status_code == 400
    data = r.json()
    assert data["reason"] == "incomplete_payload"
    assert data["missing"] == ["monthlyRows", "oneTimeRows", "vatRate"]


def test_undecodable_token(client):
    r = client.post("/api/send-offer", json={"submit": True, "token": "not-a-token"})
    assert r.status_code == 400
    assert r.json()["reason"] == "undecodable_token"


def test_token_from_query_string(client, token):
    r = client.post("/api/send-offer", params={"token": token}, json={"submit": True})
    assert r.status_code == 200


def test_token_from_header(client, token):
    r = client.post("/api/send-offer", headers={"X-Offer-Token": token}, json={"submit": True})
    assert r.status_code == 200


def test_token_from_cookie(client, token):
    r = client.post("/api/send-offer", headers={"Cookie": f"offerToken={token}"}, json={"submit": True})
    assert r.status_code == 200


def test_body_token_wins_over_query(client, token):
    r = client.post("/api/send-offer", params={"token": "not-a-token"}, json={"submit": True, "token": token})
    assert r.status_code == 200


def test_partial_email_failure_still_succeeds(client, cfg, token):
    failing = RecordingSender(fail_for={"kund@example.com"})
    app.dependency_overrides[get_sender] = lambda: failing
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200
    emails = r.json()["emails"]
    assert emails["ok"] is False
    assert emails["reason"] == "Delvis misslyckat"
    assert [x["ok"] for x in emails["results"]] == [True, False]
    assert failing.recipients == ["vertrieb@example.com"]


def test_unconfigured_email_is_reported(client, token):
    app.dependency_overrides[get_sender] = lambda: UnconfiguredSender()
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200
    assert r.json()["emails"]["reason"] == "RESEND_API_KEY är inte satt"


def test_missing_secret_is_internal_error(client, cfg, token):
    cfg.order_secret = ""
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 500
    assert r.json() == {"ok": False, "error": INTERNAL_ERROR_MESSAGE, "reason": "internal_error"}


def test_unexpected_error_is_internal_error(client, token):
    class BrokenCodec:
        def decode(self, token):
            raise RuntimeError("kaboom")

    app.dependency_overrides[get_codec] = lambda: BrokenCodec()
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 500
    assert r.json()["error"] == INTERNAL_ERROR_MESSAGE
    assert "kaboom" not in r.text


@pytest.mark.parametrize("path", ["/api/send-offer", "/api/place-order"])
def test_get_is_method_not_allowed(client, path):
    r = client.get(path)
    assert r.status_code == 405
    assert r.json()["ok"] is False


def test_out_of_range_created_at_still_sends(client, sender):
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19, "createdAt": 1e20})
    r = client.post("/api/send-offer", json={"submit": True, "token": token})
    assert r.status_code == 200
    assert sender.recipients == ["vertrieb@example.com"]


# ---------- place-order ----------

def test_place_order_sends_confirmation_to_signer(client, sender, token):
    signer = {"name": "Erika Muster", "email": "erika@example.com"}
    r = client.post("/api/place-order", json={"submit": True, "token": token, "signer": signer})
    assert r.status_code == 200
    data = r.json()
    assert data["message"] == "Beställningen har tagits emot."
    assert data["signer"] == signer
    assert sender.recipients == ["vertrieb@example.com", "kund@example.com", "erika@example.com"]
    mail = sender.sent[0]
    assert mail["subject"] == "Orderbekräftelse – Offert Q-2025-001"
    assert "Erika Muster" in mail["html"]
    assert "Offert Q-2025-001" in mail["text"]


def test_place_order_ignores_invalid_signer(client, sender, token):
    r = client.post("/api/place-order", json={"submit": True, "token": token, "signer": "Erika"})
    assert r.status_code == 200
    assert "signer" not in r.json()
    assert sender.recipients == ["vertrieb@example.com", "kund@example.com"]


def test_place_order_requires_submit(client, token):
    r = client.post("/api/place-order", json={"token": token})
    assert r.status_code == 400
    assert r.json()["reason"] == "missing_submit"


# ---------- order-link ----------

def test_order_link_signs_normalized_order(client, sample_payload):
    loose = dict(sample_payload)
    loose["monthly"] = loose.pop("monthlyRows")
    r = client.post("/api/order-link", json=loose)
    assert r.status_code == 200
    data = r.json()
    assert data["offerId"] == "Q-2025-001"
    assert data["url"].startswith("https://shop.example.com/order?token=")
    payload = OrderTokenCodec(StaticSecret(SECRET)).verify(data["token"])
    assert payload["monthlyRows"][0]["sku"] == "UC-USER"
    assert "monthly" not in payload


def test_order_link_rejects_incomplete_order(client):
    r = client.post("/api/order-link", json={"offerId": "Q-1"})
    assert r.status_code == 400
    assert r.json()["missing"] == ["monthlyRows", "oneTimeRows", "vatRate"]


def test_order_link_without_secret_is_internal_error(client, cfg, sample_payload):
    cfg.order_secret = ""
    r = client.post("/api/order-link", json=sample_payload)
    assert r.status_code == 500
    assert r.json()["reason"] == "internal_error"


# ---------- /order ----------

def test_order_page_renders_review(client, token):
    r = client.get("/order", params={"token": token})
    assert r.status_code == 200
    assert r.headers["content-type"].startswith("text/html")
    assert "Q-2025-001" in r.text
    assert "Muster GmbH" in r.text
    assert f'value="{token}"' in r.text
    assert "/api/place-order" in r.text


def test_order_page_escapes_customer_data(client, codec, sample_payload):
    sample_payload["customer"]["company"] = "<script>alert(1)</script>"
    r = client.get("/order", params={"token": codec.sign(sample_payload)})
    assert r.status_code == 200
    assert "<script>alert(1)" not in r.text
    assert "&lt;script&gt;alert(1)&lt;/script&gt;" in r.text


def test_order_page_without_token(client):
    r = client.get("/order")
    assert r.status_code == 400
    assert "Inget token hittades" in r.text


def test_order_page_with_bad_token_shows_fingerprint(client):
    r = client.get("/order", params={"token": "abcdefghijklmnop.qrstuvwxyz"})
    assert r.status_code == 400
    assert "Signaturen är ogiltig." in r.text
    assert "abcdefghijkl…" in r.text


def test_order_page_rejects_unsigned_when_required(client, cfg):
    cfg.require_signed_token = True
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19})
    r = client.get("/order", params={"token": token})
    assert r.status_code == 400
    assert "inte signerad" in r.text


def test_order_page_accepts_loose_token_by_default(client):
    token = _loose({"offerId": "Q-1", "monthly": [], "oneTime": [], "vat": 0.19})
    r = client.get("/order", params={"token": token})
    assert r.status_code == 200
    assert "Q-1" in r.text
