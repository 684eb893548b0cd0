# tests/conftest.py
import os, sys
# lägg till projektroten (mappen som innehåller "src") först i sys.path
PROJECT_ROOT = os.path.abspath(os.path.join(os.path.dirname(__file__), ".."))
if PROJECT_ROOT not in sys.path:
    sys.path.insert(0, PROJECT_ROOT)

import pytest

from src.services.notifications import NotificationError, NotificationSender
from src.services.order_token import OrderTokenCodec, StaticSecret

SECRET = "test-secret-123"


class RecordingSender(NotificationSender):
    """Sparar alla utskick i minnet; adresser i fail_for misslyckas."""

    def __init__(self, fail_for=()):
        self.sent = []
        self.fail_for = set(fail_for)

    def send(self, to, subject, html, text=None):
        if to in self.fail_for:
            raise NotificationError(f"studs: {to}")
        self.sent.append({"to": to, "subject": subject, "html": html, "text": text})

    @property
    def recipients(self):
        return [m["to"] for m in self.sent]


@pytest.fixture
def codec():
    return OrderTokenCodec(StaticSecret(SECRET))


@pytest.fixture
def sample_payload():
    return {
        "offerId": "Q-2025-001",
        "customer": {
            "company": "Muster GmbH",
            "contact": "Erika Muster",
            "email": "kund@example.com",
            "phone": "+49 211 000",
            "street": "Hauptstraße 1",
            "zip": "40468",
            "city": "Düsseldorf",
        },
        "monthlyRows": [
            {"sku": "UC-USER", "name": "UC User", "quantity": 3, "unit": 10.0},
            {"sku": "UC-FAX", "name": "Fax", "quantity": 1, "unit": 5.0, "total": 5.0},
        ],
        "oneTimeRows": [
            {"sku": "SETUP", "name": "Setup", "quantity": 1, "listUnit": 200.0, "offerUnit": 150.0},
        ],
        "vatRate": 0.19,
        "createdAt": 1735689600000,
    }
