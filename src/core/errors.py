"""
Feltyper för beställningslänkar.

Varje fel bär en stabil maskinläsbar `reason` (används i API-svaren)
och ett människoläsbart meddelande.
"""
from __future__ import annotations

from typing import List, Optional


class OrderLinkError(Exception):
    reason = "order_link_error"
    default_message = "Beställningen kunde inte behandlas."

    def __init__(self, message: Optional[str] = None) -> None:
        self.message = message or self.default_message
        super().__init__(self.message)


class ConfigurationError(OrderLinkError):
    """Serverns konfiguration saknas, t.ex. ORDER_SECRET. Visas aldrig i detalj för kunden."""

    reason = "configuration_error"
    default_message = "Servern är felkonfigurerad."


class SubmissionError(OrderLinkError):
    """Fel i själva anropet, t.ex. saknad submit-flagga eller token."""

    def __init__(self, reason: str, message: str) -> None:
        self.reason = reason
        super().__init__(message)


class TokenError(OrderLinkError):
    reason = "invalid_token"
    default_message = "Token ogiltig."


class MalformedToken(TokenError):
    reason = "malformed_token"
    default_message = "Tokenformatet är ogiltigt."


class InvalidSignature(TokenError):
    reason = "invalid_signature"
    default_message = "Signaturen är ogiltig."


class InvalidPayload(TokenError):
    reason = "invalid_payload"
    default_message = "Tokenets innehåll är inte giltig JSON."


class UndecodableToken(TokenError):
    reason = "undecodable_token"
    default_message = "Token ogiltigt: varken JSON eller base64url(JSON)."


class IncompletePayload(OrderLinkError):
    reason = "incomplete_payload"
    default_message = "Orderdata ofullständiga/ogiltiga."

    def __init__(self, missing: List[str], message: Optional[str] = None) -> None:
        self.missing = list(missing)
        super().__init__(message)
