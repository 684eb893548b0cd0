from __future__ import annotations

import base64
import binascii
import hashlib
import hmac
import json
from dataclasses import dataclass
from typing import Any, Callable, Mapping, Optional, Union
from urllib.parse import urlencode

from pydantic import BaseModel

from src.core.errors import (
    ConfigurationError,
    InvalidPayload,
    InvalidSignature,
    MalformedToken,
    UndecodableToken,
)

# Varken base64url-alfabetet eller signaturen innehåller punkt
SEPARATOR = "."

SecretProvider = Callable[[], Optional[str]]


# ---------------------------------------------------------
# Hjälpare
# ---------------------------------------------------------

def b64url_encode(raw: bytes) -> str:
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def b64url_decode(data: str) -> bytes:
    """
    base64url utan padding -> bytes. Paddingen läggs tillbaka här.
    Tecken utanför alfabetet ger binascii.Error i stället för att tyst ignoreras.
    """
    pad = "=" * (-len(data) % 4)
    return base64.b64decode(data + pad, altchars=b"-_", validate=True)


def canonical_json(payload: Union[Mapping[str, Any], BaseModel]) -> str:
    """
    Serialiserar payloaden deterministiskt (sorterade nycklar, kompakt).
    Pydantic-modeller dumpas med camelCase-alias och utan None-fält.
    """
    if isinstance(payload, BaseModel):
        data: Any = payload.model_dump(by_alias=True, exclude_none=True)
    else:
        data = dict(payload)
    return json.dumps(
        data,
        sort_keys=True,
        separators=(",", ":"),
        ensure_ascii=False,
        allow_nan=False,
    )


def _parse_json_bytes(raw: bytes) -> Any:
    return json.loads(raw.decode("utf-8"))


def decode_loose(token: str) -> Any:
    """
    Osignerad avkodning: rå JSON (börjar med '{') eller base64url(JSON).
    Ger inga integritetsgarantier.
    """
    raw = (token or "").strip()
    if not raw:
        raise UndecodableToken("Token saknas eller är tomt.")

    if raw.startswith("{"):
        try:
            return json.loads(raw)
        except ValueError:
            pass

    try:
        return _parse_json_bytes(b64url_decode(raw))
    except (binascii.Error, ValueError):
        raise UndecodableToken() from None


def order_url(base_url: str, token: str) -> str:
    return f"{base_url.rstrip('/')}/order?{urlencode({'token': token})}"


# ---------------------------------------------------------
# Secret providers
# ---------------------------------------------------------

class StaticSecret:
    """Fast hemlighet, t.ex. i tester eller från CLI-argument."""

    def __init__(self, secret: Optional[str]) -> None:
        self._secret = secret

    def __call__(self) -> Optional[str]:
        return self._secret


class SettingsSecret:
    """Läser ORDER_SECRET ur Settings vid varje anrop."""

    def __init__(self, settings: Any) -> None:
        self._settings = settings

    def __call__(self) -> Optional[str]:
        return getattr(self._settings, "order_secret", None)


# ---------------------------------------------------------
# Codec
# ---------------------------------------------------------

@dataclass(frozen=True)
class DecodedToken:
    payload: Any
    verified: bool

    @property
    def path(self) -> str:
        return "signed" if self.verified else "loose"


class OrderTokenCodec:
    """
    Signerar och verifierar beställningstoken:

        base64url(JSON(payload)) + "." + base64url(HMAC-SHA256(body))

    Hemligheten hämtas via en injicerad secret provider så att
    koden kan testas utan att röra miljövariabler.
    """

    def __init__(self, secret_provider: SecretProvider) -> None:
        self._secret_provider = secret_provider

    def _secret(self) -> bytes:
        secret = self._secret_provider()
        if not secret:
            raise ConfigurationError("ORDER_SECRET är inte satt.")
        return secret.encode("utf-8")

    def _signature(self, body: str) -> str:
        digest = hmac.new(self._secret(), body.encode("utf-8"), hashlib.sha256).digest()
        return b64url_encode(digest)

    def sign(self, payload: Union[Mapping[str, Any], BaseModel]) -> str:
        self._secret()
        body = b64url_encode(canonical_json(payload).encode("utf-8"))
        return f"{body}{SEPARATOR}{self._signature(body)}"

    def verify(self, token: str) -> Any:
        """
        Strikt väg: kräver body.signatur och korrekt HMAC.
        Jämförelsen görs i konstant tid.
        """
        parts = (token or "").strip().split(SEPARATOR)
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise MalformedToken()

        body, signature = parts
        expected = self._signature(body)
        if not hmac.compare_digest(expected.encode("utf-8"), signature.encode("utf-8")):
            raise InvalidSignature()

        try:
            return _parse_json_bytes(b64url_decode(body))
        except (binascii.Error, ValueError):
            raise InvalidPayload() from None

    def decode(self, token: str) -> DecodedToken:
        """
        Token med både body och signatur (och som inte är rå JSON) går alltid
        den signerade vägen, så ett manipulerat token faller aldrig tillbaka
        till den osignerade. Allt annat avkodas löst och markeras som overifierat.
        """
        raw = (token or "").strip()
        body, _, signature = raw.partition(SEPARATOR)
        if body and signature and not raw.startswith("{"):
            return DecodedToken(payload=self.verify(raw), verified=True)
        return DecodedToken(payload=decode_loose(raw), verified=False)
