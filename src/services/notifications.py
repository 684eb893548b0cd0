from __future__ import annotations

import logging
from dataclasses import dataclass, field
from typing import Any, Dict, Iterable, List, Optional

import requests

logger = logging.getLogger("orderlink.notifications")

RESEND_API_URL = "https://api.resend.com/emails"


class NotificationError(Exception):
    pass


# ---------------------------------------------------------
# Avsändare
# ---------------------------------------------------------

class NotificationSender:
    """
    Gränssnitt för e-postutskick. send() skickar till EN mottagare
    och kastar NotificationError om det misslyckas.
    """

    configured = True

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        raise NotImplementedError


class UnconfiguredSender(NotificationSender):
    """Används när ingen API-nyckel finns – varje utskick misslyckas med tydlig orsak."""

    configured = False

    def __init__(self, reason: str = "RESEND_API_KEY är inte satt") -> None:
        self.reason = reason

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        raise NotificationError(self.reason)


class ResendSender(NotificationSender):
    """Skickar via Resends HTTP-API."""

    def __init__(
        self,
        api_key: str,
        from_email: str,
        *,
        session: Optional[requests.Session] = None,
        timeout: float = 30,
    ) -> None:
        self.api_key = api_key
        self.from_email = from_email
        self.session = session or requests.Session()
        self.timeout = timeout

    def send(self, to: str, subject: str, html: str, text: Optional[str] = None) -> None:
        headers = {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json",
        }
        body: Dict[str, Any] = {
            "from": self.from_email,
            "to": [to],
            "subject": subject,
            "html": html,
        }
        if text:
            body["text"] = text

        try:
            resp = self.session.post(RESEND_API_URL, headers=headers, json=body, timeout=self.timeout)
        except requests.RequestException as e:
            raise NotificationError(f"nätverksfel: {e}") from e

        if resp.status_code >= 300:
            try:
                detail = resp.json().get("message") or resp.text
            except ValueError:
                detail = resp.text
            raise NotificationError(f"Resend API {resp.status_code}: {detail}")


# ---------------------------------------------------------
# Mottagare & utskick
# ---------------------------------------------------------

def build_recipients(*candidates: Any) -> List[str]:
    """
    Mängdsemantik men med bevarad ordning. Tomma/icke-strängar hoppas över,
    dubbletter jämförs utan hänsyn till versaler.
    """
    seen = set()
    out: List[str] = []
    for candidate in candidates:
        if not isinstance(candidate, str):
            continue
        addr = candidate.strip()
        if not addr or addr.lower() in seen:
            continue
        seen.add(addr.lower())
        out.append(addr)
    return out


@dataclass
class RecipientResult:
    to: str
    ok: bool
    error: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"to": self.to, "ok": self.ok}
        if self.error is not None:
            d["error"] = self.error
        return d


@dataclass
class DispatchResult:
    ok: bool
    results: List[RecipientResult] = field(default_factory=list)
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        d: Dict[str, Any] = {"ok": self.ok, "results": [r.to_dict() for r in self.results]}
        if self.reason:
            d["reason"] = self.reason
        return d


def dispatch(
    sender: NotificationSender,
    subject: str,
    html: str,
    recipients: Iterable[str],
    *,
    text: Optional[str] = None,
) -> DispatchResult:
    """
    Skickar till varje mottagare för sig. Ett misslyckat utskick stoppar
    inte de andra; resultatet rapporteras per mottagare och kastas aldrig.
    """
    results: List[RecipientResult] = []
    for to in recipients:
        if not to:
            continue
        try:
            sender.send(to, subject, html, text)
        except Exception as e:  # noqa: BLE001
            logger.warning("Utskick till %s misslyckades: %s", to, e)
            results.append(RecipientResult(to=to, ok=False, error=str(e)))
        else:
            results.append(RecipientResult(to=to, ok=True))

    failed = [r for r in results if not r.ok]
    if not failed:
        return DispatchResult(ok=True, results=results)

    if not sender.configured:
        reason = getattr(sender, "reason", "E-post är inte konfigurerad")
    elif len(failed) == len(results):
        reason = "Utskick misslyckades"
    else:
        reason = "Delvis misslyckat"
    return DispatchResult(ok=False, results=results, reason=reason)
