"""Validity window of the signed-in credential.

The dashboard only counts attempts finished while the current credential was
valid. Token decoding belongs to the auth layer; this module only turns the
``iat``/``exp`` claims it hands over into an inclusive millisecond window.
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime, timezone

from quiz_session.constants.quiz_constants import CREDENTIAL_MAX_LIFETIME_HOURS

# Epoch values above this are already in milliseconds.
_MILLIS_THRESHOLD = 1_000_000_000_000


@dataclass(slots=True, frozen=True)
class CredentialWindow:
    issued_at_millis: int | None = None
    expires_at_millis: int | None = None

    @classmethod
    def unbounded(cls) -> CredentialWindow:
        return cls()

    @classmethod
    def from_claims(
        cls,
        claims: dict[str, object],
        max_lifetime_hours: int | None = CREDENTIAL_MAX_LIFETIME_HOURS,
    ) -> CredentialWindow:
        """Build a window from ``iat``/``exp`` claims.

        A missing claim leaves that side open. The expiry is capped at
        ``iat + max_lifetime_hours`` when both claims are known.
        """
        issued = coerce_timestamp_millis(claims.get("iat"))
        expires = coerce_timestamp_millis(claims.get("exp"))
        if issued is not None and expires is not None and max_lifetime_hours is not None:
            expires = min(expires, issued + max_lifetime_hours * 3600 * 1000)
        return cls(issued_at_millis=issued, expires_at_millis=expires)

    def contains(self, millis: int) -> bool:
        if self.issued_at_millis is not None and millis < self.issued_at_millis:
            return False
        if self.expires_at_millis is not None and millis > self.expires_at_millis:
            return False
        return True

    def is_expired(self, now_millis: int) -> bool:
        return self.expires_at_millis is not None and now_millis > self.expires_at_millis


def coerce_timestamp_millis(raw: object) -> int | None:
    """Accept datetimes, epoch seconds/millis (numbers or numeric strings) or ISO-8601.

    Returns ``None`` for anything unparseable, which callers treat as unbounded.
    """
    if raw is None or isinstance(raw, bool):
        return None
    if isinstance(raw, datetime):
        moment = raw if raw.tzinfo else raw.replace(tzinfo=timezone.utc)
        return int(moment.timestamp() * 1000)
    if isinstance(raw, (int, float)):
        return _epoch_to_millis(int(raw))
    if isinstance(raw, str):
        text = raw.strip()
        if not text:
            return None
        try:
            return _epoch_to_millis(int(text))
        except ValueError:
            pass
        try:
            return coerce_timestamp_millis(datetime.fromisoformat(text.replace("Z", "+00:00")))
        except ValueError:
            return None
    return None


def _epoch_to_millis(value: int) -> int:
    return value if value > _MILLIS_THRESHOLD else value * 1000
