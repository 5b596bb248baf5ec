"""Bearer token snapshot shared by the identity and authorization layers.

Pattern: Expiring Credential Snapshot
--------------------------------------
Every remote credential in the library (managed identity tokens for vault and
app-config handlers, application tokens cached per resource) is held as an
immutable ``AccessToken``.  Refreshing a credential replaces the snapshot
instead of mutating it, so a token handed to a caller never changes under it.

Expiry is an absolute UTC moment.  A token is expired once ``now`` reaches
``expires_at``; there is no grace window unless the owner applies a skew.
"""

from __future__ import annotations

import dataclasses
import datetime
from typing import Any

_LEGACY_EXPIRY_FORMAT = "%m/%d/%Y %H:%M:%S %z"


@dataclasses.dataclass(frozen=True)
class AccessToken:
    """Immutable bearer token for a single resource (audience).

    Attributes:
        token:      The raw bearer value.  Never logged.
        resource:   Audience the token was issued for.
        expires_at: UTC moment after which the token must be refreshed.
    """

    token: str
    resource: str
    expires_at: datetime.datetime

    @property
    def is_expired(self) -> bool:
        return datetime.datetime.now(datetime.UTC) >= self.expires_at

    def with_skew(self, seconds: float) -> AccessToken:
        """Return a copy whose expiry is shifted by *seconds*."""
        if not seconds:
            return self
        return dataclasses.replace(
            self, expires_at=self.expires_at + datetime.timedelta(seconds=seconds)
        )

    def __str__(self) -> str:
        return (
            f"AccessToken(resource={self.resource}, "
            f"expires_at={self.expires_at.isoformat()}, expired={self.is_expired})"
        )


def parse_expiry(value: Any) -> datetime.datetime:
    """Parse an ``expires_on`` value returned by an identity endpoint.

    Accepts epoch seconds (number or numeric string), ISO-8601, or the legacy
    ``MM/DD/YYYY HH:MM:SS +00:00`` format.  Raises ``ValueError`` otherwise.
    """
    if isinstance(value, datetime.datetime):
        moment = value
    elif isinstance(value, (int, float)):
        moment = datetime.datetime.fromtimestamp(value, datetime.UTC)
    elif isinstance(value, str):
        raw = value.strip()
        if raw.isdigit():
            moment = datetime.datetime.fromtimestamp(int(raw), datetime.UTC)
        else:
            try:
                moment = datetime.datetime.fromisoformat(raw)
            except ValueError:
                moment = datetime.datetime.strptime(raw, _LEGACY_EXPIRY_FORMAT)
    else:
        raise ValueError(f"Unsupported expiry value: {value!r}")

    if moment.tzinfo is None:
        moment = moment.replace(tzinfo=datetime.UTC)
    return moment
