"""
Identity and Profile Models.

``ProviderIdentity`` is what the credential provider reports about the
signed-in account.  ``UserProfile`` is the durable user record kept in the
profile store, keyed by the provider-assigned identity.
"""

from __future__ import annotations

from typing import Mapping, Optional

from pydantic import BaseModel, Field, SecretStr


class ProviderIdentity(BaseModel):
    """An account as reported by the credential provider.

    ``id`` is opaque and stable for the lifetime of the account; it is the
    join key between the provider and the profile store.
    """

    id: str = Field(min_length=1)
    email: str = ""
    email_verified: bool = False

    model_config = {"frozen": True}


class UserProfile(BaseModel):
    """A user's durable profile record.

    ``secret`` is write-only: it is kept in memory as a ``SecretStr`` for
    the flow that captured it, is never compared, and is excluded from
    the durable record.  ``verified`` tracks the provider's latest known
    verification flag once reconciliation has run.
    """

    id: str = Field(min_length=1)
    display_name: str = ""
    email: str = ""
    secret: SecretStr = Field(default=SecretStr(""), exclude=True, repr=False)
    verified: bool = False

    model_config = {"frozen": True, "from_attributes": True}

    @classmethod
    def provisional(
        cls,
        identity: ProviderIdentity,
        display_name: str = "",
        email: Optional[str] = None,
        secret: str = "",
    ) -> "UserProfile":
        """Build a profile from provider data before the durable record is known."""
        return cls(
            id=identity.id,
            display_name=display_name,
            email=email if email is not None else identity.email,
            secret=SecretStr(secret),
            verified=identity.email_verified,
        )

    @classmethod
    def from_record(cls, row: Mapping[str, object]) -> "UserProfile":
        """Build a profile from a store row (Supabase JSON or ``sqlite3.Row``)."""
        return cls(
            id=str(row["id"]),
            display_name=str(row["display_name"] or ""),
            email=str(row["email"] or ""),
            verified=bool(row["verified"]),
        )

    def to_record(self) -> dict[str, object]:
        """Return the row written to the profile store (no secret)."""
        return {
            "id": self.id,
            "display_name": self.display_name,
            "email": self.email,
            "verified": self.verified,
        }
