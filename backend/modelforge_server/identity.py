"""
Caller identity as delivered by the upstream Identity service.

The server never issues or verifies credentials. It trusts the
(user id, role) pair attached to each request and only checks that the
role belongs to the closed Role enumeration.
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Optional

from .errors import IdentityError
from .schema.types import Role


@dataclass(frozen=True)
class Identity:
    """A verified caller.

    Attributes:
        user_id: Opaque user identifier (may be empty for service callers)
        role: The caller's role claim
    """

    user_id: str
    role: Role

    @classmethod
    def from_claims(cls, user_id: Optional[str], role: Optional[str]) -> Identity:
        """Build an Identity from raw claim values.

        Raises:
            IdentityError: If the role is missing or not a known Role
        """
        if not role:
            raise IdentityError("Missing role claim")
        try:
            resolved = Role(role)
        except ValueError:
            valid = [r.value for r in Role]
            raise IdentityError(f"Unknown role '{role}'. Valid roles: {valid}") from None
        return cls(user_id=user_id or "", role=resolved)
