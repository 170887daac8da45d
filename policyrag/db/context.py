"""Request context for tenancy enforcement."""

from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class RequestContext:
    """Request context containing the caller's identity.

    The user id is the ownership key for documents and the namespace key
    for the caller's vectors.
    """

    user_id: UUID

    @property
    def namespace(self) -> str:
        """Vector index namespace owned by this caller."""
        return str(self.user_id)
