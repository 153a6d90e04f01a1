"""Acting user identity.

The engine never authenticates. It consumes an identity that the session
layer has already resolved.
"""

from dataclasses import dataclass
from typing import Any, Optional, Protocol


@dataclass(frozen=True)
class Actor:
    """The user (or system) performing an action."""

    id: str
    name: str
    role: str = "doctor"

    @property
    def reference(self) -> str:
        """FHIR reference string for the actor."""
        return f"Practitioner/{self.id}"


class IdentityProvider(Protocol):
    """Resolves the acting user for the current session."""

    async def current_actor(self, session: Optional[Any] = None) -> Actor:
        """Return the identity of the session's user."""
        ...


class StaticIdentityProvider:
    """Identity provider that always returns the same actor."""

    def __init__(self, actor: Actor) -> None:
        """Initialize with a fixed actor."""
        self.actor = actor

    async def current_actor(self, session: Optional[Any] = None) -> Actor:
        """Return the configured actor."""
        return self.actor
