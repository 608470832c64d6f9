from dataclasses import dataclass
from uuid import UUID


@dataclass(frozen=True)
class Actor:
    """Authenticated caller as attached to each request by the HTTP layer."""
    tenant_id: UUID
    actor_id: UUID
    role: str
