from typing import Dict
from uuid import UUID

from pydantic import BaseModel


class CurrentUser(BaseModel):
    """Caller identity resolved from the bearer token. Identity itself is owned by the auth service;
    the ledger only consumes (id, school_id, role, permissions).
    """

    id: UUID
    school_id: UUID
    role: str
    permissions: Dict[str, Dict[str, bool]]
