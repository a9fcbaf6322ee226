from __future__ import annotations

from dataclasses import dataclass
from typing import Any, Dict, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from api.loaders import Loaders, SerializedSession, loaders


@dataclass
class RequestContext:
    """Per-request GraphQL context: authenticated user, raw body and fresh loaders."""

    remote_user: Any
    body: Dict[str, Any]
    loaders: Loaders
    db: SerializedSession


def make_request(remote_user: Any, query: str, session: Optional[AsyncSession] = None) -> RequestContext:
    db = SerializedSession(session)
    return RequestContext(
        remote_user=remote_user,
        body={"query": query},
        loaders=loaders(db, remote_user=remote_user),
        db=db,
    )
