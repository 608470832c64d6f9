from typing import Generator

from fastapi import Depends, HTTPException, Request, status
from fastapi.security import OAuth2PasswordBearer
from sqlalchemy.orm import Session

from schoolflow.core.approval import Actor, ApprovalService
from schoolflow.core.security import decode_token

oauth2_scheme = OAuth2PasswordBearer(tokenUrl="/api/auth/login", auto_error=False)

# Roles allowed to configure approval workflows for their school
WORKFLOW_ADMIN_ROLES = {"principal", "school_director"}


def get_db(request: Request) -> Generator:
    """Database session dependency."""
    db = request.app.state.session_factory()
    try:
        yield db
    finally:
        db.close()


def get_approval_service(request: Request) -> ApprovalService:
    """The service built at application startup."""
    return request.app.state.approval_service


def get_current_actor(token: str = Depends(oauth2_scheme)) -> Actor:
    """Get the authenticated caller from the bearer token."""
    actor = decode_token(token) if token else None
    if actor is None:
        raise HTTPException(
            status_code=status.HTTP_401_UNAUTHORIZED,
            detail="Could not validate credentials",
            headers={"WWW-Authenticate": "Bearer"},
        )
    return actor


def require_workflow_admin(actor: Actor = Depends(get_current_actor)) -> Actor:
    """Restrict an endpoint to school leadership."""
    if actor.role not in WORKFLOW_ADMIN_ROLES:
        raise HTTPException(
            status_code=status.HTTP_403_FORBIDDEN,
            detail="Only principals and school directors may manage workflows",
        )
    return actor
