from typing import Callable, Optional

from fastapi import Depends, Header, HTTPException, status

from .. import schemas
from ..crud.persistence import PersistenceAdapter, get_persistence
from ..models.user import UserRole
from ..utils import error_response


def get_adapter() -> PersistenceAdapter:
    """Persistence adapter for the request; tests override this dependency."""
    return get_persistence()


def get_current_actor(
    x_actor_id: Optional[str] = Header(default=None),
    x_actor_role: Optional[str] = Header(default=None),
    x_actor_name: Optional[str] = Header(default=None),
    x_actor_profile_id: Optional[str] = Header(default=None),
) -> schemas.Actor:
    """Resolve the caller from the identity headers set by the auth gateway."""
    credentials_exception = HTTPException(
        status_code=status.HTTP_401_UNAUTHORIZED,
        detail="Could not validate credentials",
    )
    if not x_actor_id or not x_actor_role:
        raise credentials_exception
    try:
        role = UserRole(x_actor_role.strip().upper())
    except ValueError:
        raise credentials_exception
    return schemas.Actor(
        id=x_actor_id,
        role=role,
        display_name=x_actor_name or "",
        profile_id=x_actor_profile_id,
    )


def require_roles(*roles: UserRole) -> Callable[..., schemas.Actor]:
    """Dependency factory allowing only ``roles`` through."""

    def _check(actor: schemas.Actor = Depends(get_current_actor)) -> schemas.Actor:
        if actor.role not in roles:
            raise error_response(
                "Not authorized",
                {"role": f"requires {', '.join(r.value for r in roles)}"},
                status.HTTP_403_FORBIDDEN,
            )
        return actor

    return _check


get_current_admin = require_roles(UserRole.ADMIN)
get_current_client = require_roles(UserRole.CLIENT, UserRole.ADMIN)
get_current_interpreter = require_roles(UserRole.INTERPRETER, UserRole.ADMIN)
