"""
Owner-scoped lookup helpers.

Every get-by-id in a mutation MUST go through these helpers instead of a
bare db.session.get(Model, pk). The dashboard is multi-tenant at the user
level: each record carries a user_id, and a caller may only read or change
records it owns.

The check is always the same three steps, in this order:
  1. the acting user exists            → NotFoundError("User")
  2. the target entity exists          → NotFoundError(<Model>)
  3. entity.user_id == acting user id  → AccessDeniedError

Usage:
    user = require_user(user_id)
    customer = get_owned(Customer, customer_id, user_id=user_id)

    # Child entities without a user_id column resolve their owner through
    # a parent (phase → project, metric → campaign):
    phase = get_owned_child(Phase, phase_id, parent=Project, parent_fk="project_id",
                            user_id=user_id)
"""

import logging

from app.core.exceptions import AccessDeniedError, NotFoundError
from app.models import db
from app.models.user import User

logger = logging.getLogger(__name__)


def require_user(user_id: int | None) -> User:
    """Return the acting user or raise NotFoundError."""
    user = db.session.get(User, user_id) if user_id is not None else None
    if user is None:
        raise NotFoundError(resource="User", resource_id=user_id)
    return user


def _check_owner(obj, owner_id: int, *, resource: str, pk, user_id: int):
    if owner_id != user_id:
        logger.warning(
            "Ownership check failed: %s id=%s owner=%s actor=%s",
            resource, pk, owner_id, user_id,
            extra={"user_id": user_id},
        )
        raise AccessDeniedError(resource=resource, resource_id=pk, user_id=user_id)
    return obj


def get_owned(model, pk: int, *, user_id: int, resource: str | None = None):
    """Fetch a single user-owned entity by PK, enforcing ownership.

    Args:
        model: SQLAlchemy model class with ``id`` and ``user_id`` columns.
        pk: Primary key value to look up.
        user_id: The acting user.
        resource: Name used in error messages; defaults to the model name.

    Returns:
        The model instance.

    Raises:
        NotFoundError: If the acting user or the entity does not exist.
        AccessDeniedError: If the entity belongs to another user.
    """
    if not hasattr(model, "user_id"):
        raise ValueError(
            f"{model.__name__} has no user_id column; use get_owned_child() instead."
        )
    resource = resource or model.__name__
    require_user(user_id)

    obj = db.session.get(model, pk)
    if obj is None:
        logger.debug("get_owned: %s id=%s not found", resource, pk)
        raise NotFoundError(resource=resource, resource_id=pk)
    return _check_owner(obj, obj.user_id, resource=resource, pk=pk, user_id=user_id)


def get_owned_child(model, pk: int, *, parent, parent_fk: str, user_id: int, resource: str | None = None):
    """Fetch an entity whose ownership is inherited from a parent row.

    Raises:
        NotFoundError: If the acting user, the entity or its parent is missing.
        AccessDeniedError: If the parent belongs to another user.
    """
    resource = resource or model.__name__
    require_user(user_id)

    obj = db.session.get(model, pk)
    if obj is None:
        raise NotFoundError(resource=resource, resource_id=pk)
    owner = db.session.get(parent, getattr(obj, parent_fk))
    if owner is None:
        raise NotFoundError(resource=parent.__name__, resource_id=getattr(obj, parent_fk))
    return _check_owner(obj, owner.user_id, resource=resource, pk=pk, user_id=user_id)
