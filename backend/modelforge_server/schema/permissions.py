"""
Permission evaluation for model permission matrices.

A role may perform an action when its PermissionSet holds the "all"
marker or lists the action explicitly. A role without an entry in the
matrix is denied everything.

Invariants:
    - Pure: no I/O, no logging on the allow path
    - "all" satisfies any action, including ones outside Action
    - Unknown roles and unknown actions never raise; they are denied

How to change safely:
    - Keep the two-part check (allow_all OR explicit membership); do not
      expand "all" into the stored action set
"""

from __future__ import annotations

import logging
from typing import Mapping, Union

from ..errors import PermissionDeniedError
from .types import Action, PermissionSet, Role

logger = logging.getLogger(__name__)


def _as_role(role: Union[Role, str]) -> Role | None:
    if isinstance(role, Role):
        return role
    try:
        return Role(role)
    except ValueError:
        return None


def is_allowed(
    matrix: Mapping[Role, PermissionSet],
    role: Union[Role, str],
    action: Union[Action, str],
) -> bool:
    """Decide whether a role may perform an action.

    Args:
        matrix: Role -> PermissionSet for one model
        role: Role (or its string value) from the caller's claim
        action: Requested action (or its string value)

    Returns:
        True if the role holds "all" or the specific action

    Example:
        >>> matrix = {Role.VIEWER: PermissionSet(frozenset({Action.READ}))}
        >>> is_allowed(matrix, Role.VIEWER, Action.READ)
        True
        >>> is_allowed(matrix, Role.VIEWER, "delete")
        False
    """
    resolved = _as_role(role)
    if resolved is None:
        return False
    permissions = matrix.get(resolved)
    if permissions is None:
        return False
    if permissions.allow_all:
        return True
    if not isinstance(action, Action):
        try:
            action = Action(action)
        except ValueError:
            return False
    return action in permissions.actions


def check_permission_or_raise(
    matrix: Mapping[Role, PermissionSet],
    role: Union[Role, str],
    action: Action,
    model_name: str,
) -> None:
    """Check a permission and raise if denied.

    Raises:
        PermissionDeniedError: If the role lacks the action
    """
    if not is_allowed(matrix, role, action):
        role_name = role.value if isinstance(role, Role) else str(role)
        logger.info(
            "Permission denied",
            extra={"role": role_name, "action": action.value, "model": model_name},
        )
        raise PermissionDeniedError(role_name, action.value, model_name)
