"""
Staff authorization for manual moderation commands.

The rules, in order:
- the panic controller is always allowed
- with no staff roles configured, the Discord permission alone is enough
- otherwise the invoker needs a staff role and the permission
"""

from __future__ import annotations

from dataclasses import dataclass
from typing import Iterable

from modguard.datatypes.discord_datatypes import UserID

NOT_AUTHORIZED = "You are not authorized to use this command."


@dataclass(frozen=True, slots=True)
class Invoker:
    """The member running a command, with their roles and guild permissions."""

    user_id: UserID
    display: str = ""
    role_ids: frozenset[int] = frozenset()
    permissions: frozenset[str] = frozenset()
    is_member: bool = True

    def has_permission(self, name: str) -> bool:
        return "administrator" in self.permissions or name in self.permissions


@dataclass(frozen=True, slots=True)
class Authorization:
    ok: bool
    reason: str | None = None


def ensure_staff(
    invoker: Invoker | None,
    required_permissions: Iterable[str],
    staff_role_ids: Iterable[int] = (),
    panic_controller_id: int | None = None,
) -> Authorization:
    if invoker is None or not invoker.is_member:
        return Authorization(False, "No member context")

    if panic_controller_id is not None and invoker.user_id == panic_controller_id:
        return Authorization(True)

    staff_role_ids = set(staff_role_ids)
    has_perms = all(invoker.has_permission(name) for name in required_permissions)
    if not staff_role_ids and has_perms:
        return Authorization(True)
    if has_perms and staff_role_ids & invoker.role_ids:
        return Authorization(True)
    return Authorization(False, "Insufficient permissions")
