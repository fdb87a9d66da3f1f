"""Role permission resolution.

Turns a user's role assignments into an effective permission matrix and
answers point queries against it. Everything here is a pure function over
already-loaded data; loading assignments from the database is the job of
``RoleService``.

Merge precedence: roles are applied in descending ``priority`` order and
each one overwrites the keys it defines, so the lowest-priority role writes
last and wins any conflict on the same resource/action pair. Roles with
equal priority keep their input order, so the one listed later wins. A
missing priority sorts below every number and is therefore applied last.
"""

from collections.abc import Mapping
from datetime import datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple

Permissions = Dict[str, Dict[str, bool]]

OWNER_ROLE_NAME = "owner"
OWNER_ACCOUNT_ROLE = "owner"

# Resource -> actions recognised by the client. The set is open: roles may
# carry other resources and they merge the same way.
RESOURCE_ACTIONS: Dict[str, Tuple[str, ...]] = {
    "dashboard": ("view", "edit"),
    "users": ("view", "edit", "delete", "assignRoles"),
    "agents": ("view", "create", "edit", "delete", "curate"),
    "creations": ("view", "create", "edit", "delete", "curate"),
    "lore": ("view", "create", "edit", "delete", "curate"),
    "chat": ("access", "moderate"),
    "messaging": ("send", "moderate"),
    "events": ("view", "create", "edit", "delete", "moderate"),
    "audit": ("view",),
    "settings": ("view", "edit"),
    "roles": ("view", "create", "edit", "delete", "assign"),
    "ceremonies": ("view", "author", "edit", "delete"),
    "guardian": ("view", "configure"),
}

_LOWEST_PRIORITY = float("-inf")


def _field(obj: Any, name: str, default: Any = None) -> Any:
    """Read ``name`` from a mapping or an object (ORM row, dataclass)."""
    if obj is None:
        return default
    if isinstance(obj, Mapping):
        return obj.get(name, default)
    return getattr(obj, name, default)


def _priority(assignment: Any) -> float:
    value = _field(_field(assignment, "role"), "priority")
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return _LOWEST_PRIORITY
    return value


def full_permissions() -> Permissions:
    """Matrix granting every recognised resource/action."""
    return {
        resource: {action: True for action in actions}
        for resource, actions in RESOURCE_ACTIONS.items()
    }


def empty_permissions() -> Permissions:
    """Matrix denying every recognised resource/action."""
    return {
        resource: {action: False for action in actions}
        for resource, actions in RESOURCE_ACTIONS.items()
    }


def normalize_permissions(raw: Any) -> Permissions:
    """Coerce a raw permission document into ``resource -> action -> bool``.

    Leaves that are not exactly ``True`` become ``False``; resource entries
    that are not mappings are dropped.
    """
    if not isinstance(raw, Mapping):
        return {}
    normalized: Permissions = {}
    for resource, actions in raw.items():
        if not isinstance(actions, Mapping):
            continue
        normalized[str(resource)] = {
            str(action): value is True for action, value in actions.items()
        }
    return normalized


def is_expired(assignment: Any, now: Optional[datetime] = None) -> bool:
    """True once ``expires_at`` has been reached. Naive timestamps are UTC."""
    expires_at = _field(assignment, "expires_at")
    if expires_at is None:
        return False
    if expires_at.tzinfo is None:
        expires_at = expires_at.replace(tzinfo=timezone.utc)
    return expires_at <= (now or datetime.now(timezone.utc))


def is_assignment_effective(assignment: Any, now: Optional[datetime] = None) -> bool:
    """An assignment counts when it is active, unexpired and its role is enabled."""
    if not _field(assignment, "is_active", True):
        return False
    role = _field(assignment, "role")
    if role is None or not _field(role, "is_active", True):
        return False
    return not is_expired(assignment, now)


def active_assignments(assignments: Iterable[Any], now: Optional[datetime] = None) -> List[Any]:
    return [a for a in assignments if is_assignment_effective(a, now)]


def compute_effective_permissions(assignments: Iterable[Any]) -> Permissions:
    """Merge the permission matrices of all active assignments.

    The result holds the union of every resource/action any active role
    defines. On conflict the lowest-priority role's value is kept.
    """
    effective: Permissions = {}
    for assignment in sorted(active_assignments(assignments), key=_priority, reverse=True):
        role = _field(assignment, "role")
        for resource, actions in normalize_permissions(_field(role, "permissions")).items():
            effective.setdefault(resource, {}).update(actions)
    return effective


def has_permission(effective: Mapping, resource: str, action: str, is_owner: bool = False) -> bool:
    """Default-deny point check."""
    if is_owner:
        return True
    actions = effective.get(resource) if isinstance(effective, Mapping) else None
    if not isinstance(actions, Mapping):
        return False
    return actions.get(action) is True


def _split_check(check: Any) -> Tuple[str, str]:
    if isinstance(check, Mapping):
        return check.get("resource", ""), check.get("action", "")
    resource, action = check
    return resource, action


def has_any_permission(effective: Mapping, checks: Iterable[Any], is_owner: bool = False) -> bool:
    if is_owner:
        return True
    return any(has_permission(effective, *_split_check(c)) for c in checks)


def has_all_permissions(effective: Mapping, checks: Iterable[Any], is_owner: bool = False) -> bool:
    if is_owner:
        return True
    return all(has_permission(effective, *_split_check(c)) for c in checks)


def get_primary_role(assignments: Iterable[Any]) -> Optional[Any]:
    """Active assignment with the highest priority.

    Ties go to the assignment listed first.
    """
    ranked = sorted(active_assignments(assignments), key=_priority, reverse=True)
    return ranked[0] if ranked else None


def is_owner(
    email: Optional[str] = None,
    account_role: Optional[str] = None,
    assignments: Iterable[Any] = (),
    owner_email: Optional[str] = None,
) -> bool:
    """Owner is the ``owner`` account marker, an exact match on the configured
    owner email, or an active assignment of the ``owner`` system role."""
    if account_role == OWNER_ACCOUNT_ROLE:
        return True
    if owner_email and email == owner_email:
        return True
    return any(
        _field(_field(a, "role"), "name") == OWNER_ROLE_NAME
        for a in active_assignments(assignments)
    )


class PermissionSet:
    """Resolved permissions for one user, as handed to request handlers."""

    def __init__(
        self,
        effective: Optional[Permissions] = None,
        is_owner: bool = False,
        assignments: Optional[List[Any]] = None,
    ):
        self.effective: Permissions = effective or {}
        self.is_owner = is_owner
        self.assignments: List[Any] = assignments or []

    @classmethod
    def from_assignments(cls, assignments: Iterable[Any], owner: bool = False) -> "PermissionSet":
        active = active_assignments(assignments)
        owner = owner or is_owner(assignments=active)
        effective = full_permissions() if owner else compute_effective_permissions(active)
        return cls(effective=effective, is_owner=owner, assignments=active)

    def has_permission(self, resource: str, action: str) -> bool:
        return has_permission(self.effective, resource, action, is_owner=self.is_owner)

    def has_any_permission(self, checks: Iterable[Any]) -> bool:
        return has_any_permission(self.effective, checks, is_owner=self.is_owner)

    def has_all_permissions(self, checks: Iterable[Any]) -> bool:
        return has_all_permissions(self.effective, checks, is_owner=self.is_owner)

    @property
    def primary_role(self) -> Optional[Any]:
        return get_primary_role(self.assignments)

    def __repr__(self) -> str:
        return f"<PermissionSet owner={self.is_owner} resources={sorted(self.effective)}>"
