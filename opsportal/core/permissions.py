"""
Permission model: a permission is a (resource, action) pair; the reserved
action "manage" grants every present and future action on its resource.
"""

from dataclasses import dataclass
from typing import FrozenSet, Iterable, Optional

MANAGE = "manage"
SEPARATOR = ":"


class InvalidPermission(ValueError):
    pass


@dataclass(frozen=True, order=True)
class Permission:
    resource: str
    action: str

    @classmethod
    def parse(cls, name: str) -> "Permission":
        """Parse "resource:action". Raises InvalidPermission on malformed names."""
        resource, sep, action = (name or "").strip().partition(SEPARATOR)
        if not sep or not resource or not action or SEPARATOR in action:
            raise InvalidPermission(f"Invalid permission name: {name!r}")
        return cls(resource=resource, action=action)

    @classmethod
    def manage(cls, resource: str) -> "Permission":
        return cls(resource=resource, action=MANAGE)

    @property
    def name(self) -> str:
        return f"{self.resource}{SEPARATOR}{self.action}"

    @property
    def is_manage(self) -> bool:
        return self.action == MANAGE

    def covers(self, other: "Permission") -> bool:
        if self.resource != other.resource:
            return False
        return self.is_manage or self.action == other.action

    def __str__(self) -> str:
        return self.name


class PermissionSet:
    """Immutable set of granted permissions for one profile."""

    __slots__ = ("_grants",)

    def __init__(self, grants: Iterable[Permission] = ()):
        self._grants: FrozenSet[Permission] = frozenset(grants)

    @classmethod
    def from_names(cls, names: Iterable[str]) -> "PermissionSet":
        return cls(Permission.parse(n) for n in names)

    @classmethod
    def empty(cls) -> "PermissionSet":
        return cls()

    def has_permission(self, permission) -> bool:
        """True if the exact grant or "<resource>:manage" is held."""
        wanted = _coerce(permission)
        if wanted is None:
            return False
        return wanted in self._grants or Permission.manage(wanted.resource) in self._grants

    def has_any_permission(self, permissions: Iterable) -> bool:
        return any(self.has_permission(p) for p in permissions)

    def has_all_permissions(self, permissions: Iterable) -> bool:
        return all(self.has_permission(p) for p in permissions)

    def names(self):
        return sorted(p.name for p in self._grants)

    def __contains__(self, permission) -> bool:
        return self.has_permission(permission)

    def __iter__(self):
        return iter(sorted(self._grants))

    def __len__(self) -> int:
        return len(self._grants)

    def __bool__(self) -> bool:
        return bool(self._grants)

    def __eq__(self, other) -> bool:
        if not isinstance(other, PermissionSet):
            return NotImplemented
        return self._grants == other._grants

    def __hash__(self) -> int:
        return hash(self._grants)

    def __repr__(self) -> str:
        return f"PermissionSet({self.names()!r})"


def _coerce(permission) -> Optional[Permission]:
    if isinstance(permission, Permission):
        return permission
    try:
        return Permission.parse(permission)
    except InvalidPermission:
        return None


def has_permission(permission_set: PermissionSet, permission) -> bool:
    return permission_set.has_permission(permission)


def has_any_permission(permission_set: PermissionSet, permissions: Iterable) -> bool:
    return permission_set.has_any_permission(permissions)


def has_all_permissions(permission_set: PermissionSet, permissions: Iterable) -> bool:
    return permission_set.has_all_permissions(permissions)
