"""
Role-Based Access Control (RBAC) resolution for OncoSafe.

Decides allow/deny for a ``Subject`` against an ``AuthorizationCatalog``.
Every function here is a pure function of ``(catalog, subject, query)``:
no I/O, no hidden state, safe to call concurrently.

**Resolution rules:**

* A subject holds a permission if it was granted directly, or if any of
  its roles -- looked up case-insensitively in the catalog -- grants it.
* ``has_role`` is a *literal* membership test on the subject's own role
  list.  Only catalog lookups are case-insensitive.
* The hierarchy level of a subject is the highest ``hierarchy`` among its
  resolvable roles, ``0`` if none resolve.
* ``can_manage_user`` requires a strictly higher hierarchy level *and*
  the ``manage_users`` permission.

**Fail-closed:**  A ``None`` subject, unknown ids, and malformed subject
fields never raise -- they resolve to ``False``, ``0`` or an empty list.
Only the ``require_*`` guards raise, with ``AccessDenied``.

Callers (UI gating, route guards, API middleware) normally go through
``RBACService``, which binds a catalog or a ``CatalogRegistry``.
"""

from __future__ import annotations

import logging
from collections.abc import Iterable, Iterator
from typing import Any, Optional, Union

from oncosafe_rbac.catalog import DEFAULT_CATALOG, AuthorizationCatalog, CatalogRegistry
from oncosafe_rbac.models import Permission, Role, Subject

logger = logging.getLogger(__name__)

MANAGE_USERS = "manage_users"
ADMIN_CONSOLE_ACCESS = "admin_console_access"
VIEW_VISITOR_ANALYTICS = "view_visitor_analytics"
MANAGE_ANALYTICS = "manage_analytics"

# Roles that open the admin console even without the explicit permission.
ADMIN_CONSOLE_ROLES: tuple[str, ...] = ("super_admin", "system_admin", "analytics_admin")


# ---------------------------------------------------------------------------
# Errors
# ---------------------------------------------------------------------------

class AccessDenied(PermissionError):
    """Raised by the ``require_*`` guards when a check denies.

    Subclasses the built-in ``PermissionError`` so callers already handling
    it keep working.
    """

    def __init__(self, message: str, subject_id: Optional[str] = None,
                 required: tuple[str, ...] = ()) -> None:
        super().__init__(message)
        self.subject_id = subject_id
        self.required = required


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------

def _is_id_list(values: Any) -> bool:
    return isinstance(values, str) or (values is not None and isinstance(values, Iterable))


def _ids(values: Any) -> list[Any]:
    """Normalize a caller-supplied id list; a bare string is one id.

    Non-string items are kept so the per-id checks deny them.
    """
    if isinstance(values, str):
        return [values]
    if not _is_id_list(values):
        return []
    return list(values)


def _resolved_roles(catalog: AuthorizationCatalog, subject: Subject) -> Iterator[Role]:
    # Lazy so has_permission stops at the first granting role.
    for role_id in subject.roles:
        role = catalog.get_role(role_id)
        if role is not None:
            yield role


def _describe(subject: Optional[Subject]) -> str:
    if subject is None:
        return "<no subject>"
    return subject.subject_id or "<anonymous>"


# ---------------------------------------------------------------------------
# Permission checks
# ---------------------------------------------------------------------------

def has_permission(catalog: AuthorizationCatalog, subject: Any, permission_id: str) -> bool:
    """Check whether a subject holds a permission.

    Args:
        catalog: The catalog used to resolve role ids.
        subject: A ``Subject`` (or subject-like value), or None.
        permission_id: The permission id to check.

    Returns:
        True if granted directly or through any resolvable role.
    """
    subject = Subject.coerce(subject)
    if subject is None or not isinstance(permission_id, str):
        return False

    if permission_id in subject.permissions:
        return True

    return any(
        role.grants(permission_id) for role in _resolved_roles(catalog, subject)
    )


def has_any_permission(catalog: AuthorizationCatalog, subject: Any,
                       permission_ids: Iterable[str]) -> bool:
    """True if the subject holds at least one of ``permission_ids``.

    An empty requirement list denies.
    """
    subject = Subject.coerce(subject)
    return any(has_permission(catalog, subject, pid) for pid in _ids(permission_ids))


def has_all_permissions(catalog: AuthorizationCatalog, subject: Any,
                        permission_ids: Iterable[str]) -> bool:
    """True if the subject holds every one of ``permission_ids``.

    An empty requirement list is vacuously satisfied for a present subject;
    with no subject, or with a requirement list that is not a list of ids,
    there is nothing to satisfy it.
    """
    subject = Subject.coerce(subject)
    if subject is None or not _is_id_list(permission_ids):
        return False
    return all(has_permission(catalog, subject, pid) for pid in _ids(permission_ids))


# ---------------------------------------------------------------------------
# Role checks
# ---------------------------------------------------------------------------

def has_role(subject: Any, role_id: str) -> bool:
    """Literal (case-sensitive) membership test against ``subject.roles``."""
    subject = Subject.coerce(subject)
    if subject is None:
        return False
    return role_id in subject.roles


def has_any_role(subject: Any, role_ids: Iterable[str]) -> bool:
    subject = Subject.coerce(subject)
    return any(has_role(subject, rid) for rid in _ids(role_ids))


# ---------------------------------------------------------------------------
# Hierarchy and aggregate permissions
# ---------------------------------------------------------------------------

def get_user_hierarchy_level(catalog: AuthorizationCatalog, subject: Any) -> int:
    """Return the highest hierarchy among the subject's resolvable roles.

    Args:
        catalog: The catalog used to resolve role ids.
        subject: A ``Subject`` (or subject-like value), or None.

    Returns:
        The maximum ``Role.hierarchy``, or 0 if no role resolves.
    """
    subject = Subject.coerce(subject)
    if subject is None:
        return 0
    return max((role.hierarchy for role in _resolved_roles(catalog, subject)), default=0)


def get_user_permissions(catalog: AuthorizationCatalog, subject: Any) -> list[Permission]:
    """Return every permission the subject effectively holds.

    The union of direct permission ids and the permissions of each
    resolvable role, deduplicated and resolved to ``Permission`` records.
    Ids missing from the catalog are dropped.

    Args:
        catalog: The catalog used for resolution.
        subject: A ``Subject`` (or subject-like value), or None.

    Returns:
        List of ``Permission`` records, direct grants first.
    """
    subject = Subject.coerce(subject)
    if subject is None:
        return []

    permission_ids: dict[str, None] = dict.fromkeys(subject.permissions)
    for role in _resolved_roles(catalog, subject):
        permission_ids.update(dict.fromkeys(role.permissions))

    permissions = []
    for pid in permission_ids:
        permission = catalog.get_permission(pid)
        if permission is None:
            logger.debug("Dropping unknown permission id '%s' for %s", pid, _describe(subject))
            continue
        permissions.append(permission)
    return permissions


def can_manage_user(catalog: AuthorizationCatalog, acting_subject: Any, target_subject: Any) -> bool:
    """Check whether one subject may manage another.

    Requires both a strictly higher hierarchy level than the target and
    the ``manage_users`` permission.  Equal rank never permits management.

    Args:
        catalog: The catalog used for resolution.
        acting_subject: The subject attempting the operation.
        target_subject: The subject being managed.

    Returns:
        True only if both conditions hold.
    """
    acting_subject = Subject.coerce(acting_subject)
    if acting_subject is None:
        return False
    acting_level = get_user_hierarchy_level(catalog, acting_subject)
    target_level = get_user_hierarchy_level(catalog, target_subject)
    return acting_level > target_level and has_permission(catalog, acting_subject, MANAGE_USERS)


# ---------------------------------------------------------------------------
# Convenience predicates
# ---------------------------------------------------------------------------

def can_access_admin_console(catalog: AuthorizationCatalog, subject: Any) -> bool:
    subject = Subject.coerce(subject)
    return (
        has_permission(catalog, subject, ADMIN_CONSOLE_ACCESS)
        or has_any_role(subject, ADMIN_CONSOLE_ROLES)
    )


def can_view_analytics(catalog: AuthorizationCatalog, subject: Any) -> bool:
    return has_permission(catalog, subject, VIEW_VISITOR_ANALYTICS)


def can_manage_analytics(catalog: AuthorizationCatalog, subject: Any) -> bool:
    return has_permission(catalog, subject, MANAGE_ANALYTICS)


# ---------------------------------------------------------------------------
# Guards
# ---------------------------------------------------------------------------

def _deny(subject: Optional[Subject], message: str, required: tuple[str, ...]) -> AccessDenied:
    subject_id = subject.subject_id if subject is not None else None
    logger.debug("Access denied for %s: %s", _describe(subject), message)
    return AccessDenied(message, subject_id=subject_id, required=required)


def require_permission(catalog: AuthorizationCatalog, subject: Any, permission_id: str) -> None:
    """Enforce a permission check; raise if denied.

    Args:
        catalog: The catalog used for resolution.
        subject: The subject being authorized.
        permission_id: The required permission id.

    Raises:
        AccessDenied: If the subject does not hold the permission.
    """
    subject = Subject.coerce(subject)
    if not has_permission(catalog, subject, permission_id):
        raise _deny(
            subject,
            f"Subject '{_describe(subject)}' lacks permission '{permission_id}'.",
            (permission_id,),
        )


def require_any_permission(catalog: AuthorizationCatalog, subject: Any,
                           permission_ids: Iterable[str]) -> None:
    """Enforce that at least one of ``permission_ids`` is held.

    Raises:
        AccessDenied: If none is held (always, for an empty list).
    """
    subject = Subject.coerce(subject)
    required = tuple(_ids(permission_ids))
    if not has_any_permission(catalog, subject, required):
        raise _deny(
            subject,
            f"Subject '{_describe(subject)}' holds none of the permissions {list(required)}.",
            required,
        )


def require_role(subject: Any, role_id: str) -> None:
    """Enforce literal role membership.

    Raises:
        AccessDenied: If ``role_id`` is not in the subject's roles.
    """
    subject = Subject.coerce(subject)
    if not has_role(subject, role_id):
        raise _deny(
            subject,
            f"Subject '{_describe(subject)}' does not hold role '{role_id}'.",
            (role_id,),
        )


def require_can_manage_user(catalog: AuthorizationCatalog, acting_subject: Any,
                            target_subject: Any) -> None:
    """Enforce ``can_manage_user``.

    ``AccessDenied.required`` names ``manage_users`` only when that
    permission is missing; a denial from the hierarchy rule alone carries
    no required ids and states both levels in the message.

    Raises:
        AccessDenied: If the acting subject may not manage the target.
    """
    acting_subject = Subject.coerce(acting_subject)
    target_subject = Subject.coerce(target_subject)
    if can_manage_user(catalog, acting_subject, target_subject):
        return

    acting_level = get_user_hierarchy_level(catalog, acting_subject)
    target_level = get_user_hierarchy_level(catalog, target_subject)
    reasons = []
    required: tuple[str, ...] = ()
    if not has_permission(catalog, acting_subject, MANAGE_USERS):
        reasons.append(f"lacks permission '{MANAGE_USERS}'")
        required = (MANAGE_USERS,)
    if acting_level <= target_level:
        reasons.append(
            f"hierarchy level {acting_level} is not above target level {target_level}"
        )
    raise _deny(
        acting_subject,
        f"Subject '{_describe(acting_subject)}' may not manage "
        f"subject '{_describe(target_subject)}': {'; '.join(reasons)}.",
        required,
    )


# ---------------------------------------------------------------------------
# Service
# ---------------------------------------------------------------------------

class RBACService:
    """Authorization service bound to a catalog source.

    The source is either a fixed ``AuthorizationCatalog`` or a
    ``CatalogRegistry``.  With a registry, each method reads
    ``registry.current`` once, so a concurrent hot swap never mixes two
    catalogs within a single decision.
    """

    def __init__(self, source: Union[AuthorizationCatalog, CatalogRegistry] = DEFAULT_CATALOG) -> None:
        if not isinstance(source, (AuthorizationCatalog, CatalogRegistry)):
            raise TypeError(
                f"Expected AuthorizationCatalog or CatalogRegistry, got {type(source).__name__}"
            )
        self._source = source

    @property
    def catalog(self) -> AuthorizationCatalog:
        """Return the catalog in effect for the next decision."""
        if isinstance(self._source, CatalogRegistry):
            return self._source.current
        return self._source

    # -- catalog lookups ----------------------------------------------------

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        return self.catalog.get_permission(permission_id)

    def get_role(self, role_id: str) -> Optional[Role]:
        return self.catalog.get_role(role_id)

    def get_role_permissions(self, role_id: str) -> list[Permission]:
        return self.catalog.get_role_permissions(role_id)

    def generate_permission_matrix(self, role_id: str) -> dict[str, bool]:
        return self.catalog.generate_permission_matrix(role_id)

    # -- subject resolution -------------------------------------------------

    def has_permission(self, subject: Any, permission_id: str) -> bool:
        return has_permission(self.catalog, subject, permission_id)

    def has_any_permission(self, subject: Any, permission_ids: Iterable[str]) -> bool:
        return has_any_permission(self.catalog, subject, permission_ids)

    def has_all_permissions(self, subject: Any, permission_ids: Iterable[str]) -> bool:
        return has_all_permissions(self.catalog, subject, permission_ids)

    def has_role(self, subject: Any, role_id: str) -> bool:
        return has_role(subject, role_id)

    def has_any_role(self, subject: Any, role_ids: Iterable[str]) -> bool:
        return has_any_role(subject, role_ids)

    def get_user_hierarchy_level(self, subject: Any) -> int:
        return get_user_hierarchy_level(self.catalog, subject)

    def get_user_permissions(self, subject: Any) -> list[Permission]:
        return get_user_permissions(self.catalog, subject)

    def can_manage_user(self, acting_subject: Any, target_subject: Any) -> bool:
        return can_manage_user(self.catalog, acting_subject, target_subject)

    def can_access_admin_console(self, subject: Any) -> bool:
        return can_access_admin_console(self.catalog, subject)

    def can_view_analytics(self, subject: Any) -> bool:
        return can_view_analytics(self.catalog, subject)

    def can_manage_analytics(self, subject: Any) -> bool:
        return can_manage_analytics(self.catalog, subject)

    # -- guards -------------------------------------------------------------

    def require_permission(self, subject: Any, permission_id: str) -> None:
        require_permission(self.catalog, subject, permission_id)

    def require_any_permission(self, subject: Any, permission_ids: Iterable[str]) -> None:
        require_any_permission(self.catalog, subject, permission_ids)

    def require_role(self, subject: Any, role_id: str) -> None:
        require_role(subject, role_id)

    def require_can_manage_user(self, acting_subject: Any, target_subject: Any) -> None:
        require_can_manage_user(self.catalog, acting_subject, target_subject)

    def for_subject(self, subject: Any) -> "SubjectAccess":
        """Bind a subject, snapshotting the current catalog.

        Args:
            subject: A ``Subject`` (or subject-like value), or None.

        Returns:
            A ``SubjectAccess`` view; with no subject every check denies.
        """
        return SubjectAccess(self.catalog, Subject.coerce(subject))


class SubjectAccess:
    """Permission checks bound to one subject and one catalog snapshot.

    Built by ``RBACService.for_subject`` for UI gating code that asks many
    questions about the same subject.  A view over ``None`` denies
    everything, reports hierarchy ``0`` and no permissions.
    """

    def __init__(self, catalog: AuthorizationCatalog, subject: Optional[Subject]) -> None:
        self._catalog = catalog
        self._subject = subject

    @property
    def subject(self) -> Optional[Subject]:
        return self._subject

    @property
    def is_authenticated(self) -> bool:
        return self._subject is not None

    def has_permission(self, permission_id: str) -> bool:
        return has_permission(self._catalog, self._subject, permission_id)

    def has_any_permission(self, permission_ids: Iterable[str]) -> bool:
        return has_any_permission(self._catalog, self._subject, permission_ids)

    def has_all_permissions(self, permission_ids: Iterable[str]) -> bool:
        return has_all_permissions(self._catalog, self._subject, permission_ids)

    def has_role(self, role_id: str) -> bool:
        return has_role(self._subject, role_id)

    def has_any_role(self, role_ids: Iterable[str]) -> bool:
        return has_any_role(self._subject, role_ids)

    def can_access_admin_console(self) -> bool:
        return can_access_admin_console(self._catalog, self._subject)

    def can_view_analytics(self) -> bool:
        return can_view_analytics(self._catalog, self._subject)

    def can_manage_analytics(self) -> bool:
        return can_manage_analytics(self._catalog, self._subject)

    def get_user_permissions(self) -> list[Permission]:
        return get_user_permissions(self._catalog, self._subject)

    def get_user_hierarchy_level(self) -> int:
        return get_user_hierarchy_level(self._catalog, self._subject)
