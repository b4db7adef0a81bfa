"""
Permission & Role Catalog for OncoSafe RBAC.

The catalog is the static, in-memory set of every ``Permission`` and
``Role`` known to the platform.  It is built once (at process start, or by
``load_catalog_from_yaml``), validated on construction, and never mutated
afterwards.  All lookups are non-raising: "not found" comes back as
``None``, an empty list, or an all-``False`` matrix, so authorization
checks built on top of the catalog fail closed.

**Lookup rules:**

* Permission ids are matched exactly.
* Role ids are matched case-insensitively (both sides upper-cased), because
  subjects may carry role identifiers in arbitrary case.

**Hot reload:**  ``CatalogRegistry`` holds the current catalog reference.
Replacing the catalog swaps the whole reference in a single assignment;
readers never observe a half-updated catalog and need no locking.
"""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Any, Optional

import yaml
from pydantic import BaseModel, ConfigDict, Field, PrivateAttr, model_validator

from oncosafe_rbac.models import Permission, PermissionAction, Role

logger = logging.getLogger(__name__)


def _role_key(role_id: Any) -> Optional[str]:
    if not isinstance(role_id, str):
        return None
    return role_id.upper()


# ---------------------------------------------------------------------------
# Catalog model
# ---------------------------------------------------------------------------

class AuthorizationCatalog(BaseModel):
    """Immutable catalog of permissions and roles.

    Construction enforces the catalog invariants:

    * permission ids are unique;
    * role ids are unique, compared case-insensitively (lookups upper-case);
    * every role references only permission ids present in the catalog.

    Violations raise ``pydantic.ValidationError`` (a ``ValueError``).
    """

    model_config = ConfigDict(frozen=True)

    permissions: tuple[Permission, ...] = Field(
        default_factory=tuple,
        description="Every permission known to the system, in display order.",
    )
    roles: tuple[Role, ...] = Field(
        default_factory=tuple,
        description="Every role known to the system.",
    )

    _permissions_by_id: dict[str, Permission] = PrivateAttr(default_factory=dict)
    _roles_by_key: dict[str, Role] = PrivateAttr(default_factory=dict)

    @model_validator(mode="after")
    def check_catalog_invariants(self) -> "AuthorizationCatalog":
        seen_permissions: set[str] = set()
        for permission in self.permissions:
            if permission.id in seen_permissions:
                raise ValueError(f"Duplicate permission id '{permission.id}'")
            seen_permissions.add(permission.id)

        seen_roles: set[str] = set()
        for role in self.roles:
            key = role.id.upper()
            if key in seen_roles:
                raise ValueError(
                    f"Duplicate role id '{role.id}' (role ids are compared case-insensitively)"
                )
            seen_roles.add(key)
            unknown = [pid for pid in role.permissions if pid not in seen_permissions]
            if unknown:
                raise ValueError(
                    f"Role '{role.id}' references unknown permission ids: {unknown}"
                )
        return self

    def model_post_init(self, __context: Any) -> None:
        self._permissions_by_id = {p.id: p for p in self.permissions}
        self._roles_by_key = {r.id.upper(): r for r in self.roles}

    # -- lookups ------------------------------------------------------------

    def get_permission(self, permission_id: str) -> Optional[Permission]:
        """Exact lookup of a permission by id.

        Args:
            permission_id: The permission id.

        Returns:
            The ``Permission``, or None if the id is not in the catalog.
        """
        if not isinstance(permission_id, str):
            return None
        return self._permissions_by_id.get(permission_id)

    def get_role(self, role_id: str) -> Optional[Role]:
        """Case-insensitive lookup of a role by id.

        Args:
            role_id: The role id in any case (``"nurse"``, ``"NURSE"``).

        Returns:
            The ``Role``, or None if no role matches.
        """
        key = _role_key(role_id)
        if key is None:
            return None
        return self._roles_by_key.get(key)

    def get_role_permissions(self, role_id: str) -> list[Permission]:
        """Resolve a role to its full ``Permission`` records.

        Args:
            role_id: The role id (case-insensitive).

        Returns:
            The role's permissions in role order, or an empty list if the
            role is unknown.
        """
        role = self.get_role(role_id)
        if role is None:
            return []
        return [
            self._permissions_by_id[pid]
            for pid in role.permissions
            if pid in self._permissions_by_id
        ]

    def generate_permission_matrix(self, role_id: str) -> dict[str, bool]:
        """Map every catalog permission id to whether the role grants it.

        Used by administrative screens to render "what would this role
        allow" grids.  An unknown role yields an all-``False`` matrix.

        Args:
            role_id: The role id (case-insensitive).

        Returns:
            Dictionary keyed by permission id, in catalog order.
        """
        role = self.get_role(role_id)
        return {
            permission.id: role is not None and role.grants(permission.id)
            for permission in self.permissions
        }

    def permissions_for_resource(self, resource: str) -> list[Permission]:
        """Return the permissions tagged with ``resource``, in catalog order."""
        return [p for p in self.permissions if p.resource == resource]

    def permission_ids(self) -> list[str]:
        return [p.id for p in self.permissions]

    def role_ids(self) -> list[str]:
        """Return role ids, most privileged first (ties broken by id)."""
        return [r.id for r in sorted(self.roles, key=lambda r: (-r.hierarchy, r.id))]

    def __len__(self) -> int:
        return len(self.permissions)

    def __contains__(self, permission_id: object) -> bool:
        return isinstance(permission_id, str) and permission_id in self._permissions_by_id


# ---------------------------------------------------------------------------
# Built-in catalog
# ---------------------------------------------------------------------------

def _perm(pid: str, name: str, description: str, resource: str, action: PermissionAction) -> Permission:
    return Permission(id=pid, name=name, description=description, resource=resource, action=action)


_READ = PermissionAction.READ
_WRITE = PermissionAction.WRITE

_DEFAULT_PERMISSIONS: tuple[Permission, ...] = (
    # Analytics
    _perm("view_visitor_analytics", "View Visitor Analytics",
          "Access visitor tracking and usage analytics", "analytics", _READ),
    _perm("manage_analytics", "Manage Analytics",
          "Configure analytics settings and export data", "analytics", _WRITE),
    _perm("view_realtime_analytics", "View Real-time Analytics",
          "Access live visitor tracking and real-time metrics", "analytics", _READ),
    # Admin console
    _perm("admin_console_access", "Admin Console Access",
          "Access administrative dashboard and controls", "admin", _READ),
    _perm("manage_users", "Manage Users",
          "Create, update, and deactivate user accounts", "users", _WRITE),
    _perm("manage_roles", "Manage Roles",
          "Create and modify user roles and permissions", "roles", _WRITE),
    _perm("view_audit_logs", "View Audit Logs",
          "Access system audit logs and compliance reports", "audit", _READ),
    _perm("manage_system_settings", "Manage System Settings",
          "Configure system-wide settings and preferences", "system", _WRITE),
    # Clinical
    _perm("view_patient_data", "View Patient Data",
          "Access patient information and medical records", "patients", _READ),
    _perm("edit_patient_data", "Edit Patient Data",
          "Modify patient information and medical records", "patients", _WRITE),
    _perm("prescribe_medications", "Prescribe Medications",
          "Create and modify medication prescriptions", "prescriptions", _WRITE),
    _perm("view_drug_interactions", "View Drug Interactions",
          "Access drug interaction checking tools", "interactions", _READ),
    _perm("access_protocols", "Access Clinical Protocols",
          "View clinical protocols and treatment guidelines", "protocols", _READ),
    _perm("manage_protocols", "Manage Clinical Protocols",
          "Create and modify clinical protocols", "protocols", _WRITE),
    # Reporting
    _perm("generate_reports", "Generate Reports",
          "Create and export various system reports", "reports", _WRITE),
    _perm("view_compliance_reports", "View Compliance Reports",
          "Access regulatory compliance and audit reports", "compliance", _READ),
)

_DEFAULT_ROLES: tuple[Role, ...] = (
    Role(
        id="super_admin",
        name="Super Administrator",
        description="Full system access with all privileges",
        permissions=tuple(p.id for p in _DEFAULT_PERMISSIONS),
        hierarchy=100,
        is_system_role=True,
    ),
    Role(
        id="system_admin",
        name="System Administrator",
        description="Administrative access to system management and analytics",
        permissions=(
            "admin_console_access",
            "view_visitor_analytics",
            "manage_analytics",
            "view_realtime_analytics",
            "manage_users",
            "manage_roles",
            "view_audit_logs",
            "manage_system_settings",
            "generate_reports",
            "view_compliance_reports",
        ),
        hierarchy=90,
        is_system_role=True,
    ),
    Role(
        id="analytics_admin",
        name="Analytics Administrator",
        description="Specialized role for analytics and reporting management",
        permissions=(
            "view_visitor_analytics",
            "manage_analytics",
            "view_realtime_analytics",
            "generate_reports",
            "view_compliance_reports",
            "view_audit_logs",
        ),
        hierarchy=70,
        is_system_role=True,
    ),
    Role(
        id="oncologist",
        name="Oncologist",
        description="Medical oncology specialist with full clinical access",
        permissions=(
            "view_patient_data",
            "edit_patient_data",
            "prescribe_medications",
            "view_drug_interactions",
            "access_protocols",
            "manage_protocols",
            "generate_reports",
            "admin_console_access",
            "view_visitor_analytics",
            "manage_analytics",
        ),
        hierarchy=60,
        is_system_role=True,
    ),
    Role(
        id="pharmacist",
        name="Pharmacist",
        description="Pharmaceutical specialist with medication review access",
        permissions=(
            "view_patient_data",
            "edit_patient_data",
            "view_drug_interactions",
            "access_protocols",
            "generate_reports",
        ),
        hierarchy=50,
        is_system_role=True,
    ),
    Role(
        id="nurse",
        name="Nurse",
        description="Nursing professional with patient care access",
        permissions=(
            "view_patient_data",
            "edit_patient_data",
            "view_drug_interactions",
            "access_protocols",
        ),
        hierarchy=40,
        is_system_role=True,
    ),
    Role(
        id="researcher",
        name="Researcher",
        description="Research professional with data analysis access",
        permissions=(
            "view_patient_data",
            "view_drug_interactions",
            "access_protocols",
            "generate_reports",
        ),
        hierarchy=30,
        is_system_role=True,
    ),
    Role(
        id="student",
        name="Student",
        description="Educational access with limited permissions",
        permissions=(
            "view_drug_interactions",
            "access_protocols",
        ),
        hierarchy=10,
        is_system_role=True,
    ),
)

DEFAULT_CATALOG = AuthorizationCatalog(
    permissions=_DEFAULT_PERMISSIONS,
    roles=_DEFAULT_ROLES,
)
"""Built-in catalog of the platform's system permissions and roles.

Pharmacists review and edit medication data but do not prescribe; only
the oncologist and super-admin roles carry ``prescribe_medications``.
"""


# ---------------------------------------------------------------------------
# Catalog registry (hot reload)
# ---------------------------------------------------------------------------

class CatalogRegistry:
    """Holder for the process-wide current catalog.

    ``current`` is read without locking.  ``replace()`` swaps the whole
    catalog reference in one assignment, so concurrent readers see either
    the old catalog or the new one, never a mixture.
    """

    def __init__(self, catalog: AuthorizationCatalog = DEFAULT_CATALOG) -> None:
        """Create a registry holding ``catalog``.

        Raises:
            TypeError: If ``catalog`` is not an ``AuthorizationCatalog``.
        """
        if not isinstance(catalog, AuthorizationCatalog):
            raise TypeError(
                f"Expected AuthorizationCatalog, got {type(catalog).__name__}"
            )
        self._catalog = catalog

    @property
    def current(self) -> AuthorizationCatalog:
        """Return the catalog in effect right now."""
        return self._catalog

    def replace(self, catalog: AuthorizationCatalog) -> AuthorizationCatalog:
        """Swap in a new catalog.

        Args:
            catalog: A validated ``AuthorizationCatalog``.

        Returns:
            The catalog that was replaced.

        Raises:
            TypeError: If ``catalog`` is not an ``AuthorizationCatalog``.
        """
        if not isinstance(catalog, AuthorizationCatalog):
            raise TypeError(
                f"Expected AuthorizationCatalog, got {type(catalog).__name__}"
            )
        previous = self._catalog
        self._catalog = catalog
        logger.info(
            "Authorization catalog replaced: %d permissions, %d roles",
            len(catalog.permissions),
            len(catalog.roles),
        )
        return previous

    def reload_from_yaml(self, path: str | Path) -> AuthorizationCatalog:
        """Load a catalog from YAML and swap it in.

        The current catalog stays in effect if loading or validation fails.

        Args:
            path: Path to the YAML catalog file.

        Returns:
            The catalog that was replaced.
        """
        return self.replace(load_catalog_from_yaml(path))


# ---------------------------------------------------------------------------
# YAML loader
# ---------------------------------------------------------------------------

def load_catalog_from_yaml(path: str | Path) -> AuthorizationCatalog:
    """Load and validate an authorization catalog from a YAML file.

    The file must contain top-level ``permissions`` and ``roles`` lists.
    Every entry is validated through the ``Permission`` / ``Role`` models
    and the assembled catalog is checked for its invariants.

    Example YAML structure::

        permissions:
          - id: "view_patient_data"
            name: "View Patient Data"
            resource: "patients"
            action: "read"
        roles:
          - id: "nurse"
            name: "Nurse"
            hierarchy: 40
            isSystemRole: true
            permissions: ["view_patient_data"]

    Args:
        path: Path to the YAML file.

    Returns:
        A validated ``AuthorizationCatalog``.

    Raises:
        FileNotFoundError: If the file does not exist.
        ValueError: If the YAML structure is invalid.
        pydantic.ValidationError: If any entry or catalog invariant fails.
    """
    path = Path(path)
    if not path.exists():
        raise FileNotFoundError(f"Catalog file not found: {path}")

    with open(path, "r") as f:
        raw = yaml.safe_load(f)

    if not isinstance(raw, dict) or "permissions" not in raw or "roles" not in raw:
        raise ValueError(
            "YAML file must contain top-level 'permissions' and 'roles' keys."
        )

    sections: dict[str, list[dict[str, Any]]] = {}
    for key in ("permissions", "roles"):
        entries = raw[key]
        if entries is None:
            entries = []
        if not isinstance(entries, list):
            raise ValueError(f"'{key}' must be a list of mappings.")
        for idx, entry in enumerate(entries):
            if not isinstance(entry, dict):
                raise ValueError(f"Entry at index {idx} of '{key}' must be a mapping.")
        sections[key] = entries

    catalog = AuthorizationCatalog(
        permissions=tuple(Permission(**entry) for entry in sections["permissions"]),
        roles=tuple(Role.model_validate(entry) for entry in sections["roles"]),
    )
    logger.info(
        "Loaded authorization catalog from %s: %d permissions, %d roles",
        path,
        len(catalog.permissions),
        len(catalog.roles),
    )
    return catalog
