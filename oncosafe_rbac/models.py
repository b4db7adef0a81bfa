"""
Core data models for the OncoSafe RBAC authorization core.

``Permission`` and ``Role`` are immutable catalog entries.  ``Subject`` is
the read-only record being authorized -- typically hydrated from a user
profile supplied by the external identity service.

The ``Subject`` model normalizes absent or malformed ``roles`` and
``permissions`` values to empty lists at the type boundary, so resolution
code never has to null-check and every malformed input fails closed.

DISCLAIMER: This module defines access-control data structures only.  It
does not store, transmit, or interpret patient information.
"""

from __future__ import annotations

import enum
from collections.abc import Mapping, Sequence, Set
from typing import Any, Optional

from pydantic import AliasChoices, BaseModel, ConfigDict, Field, field_validator


# ---------------------------------------------------------------------------
# Enums
# ---------------------------------------------------------------------------

class PermissionAction(str, enum.Enum):
    """Known permission actions.

    ``Permission.action`` is a free-form string so catalogs may introduce
    new actions; these are the values used by the built-in catalog.
    """

    READ = "read"
    WRITE = "write"


# ---------------------------------------------------------------------------
# Catalog entries
# ---------------------------------------------------------------------------

class Permission(BaseModel):
    """An atomic, named capability gating one action on one resource type.

    ``id`` is the authoritative key used in every comparison; ``name`` and
    ``description`` are for humans only.
    """

    model_config = ConfigDict(frozen=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Stable unique key, e.g. 'view_patient_data'.",
    )
    name: str = Field(default="", description="Human-readable label.")
    description: str = Field(default="", description="Human-readable description.")
    resource: str = Field(
        ...,
        min_length=1,
        description="Subject-area tag grouping related permissions, e.g. 'patients'.",
    )
    action: str = Field(
        ...,
        min_length=1,
        description="Action tag: 'read' or 'write' in the built-in catalog (extensible).",
    )

    @field_validator("action", mode="before")
    @classmethod
    def unwrap_action_enum(cls, v: Any) -> Any:
        if isinstance(v, PermissionAction):
            return v.value
        return v


class Role(BaseModel):
    """A named bundle of permissions plus a relative privilege rank.

    ``hierarchy`` is only ever compared against other roles' ranks -- it is
    not an absolute gate.  ``is_system_role`` marks built-in roles and is
    informational for the authorization core.
    """

    model_config = ConfigDict(frozen=True, populate_by_name=True)

    id: str = Field(
        ...,
        min_length=1,
        description="Unique key.  Catalog lookups compare it case-insensitively.",
    )
    name: str = Field(default="", description="Human-readable label.")
    description: str = Field(default="", description="Human-readable description.")
    permissions: tuple[str, ...] = Field(
        default_factory=tuple,
        description="Permission ids granted by holding this role, in catalog-author order.",
    )
    hierarchy: int = Field(
        default=0,
        ge=0,
        description="Privilege rank; higher is more privileged.  Used for relative comparisons only.",
    )
    is_system_role: bool = Field(
        default=False,
        validation_alias=AliasChoices("is_system_role", "isSystemRole"),
        description="Built-in, non-deletable role marker.",
    )

    @field_validator("permissions")
    @classmethod
    def collapse_duplicate_permissions(cls, v: tuple[str, ...]) -> tuple[str, ...]:
        return tuple(dict.fromkeys(v))

    def grants(self, permission_id: str) -> bool:
        """Return True if this role grants ``permission_id``."""
        return permission_id in self.permissions


# ---------------------------------------------------------------------------
# Subject
# ---------------------------------------------------------------------------

def _string_list(value: Any) -> list[str]:
    # A bare string is a malformed value here, not a sequence of ids.
    if value is None or isinstance(value, (str, bytes)):
        return []
    if not isinstance(value, (Sequence, Set)):
        return []
    return [item for item in value if isinstance(item, str)]


class Subject(BaseModel):
    """The entity being authorized.

    Owned by the identity/profile collaborator; the authorization core only
    reads it.  Extra profile fields (email, display name, ...) are ignored.
    """

    model_config = ConfigDict(extra="ignore")

    subject_id: Optional[str] = Field(
        default=None,
        validation_alias=AliasChoices("subject_id", "id"),
        description="Optional identifier, used in log messages and denial errors only.",
    )
    roles: list[str] = Field(
        default_factory=list,
        description="Assigned role ids, compared literally by membership checks.",
    )
    permissions: list[str] = Field(
        default_factory=list,
        description="Directly granted permission ids, bypassing roles.",
    )

    @field_validator("subject_id", mode="before")
    @classmethod
    def stringify_subject_id(cls, v: Any) -> Any:
        if v is None or isinstance(v, str):
            return v
        return str(v)

    @field_validator("roles", "permissions", mode="before")
    @classmethod
    def normalize_id_list(cls, v: Any) -> list[str]:
        return _string_list(v)

    @classmethod
    def coerce(cls, obj: Any) -> Optional["Subject"]:
        """Build a ``Subject`` from whatever the caller holds.

        Accepts a ``Subject``, a mapping, or any object exposing ``roles``
        and ``permissions`` attributes.  ``None`` stays ``None`` so callers
        can apply the no-subject fallback.

        Args:
            obj: The subject-like value.

        Returns:
            A ``Subject``, or None if ``obj`` is None.
        """
        if obj is None:
            return None
        if isinstance(obj, cls):
            return obj
        if isinstance(obj, Mapping):
            return cls.model_validate(dict(obj))
        return cls(
            subject_id=getattr(obj, "id", None),
            roles=getattr(obj, "roles", None),
            permissions=getattr(obj, "permissions", None),
        )
