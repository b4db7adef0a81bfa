"""
Tests for oncosafe_rbac.catalog -- Permission & Role Catalog.

Covers: built-in catalog contents, exact permission lookup, case-insensitive
role lookup, role permission resolution, permission matrices, catalog
invariant enforcement, the registry hot swap, and the YAML loader.
"""

from pathlib import Path

import pytest
import yaml

from oncosafe_rbac.catalog import (
    DEFAULT_CATALOG,
    AuthorizationCatalog,
    CatalogRegistry,
    load_catalog_from_yaml,
)
from oncosafe_rbac.models import Permission, Role


def _small_catalog() -> AuthorizationCatalog:
    return AuthorizationCatalog(
        permissions=(
            Permission(id="view_x", resource="x", action="read"),
            Permission(id="edit_x", resource="x", action="write"),
            Permission(id="view_y", resource="y", action="read"),
        ),
        roles=(
            Role(id="viewer", hierarchy=10, permissions=["view_x", "view_y"]),
            Role(id="editor", hierarchy=20, permissions=["view_x", "edit_x"]),
        ),
    )


# ---------------------------------------------------------------------------
# 1. Built-in catalog
# ---------------------------------------------------------------------------

class TestDefaultCatalog:
    def test_counts(self):
        assert len(DEFAULT_CATALOG.permissions) == 16
        assert len(DEFAULT_CATALOG.roles) == 8

    def test_super_admin_holds_every_permission(self):
        role = DEFAULT_CATALOG.get_role("super_admin")
        assert role.hierarchy == 100
        assert set(role.permissions) == set(DEFAULT_CATALOG.permission_ids())

    def test_pharmacist_does_not_prescribe(self):
        role = DEFAULT_CATALOG.get_role("pharmacist")
        assert "prescribe_medications" not in role.permissions
        assert "view_patient_data" in role.permissions

    def test_all_roles_are_system_roles(self):
        assert all(role.is_system_role for role in DEFAULT_CATALOG.roles)

    def test_role_ids_ordered_by_hierarchy(self):
        assert DEFAULT_CATALOG.role_ids() == [
            "super_admin",
            "system_admin",
            "analytics_admin",
            "oncologist",
            "pharmacist",
            "nurse",
            "researcher",
            "student",
        ]


# ---------------------------------------------------------------------------
# 2. Lookups
# ---------------------------------------------------------------------------

class TestLookups:
    def test_get_permission_exact(self):
        perm = DEFAULT_CATALOG.get_permission("view_patient_data")
        assert perm.resource == "patients"
        assert perm.action == "read"

    def test_get_permission_is_case_sensitive(self):
        assert DEFAULT_CATALOG.get_permission("VIEW_PATIENT_DATA") is None

    def test_get_permission_unknown_returns_none(self):
        assert DEFAULT_CATALOG.get_permission("launch_rockets") is None

    def test_get_permission_non_string_returns_none(self):
        assert DEFAULT_CATALOG.get_permission(None) is None

    @pytest.mark.parametrize("role_id", ["oncologist", "ONCOLOGIST", "Oncologist"])
    def test_get_role_case_insensitive(self, role_id):
        role = DEFAULT_CATALOG.get_role(role_id)
        assert role is not None
        assert role.id == "oncologist"

    def test_get_role_unknown_returns_none(self):
        assert DEFAULT_CATALOG.get_role("janitor") is None
        assert DEFAULT_CATALOG.get_role(None) is None

    def test_contains_and_len(self):
        catalog = _small_catalog()
        assert "view_x" in catalog
        assert "VIEW_X" not in catalog
        assert 3 not in catalog
        assert len(catalog) == 3

    def test_permissions_for_resource(self):
        perms = DEFAULT_CATALOG.permissions_for_resource("analytics")
        assert [p.id for p in perms] == [
            "view_visitor_analytics",
            "manage_analytics",
            "view_realtime_analytics",
        ]


class TestRolePermissions:
    def test_role_permissions_are_full_records_in_role_order(self):
        perms = DEFAULT_CATALOG.get_role_permissions("STUDENT")
        assert all(isinstance(p, Permission) for p in perms)
        assert [p.id for p in perms] == ["view_drug_interactions", "access_protocols"]

    def test_unknown_role_returns_empty(self):
        assert DEFAULT_CATALOG.get_role_permissions("janitor") == []


class TestPermissionMatrix:
    def test_matrix_covers_every_permission(self):
        matrix = DEFAULT_CATALOG.generate_permission_matrix("nurse")
        assert list(matrix) == DEFAULT_CATALOG.permission_ids()

    def test_matrix_values(self):
        matrix = _small_catalog().generate_permission_matrix("Editor")
        assert matrix == {"view_x": True, "edit_x": True, "view_y": False}

    def test_unknown_role_matrix_all_false(self):
        matrix = DEFAULT_CATALOG.generate_permission_matrix("not_yet_persisted")
        assert len(matrix) == 16
        assert not any(matrix.values())


# ---------------------------------------------------------------------------
# 3. Catalog invariants
# ---------------------------------------------------------------------------

class TestCatalogInvariants:
    def test_duplicate_permission_id_rejected(self):
        with pytest.raises(ValueError, match="Duplicate permission id"):
            AuthorizationCatalog(
                permissions=(
                    Permission(id="view_x", resource="x", action="read"),
                    Permission(id="view_x", resource="x", action="write"),
                ),
            )

    def test_role_ids_differing_only_in_case_rejected(self):
        with pytest.raises(ValueError, match="Duplicate role id"):
            AuthorizationCatalog(roles=(Role(id="nurse"), Role(id="NURSE")))

    def test_role_with_unknown_permission_rejected(self):
        with pytest.raises(ValueError, match="unknown permission ids"):
            AuthorizationCatalog(
                permissions=(Permission(id="view_x", resource="x", action="read"),),
                roles=(Role(id="r", permissions=["view_x", "ghost"]),),
            )

    def test_equal_hierarchies_allowed(self):
        catalog = AuthorizationCatalog(roles=(Role(id="a", hierarchy=5), Role(id="b", hierarchy=5)))
        assert catalog.get_role("a").hierarchy == catalog.get_role("b").hierarchy

    def test_catalog_is_immutable(self):
        with pytest.raises(Exception):
            DEFAULT_CATALOG.roles = ()


# ---------------------------------------------------------------------------
# 4. Registry
# ---------------------------------------------------------------------------

class TestCatalogRegistry:
    def test_defaults_to_builtin_catalog(self):
        assert CatalogRegistry().current is DEFAULT_CATALOG

    def test_replace_swaps_reference_and_returns_previous(self):
        registry = CatalogRegistry()
        new_catalog = _small_catalog()
        previous = registry.replace(new_catalog)
        assert previous is DEFAULT_CATALOG
        assert registry.current is new_catalog

    def test_replace_rejects_non_catalog(self):
        registry = CatalogRegistry()
        with pytest.raises(TypeError):
            registry.replace({"permissions": []})
        assert registry.current is DEFAULT_CATALOG

    def test_constructor_rejects_non_catalog(self):
        with pytest.raises(TypeError):
            CatalogRegistry({"roles": []})

    def test_failed_reload_keeps_current_catalog(self, tmp_path):
        registry = CatalogRegistry()
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.dump({"roles": []}))
        with pytest.raises(ValueError):
            registry.reload_from_yaml(path)
        assert registry.current is DEFAULT_CATALOG


# ---------------------------------------------------------------------------
# 5. YAML loader
# ---------------------------------------------------------------------------

class TestYAMLLoader:
    def _write_yaml(self, data: dict, tmp_dir: Path) -> Path:
        path = tmp_dir / "catalog.yaml"
        with open(path, "w") as f:
            yaml.dump(data, f)
        return path

    def test_load_valid_yaml(self, tmp_path):
        data = {
            "permissions": [
                {"id": "view_x", "name": "View X", "resource": "x", "action": "read"},
            ],
            "roles": [
                {"id": "viewer", "hierarchy": 10, "isSystemRole": True, "permissions": ["view_x"]},
            ],
        }
        catalog = load_catalog_from_yaml(self._write_yaml(data, tmp_path))
        assert catalog.get_permission("view_x").name == "View X"
        role = catalog.get_role("VIEWER")
        assert role.is_system_role is True
        assert role.permissions == ("view_x",)

    def test_load_nonexistent_file_raises(self):
        with pytest.raises(FileNotFoundError):
            load_catalog_from_yaml("/nonexistent/catalog.yaml")

    def test_missing_sections_raise(self, tmp_path):
        path = self._write_yaml({"permissions": []}, tmp_path)
        with pytest.raises(ValueError, match="top-level 'permissions' and 'roles'"):
            load_catalog_from_yaml(path)

    def test_non_list_section_raises(self, tmp_path):
        path = self._write_yaml({"permissions": {"view_x": {}}, "roles": []}, tmp_path)
        with pytest.raises(ValueError, match="must be a list"):
            load_catalog_from_yaml(path)

    def test_non_mapping_entry_raises(self, tmp_path):
        path = self._write_yaml({"permissions": ["view_x"], "roles": []}, tmp_path)
        with pytest.raises(ValueError, match="must be a mapping"):
            load_catalog_from_yaml(path)

    def test_role_referencing_unknown_permission_raises(self, tmp_path):
        data = {"permissions": [], "roles": [{"id": "r", "permissions": ["ghost"]}]}
        path = self._write_yaml(data, tmp_path)
        with pytest.raises(ValueError):
            load_catalog_from_yaml(path)

    def test_empty_sections_allowed(self, tmp_path):
        path = tmp_path / "empty.yaml"
        path.write_text("permissions:\nroles:\n")
        catalog = load_catalog_from_yaml(path)
        assert len(catalog) == 0
        assert catalog.role_ids() == []

    def test_load_sample_clinic_catalog(self):
        """Validate that the bundled example file loads successfully."""
        sample_path = Path(__file__).parent.parent / "examples" / "clinical_catalog.yaml"
        catalog = load_catalog_from_yaml(sample_path)
        assert catalog.role_ids() == ["clinic_admin", "oncologist", "infusion_nurse"]
        assert catalog.get_role("infusion_nurse").is_system_role is False
