#!/usr/bin/env python3
"""
OncoSafe RBAC -- Synthetic Access Review Walkthrough.

Exercises the authorization core end to end with entirely synthetic
subjects:

1. Resolves permissions against the built-in catalog.
2. Shows the case-insensitive catalog lookup next to the literal role
   membership test.
3. Checks user-management rights across the role hierarchy.
4. Prints a permission matrix for an administrative screen.
5. Hot-swaps a clinic catalog loaded from YAML.

Usage::

    python examples/access_review.py

DISCLAIMER: All subjects in this demo are synthetic.  No real users,
credentials, or patient data are involved.
"""

from __future__ import annotations

import json
import logging
import sys
from pathlib import Path

# Ensure the package is importable when running from the repo root
sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from oncosafe_rbac.catalog import CatalogRegistry, DEFAULT_CATALOG
from oncosafe_rbac.models import Subject
from oncosafe_rbac.rbac import AccessDenied, RBACService


def _banner(text: str) -> None:
    print(f"\n{'=' * 60}")
    print(f"  {text}")
    print(f"{'=' * 60}\n")


def main() -> None:
    logging.basicConfig(level=logging.INFO, format="%(levelname)s %(name)s: %(message)s")

    _banner("OncoSafe RBAC Synthetic Access Review")
    print("DISCLAIMER: All subjects in this demo are entirely synthetic.\n")

    registry = CatalogRegistry(DEFAULT_CATALOG)
    service = RBACService(registry)

    admin = Subject(subject_id="admin_synthetic_001", roles=["super_admin"])
    pharmacist = Subject(subject_id="rph_synthetic_002", roles=["pharmacist"])
    nurse = Subject(subject_id="rn_synthetic_003", roles=["NURSE"])
    auditor = Subject(subject_id="ext_auditor_004", roles=[], permissions=["view_audit_logs"])

    # ------------------------------------------------------------------
    # Step 1: Permission resolution
    # ------------------------------------------------------------------
    _banner("Step 1: Permission Resolution")

    for subject in (admin, pharmacist, nurse, auditor):
        access = service.for_subject(subject)
        print(f"{subject.subject_id}:")
        print(f"  hierarchy level:       {access.get_user_hierarchy_level()}")
        print(f"  prescribe_medications: {access.has_permission('prescribe_medications')}")
        print(f"  view_audit_logs:       {access.has_permission('view_audit_logs')}")
        print(f"  admin console:         {access.can_access_admin_console()}")
        print(f"  effective permissions: {[p.id for p in access.get_user_permissions()]}")

    # ------------------------------------------------------------------
    # Step 2: Case handling
    # ------------------------------------------------------------------
    _banner("Step 2: Catalog Lookup vs. Role Membership")

    print(f"Nurse roles as assigned: {nurse.roles}")
    print(f"  has_permission('view_patient_data'): {service.has_permission(nurse, 'view_patient_data')}")
    print(f"  has_role('NURSE'): {service.has_role(nurse, 'NURSE')}")
    print(f"  has_role('nurse'): {service.has_role(nurse, 'nurse')}")

    # ------------------------------------------------------------------
    # Step 3: User management across the hierarchy
    # ------------------------------------------------------------------
    _banner("Step 3: User Management")

    print(f"admin -> nurse: {service.can_manage_user(admin, nurse)}")
    print(f"nurse -> admin: {service.can_manage_user(nurse, admin)}")
    try:
        service.require_can_manage_user(pharmacist, nurse)
    except AccessDenied as exc:
        print(f"pharmacist -> nurse denied: {exc}")

    # ------------------------------------------------------------------
    # Step 4: Permission matrix
    # ------------------------------------------------------------------
    _banner("Step 4: Permission Matrix (pharmacist)")

    print(json.dumps(service.generate_permission_matrix("pharmacist"), indent=2))

    # ------------------------------------------------------------------
    # Step 5: Catalog hot swap
    # ------------------------------------------------------------------
    _banner("Step 5: Clinic Catalog Hot Swap")

    clinic_yaml = Path(__file__).parent / "clinical_catalog.yaml"
    registry.reload_from_yaml(clinic_yaml)
    print(f"Roles now in effect: {service.catalog.role_ids()}")
    print(f"Pharmacist hierarchy after swap: {service.get_user_hierarchy_level(pharmacist)}")

    _banner("Review Complete")
    print("All subjects were synthetic.")


if __name__ == "__main__":
    main()
