"""Role-based permission table for TrackFlow.

Design:
  - Each role maps to a fixed set of permissions (defined here, not in DB).
  - `resolve_permissions(role)` returns the effective, sorted permission list.
  - Routers guard endpoints with `require_permission("<resource>.<action>")`.

Permission naming: `<resource>.<action>`
  Resources: users, nfc, projects, assemblies, barcodes, batches, qc, operations
  Actions:   read, write, delete, status
"""

from __future__ import annotations


# ── All known permissions ───────────────────────────────────

ALL_PERMISSIONS: set[str] = {
    # User management
    "users.read",
    "users.write",
    "users.delete",

    # NFC card administration
    "nfc.manage",

    # Clients + projects
    "projects.read",
    "projects.write",
    "projects.delete",

    # Assemblies
    "assemblies.read",
    "assemblies.write",
    "assemblies.delete",
    "assemblies.status",      # change production status

    # Barcodes
    "barcodes.read",
    "barcodes.write",

    # Logistics batches
    "batches.read",
    "batches.write",
    "batches.delete",

    # Quality control
    "qc.read",
    "qc.write",
    "qc.delete",

    # Mobile operation audit trail
    "operations.read",
}


# ── Role → permissions ──────────────────────────────────────

ROLE_DEFAULTS: dict[str, set[str]] = {
    "admin": ALL_PERMISSIONS.copy(),

    "manager": ALL_PERMISSIONS.copy(),

    "worker": {
        "projects.read",
        "assemblies.read", "assemblies.status",
        "barcodes.read",
        "batches.read",
        "qc.read", "qc.write",
    },
}


# ── Resolution ──────────────────────────────────────────────

def resolve_permissions(role: str) -> list[str]:
    """Return the sorted effective permission list for a role."""
    return sorted(ROLE_DEFAULTS.get(role, set()))


def has_permission(user_permissions: list[str] | set[str], required: str) -> bool:
    """Check whether a permission set satisfies a requirement."""
    return required in user_permissions
