"""
Seed the permission catalogue and the system roles from permissions_config.

Usage: python -m opsportal.scripts.seed_permissions_roles

Rows are keyed by name, so a re-run updates descriptions in place and brings
every system role's grants back in line with the config. Custom roles created
through the admin API are left alone.
"""

import sys
import logging
from typing import Dict, Iterable, List, Optional, Tuple

from supabase import Client
from opsportal.config.permissions_config import PERMISSION_MATRIX
from opsportal.database.supabase_client import get_supabase

logger = logging.getLogger(__name__)


def seed_permissions(supabase: Client, permissions: Optional[List[dict]] = None) -> int:
    permissions = PERMISSION_MATRIX["permissions"] if permissions is None else permissions
    if not permissions:
        return 0
    result = supabase.table("permissions").upsert([
        {
            "name": permission["name"],
            "resource": permission["resource"],
            "action": permission["action"],
            "description": permission["description"],
        }
        for permission in permissions
    ], on_conflict="name").execute()
    seeded = len(result.data or [])
    logger.info(f"Permissions seeded: {seeded}")
    return seeded


def _permission_ids_by_name(supabase: Client) -> Dict[str, str]:
    result = supabase.table("permissions").select("id, name").execute()
    return {row["name"]: row["id"] for row in result.data or []}


def sync_role_grants(supabase: Client, role_id: str, permission_ids: Iterable[str]) -> Tuple[int, int]:
    """Make the role hold exactly permission_ids. Returns (added, removed)."""
    wanted = set(permission_ids)
    current = supabase.table("role_permissions")\
        .select("permission_id")\
        .eq("role_id", role_id)\
        .execute()
    held = {row["permission_id"] for row in current.data or []}

    missing = sorted(wanted - held)
    if missing:
        supabase.table("role_permissions").insert([
            {"role_id": role_id, "permission_id": permission_id} for permission_id in missing
        ]).execute()

    extra = sorted(held - wanted)
    if extra:
        supabase.table("role_permissions")\
            .delete()\
            .eq("role_id", role_id)\
            .in_("permission_id", extra)\
            .execute()
    return len(missing), len(extra)


def seed_roles(supabase: Client, roles: Optional[List[dict]] = None) -> int:
    roles = PERMISSION_MATRIX["roles"] if roles is None else roles
    permission_ids = _permission_ids_by_name(supabase)

    for role in roles:
        result = supabase.table("roles").upsert({
            "name": role["name"],
            "display_name": role["display_name"],
            "description": role["description"],
            "is_system": True,
        }, on_conflict="name").execute()
        role_id = result.data[0]["id"]

        unknown = [name for name in role["permissions"] if name not in permission_ids]
        if unknown:
            logger.warning(f"Role {role['name']} lists unseeded permissions: {', '.join(unknown)}")
        added, removed = sync_role_grants(
            supabase, role_id, (permission_ids[name] for name in role["permissions"] if name in permission_ids)
        )
        logger.info(f"Role {role['name']}: +{added} / -{removed} grants")

    return len(roles)


def main():
    logging.basicConfig(level=logging.INFO)
    try:
        supabase = get_supabase()
        permission_count = seed_permissions(supabase)
        role_count = seed_roles(supabase)
        logger.info(f"Seeded {permission_count} permissions and {role_count} system roles")
    except Exception as e:
        logger.error(f"Seeding failed: {e}")
        sys.exit(1)


if __name__ == "__main__":
    main()
