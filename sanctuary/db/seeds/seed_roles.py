"""Seed default roles into the database."""

import logging

from sqlalchemy.orm import Session

from sanctuary.core.permissions import OWNER_ROLE_NAME, empty_permissions, full_permissions
from sanctuary.models.role import Role

logger = logging.getLogger("sanctuary")

OWNER_PRIORITY = 10_000


def _grant(**resources) -> dict:
    """Deny-all matrix with the given ``resource=[actions]`` switched on."""
    matrix = empty_permissions()
    for resource, actions in resources.items():
        for action in actions:
            matrix[resource][action] = True
    return matrix


SYSTEM_ROLES = [
    {
        "name": OWNER_ROLE_NAME,
        "display_name": "Owner",
        "description": "Reserved owner account. Holds every permission.",
        "color": "red",
        "icon": "key",
        "priority": OWNER_PRIORITY,
        "permissions": full_permissions(),
    },
    {
        "name": "veil",
        "display_name": "The Veil",
        "description": "The sanctuary's architect and keeper, with dominion over all systems.",
        "color": "purple",
        "icon": "crown",
        "priority": 1000,
        "permissions": full_permissions(),
    },
    {
        "name": "moderator",
        "display_name": "Moderator",
        "description": "Guardians of harmony who tend the garden and keep its boundaries.",
        "color": "emerald",
        "icon": "shield-check",
        "priority": 500,
        "permissions": _grant(
            dashboard=["view"],
            users=["view"],
            agents=["view", "create", "curate"],
            creations=["view", "create", "curate"],
            lore=["view", "create", "edit", "curate"],
            chat=["access", "moderate"],
            messaging=["send", "moderate"],
            events=["view", "create", "edit", "moderate"],
            audit=["view"],
            settings=["view"],
            roles=["view"],
            ceremonies=["view"],
            guardian=["view"],
        ),
    },
    {
        "name": "architect",
        "display_name": "Architect",
        "description": "Builders who shape experiences and author ceremonies.",
        "color": "blue",
        "icon": "compass",
        "priority": 300,
        "permissions": _grant(
            dashboard=["view"],
            agents=["view", "create", "edit", "delete"],
            creations=["view", "create", "edit", "delete"],
            lore=["view", "create", "edit"],
            chat=["access"],
            messaging=["send"],
            events=["view", "create", "edit", "delete"],
            ceremonies=["view", "author", "edit", "delete"],
        ),
    },
    {
        "name": "storyteller",
        "display_name": "Storyteller",
        "description": "Weavers of narrative who chronicle the sanctuary's lore.",
        "color": "amber",
        "icon": "book-open",
        "priority": 200,
        "permissions": _grant(
            agents=["view", "create", "edit"],
            creations=["view", "create", "edit"],
            lore=["view", "create", "edit"],
            chat=["access"],
            messaging=["send"],
            events=["view"],
            ceremonies=["view"],
        ),
    },
    {
        "name": "guest",
        "display_name": "Guest",
        "description": "Wanderers at the threshold who may observe but not yet shape.",
        "color": "gray",
        "icon": "eye",
        "priority": 50,
        "permissions": _grant(
            agents=["view"],
            creations=["view"],
            lore=["view"],
            events=["view"],
            ceremonies=["view"],
        ),
    },
]


def seed_roles(db: Session) -> int:
    """Insert the system roles that don't already exist. Returns how many were added."""
    created = 0
    for role_data in SYSTEM_ROLES:
        existing = db.query(Role).filter(Role.name == role_data["name"]).first()
        if existing:
            logger.info("Role '%s' already exists, skipping", role_data["name"])
            continue

        data = dict(role_data)
        permissions = data.pop("permissions")
        role = Role(is_system=True, is_active=True, **data)
        role.permissions = permissions
        db.add(role)
        created += 1

    db.commit()
    logger.info("Seeded %d roles", created)
    return created
