"""Tests for role, invite, and audit services against SQLite."""

from datetime import datetime, timedelta, timezone

import pytest

from sanctuary.core.config import settings
from sanctuary.core.exceptions import (
    AuthorizationError,
    ResourceConflictError,
    ResourceNotFoundError,
)
from sanctuary.db.seeds.seed_owner import seed_owner
from sanctuary.db.seeds.seed_roles import SYSTEM_ROLES, seed_roles
from sanctuary.models.role import UserRole
from sanctuary.services.audit_service import audit_service
from sanctuary.services.invite_service import invite_service
from sanctuary.services.role_service import role_service


def role_id(db, name):
    return role_service.get_role_by_name(db, name).id


class TestSeeding:

    def test_seed_is_idempotent(self, db):
        assert seed_roles(db) == len(SYSTEM_ROLES)
        assert seed_roles(db) == 0
        names = [r.name for r in role_service.list_roles(db)]
        assert names == ["owner", "veil", "moderator", "architect", "storyteller", "guest"]

    def test_system_roles_protected(self, seeded):
        with pytest.raises(ResourceConflictError):
            role_service.delete_role(seeded, role_id(seeded, "guest"))

    def test_seed_owner_assigns_owner_role(self, seeded):
        owner = seed_owner(seeded, email="keeper@sanctuary.local", password="secret123")
        perms = role_service.get_permission_set(seeded, owner)
        assert perms.is_owner is True
        assert perms.primary_role.role.name == "owner"
        assert seed_owner(seeded, email="keeper@sanctuary.local").id == owner.id
        assert seeded.query(UserRole).filter(UserRole.user_id == owner.id).count() == 1

    def test_seed_owner_without_email_is_skipped(self, seeded, monkeypatch):
        monkeypatch.setattr(settings, "OWNER_EMAIL", None)
        assert seed_owner(seeded) is None


class TestRoles:

    def test_create_and_update(self, seeded):
        role = role_service.create_role(
            seeded, "curator", "Curator",
            permissions={"creations": {"curate": True, "delete": "no"}},
            priority=250,
        )
        assert role.permissions == {"creations": {"curate": True, "delete": False}}

        updated = role_service.update_role(
            seeded, role.id, priority=600, permissions={"lore": {"curate": True}},
        )
        assert updated.priority == 600
        assert updated.permissions == {"lore": {"curate": True}}

    def test_duplicate_name_conflicts(self, seeded):
        with pytest.raises(ResourceConflictError):
            role_service.create_role(seeded, "guest", "Another Guest")

    def test_delete_custom_role_removes_assignments(self, seeded, make_user):
        role = role_service.create_role(seeded, "temp", "Temp")
        user = make_user(roles=["temp"])
        role_service.delete_role(seeded, role.id)
        assert role_service.get_user_roles(seeded, user.id, include_inactive=True) == []
        with pytest.raises(ResourceNotFoundError):
            role_service.get_role(seeded, role.id)


class TestAssignments:

    def test_assign_and_revoke(self, seeded, make_user):
        user = make_user()
        guest = role_id(seeded, "guest")
        role_service.assign_role(seeded, user.id, guest, assigned_by=None)
        assert [a.role.name for a in role_service.get_user_roles(seeded, user.id)] == ["guest"]

        with pytest.raises(ResourceConflictError):
            role_service.assign_role(seeded, user.id, guest, assigned_by=None)

        assert role_service.revoke_role(seeded, user.id, guest) == 1
        assert role_service.get_user_roles(seeded, user.id) == []
        history = role_service.get_user_roles(seeded, user.id, include_inactive=True)
        assert len(history) == 1 and history[0].is_active is False

        # revoked roles can be granted again
        role_service.assign_role(seeded, user.id, guest, assigned_by=None)
        assert len(role_service.get_user_roles(seeded, user.id)) == 1

    def test_revoke_missing_assignment(self, seeded, make_user):
        user = make_user()
        with pytest.raises(ResourceNotFoundError):
            role_service.revoke_role(seeded, user.id, role_id(seeded, "guest"))

    def test_assign_unknown_user_or_role(self, seeded, make_user):
        with pytest.raises(ResourceNotFoundError):
            role_service.assign_role(seeded, 9999, role_id(seeded, "guest"), assigned_by=None)
        user = make_user()
        with pytest.raises(ResourceNotFoundError):
            role_service.assign_role(seeded, user.id, 9999, assigned_by=None)

    def test_expired_assignment_not_effective(self, seeded, make_user):
        user = make_user()
        role_service.assign_role(
            seeded, user.id, role_id(seeded, "moderator"), assigned_by=None,
            expires_at=datetime.now(timezone.utc) - timedelta(hours=1),
        )
        assert role_service.get_user_roles(seeded, user.id) == []
        assert role_service.has_permission(seeded, user, "chat", "moderate") is False

    def test_lapsed_assignment_can_be_granted_again(self, seeded, make_user):
        user = make_user()
        guest = role_id(seeded, "guest")
        lapsed = role_service.assign_role(
            seeded, user.id, guest, assigned_by=None,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        assert role_service.get_user_roles(seeded, user.id) == []

        renewed = role_service.assign_role(seeded, user.id, guest, assigned_by=None)
        seeded.refresh(lapsed)
        assert lapsed.is_active is False
        assert [a.id for a in role_service.get_user_roles(seeded, user.id)] == [renewed.id]

    def test_bulk_assign_renews_lapsed_holders(self, seeded, make_user):
        user = make_user()
        guest = role_id(seeded, "guest")
        role_service.assign_role(
            seeded, user.id, guest, assigned_by=None,
            expires_at=datetime.now(timezone.utc) - timedelta(days=1),
        )
        assert role_service.bulk_assign_role(seeded, [user.id], guest, assigned_by=None) == 1
        assert role_service.has_permission(seeded, user, "lore", "view") is True

    def test_bulk_assign_skips_holders_and_unknown_users(self, seeded, make_user):
        holder = make_user(roles=["storyteller"])
        fresh = make_user()
        created = role_service.bulk_assign_role(
            seeded, [holder.id, fresh.id, fresh.id, 4242],
            role_id(seeded, "storyteller"), assigned_by=holder.id,
        )
        assert created == 1
        assert role_service.has_permission(seeded, fresh, "lore", "create") is True


class TestPermissionSets:

    def test_architect_overrides_moderator_on_conflict(self, seeded, make_user):
        user = make_user(roles=["architect", "moderator"])
        perms = role_service.get_permission_set(seeded, user)
        # architect (300) is applied after moderator (500)
        assert perms.has_permission("agents", "edit") is True
        assert perms.has_permission("users", "view") is False
        assert perms.has_permission("ceremonies", "author") is True
        assert perms.primary_role.role.name == "moderator"

    def test_disabled_role_drops_out(self, seeded, make_user):
        user = make_user(roles=["guest"])
        role_service.update_role(seeded, role_id(seeded, "guest"), is_active=False)
        assert role_service.get_permission_set(seeded, user).effective == {}

    def test_no_roles_denies(self, seeded, make_user):
        user = make_user()
        perms = role_service.get_permission_set(seeded, user)
        assert perms.effective == {}
        assert perms.has_permission("agents", "view") is False
        assert perms.primary_role is None

    def test_owner_account_marker(self, seeded, make_user):
        owner = make_user(account_role="owner")
        perms = role_service.get_permission_set(seeded, owner)
        assert perms.is_owner is True
        assert perms.has_permission("settings", "edit") is True

    def test_configured_owner_email(self, seeded, make_user, monkeypatch):
        user = make_user(email="keeper@sanctuary.local")
        monkeypatch.setattr(settings, "OWNER_EMAIL", "keeper@sanctuary.local")
        assert role_service.has_permission(seeded, user, "guardian", "configure") is True


class TestInvites:

    def test_redeem_until_max_uses(self, seeded, make_user):
        admin = make_user(roles=["veil"])
        invite = invite_service.create_invite(
            seeded, role_id(seeded, "storyteller"), created_by=admin.id, max_uses=2,
        )
        first, second, third = make_user(), make_user(), make_user()

        invite_service.redeem_invite(seeded, invite.code, first)
        assert invite.is_active is True
        invite_service.redeem_invite(seeded, invite.code, second)
        seeded.refresh(invite)
        assert invite.used_count == 2
        assert invite.is_active is False
        with pytest.raises(ResourceNotFoundError):
            invite_service.redeem_invite(seeded, invite.code, third)
        assert role_service.has_permission(seeded, second, "lore", "create") is True

    def test_email_bound_invite(self, seeded, make_user):
        admin = make_user(roles=["veil"])
        invite = invite_service.create_invite(
            seeded, role_id(seeded, "guest"), created_by=admin.id, email="wanderer@sanctuary.local",
        )
        with pytest.raises(AuthorizationError):
            invite_service.redeem_invite(seeded, invite.code, make_user())
        invited = make_user(email="Wanderer@sanctuary.local")
        assignment = invite_service.redeem_invite(seeded, invite.code, invited)
        assert assignment.context == f"invite:{invite.code}"

    def test_redeem_after_grant_lapsed(self, seeded, make_user):
        admin = make_user(roles=["veil"])
        user = make_user()
        storyteller = role_id(seeded, "storyteller")
        role_service.assign_role(
            seeded, user.id, storyteller, assigned_by=admin.id,
            expires_at=datetime.now(timezone.utc) - timedelta(hours=2),
        )
        invite = invite_service.create_invite(seeded, storyteller, created_by=admin.id)
        assignment = invite_service.redeem_invite(seeded, invite.code, user)
        assert assignment.is_active is True
        assert role_service.has_permission(seeded, user, "lore", "create") is True

    def test_expired_invite(self, seeded, make_user):
        admin = make_user(roles=["veil"])
        invite = invite_service.create_invite(
            seeded, role_id(seeded, "guest"), created_by=admin.id,
            expires_at=datetime.now(timezone.utc) - timedelta(minutes=5),
        )
        with pytest.raises(ResourceNotFoundError):
            invite_service.redeem_invite(seeded, invite.code, make_user())
        assert invite_service.list_invites(seeded) == []


class TestAudit:

    def test_log_and_query(self, seeded, make_user):
        user = make_user()
        guest = role_id(seeded, "guest")
        audit_service.log(seeded, "role.assigned", "user_role", 1, performed_by=None,
                          target_user_id=user.id, role_id=guest)
        audit_service.log(seeded, "role.revoked", "user_role", 1, performed_by=None,
                          target_user_id=user.id, role_id=guest, notes="cleanup")

        everything = audit_service.query_logs(seeded, target_user_id=user.id)
        assert everything["total"] == 2
        revoked = audit_service.query_logs(seeded, action="role.revoked")
        assert [log.notes for log in revoked["logs"]] == ["cleanup"]
