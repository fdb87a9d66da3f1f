"""HTTP tests: auth, server-side permission enforcement, invites, audit."""

from sanctuary.core.config import settings
from sanctuary.db.seeds.seed_owner import seed_owner
from sanctuary.services.role_service import role_service
from tests.conftest import auth_headers


def role_id(db, name):
    return role_service.get_role_by_name(db, name).id


class TestAuth:

    def test_health(self, client):
        assert client.get("/api/health").json() == {"status": "ok"}

    def test_register_login_me(self, client):
        resp = client.post("/api/auth/register", json={
            "email": "seeker@sanctuary.local", "password": "starlight", "full_name": "Seeker",
        })
        assert resp.status_code == 200
        assert resp.json()["account_role"] == "member"

        dup = client.post("/api/auth/register", json={
            "email": "seeker@sanctuary.local", "password": "starlight", "full_name": "Seeker",
        })
        assert dup.status_code == 409

        bad = client.post("/api/auth/login", json={"email": "seeker@sanctuary.local", "password": "wrong!"})
        assert bad.status_code == 401

        token = client.post("/api/auth/login", json={
            "email": "seeker@sanctuary.local", "password": "starlight",
        }).json()["access_token"]
        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["email"] == "seeker@sanctuary.local"

    def test_owner_email_is_reserved(self, client, seeded, monkeypatch):
        monkeypatch.setattr(settings, "OWNER_EMAIL", "keeper@sanctuary.local")
        body = {"password": "starlight", "full_name": "Impostor"}

        resp = client.post("/api/auth/register", json={"email": "keeper@sanctuary.local", **body})
        assert resp.status_code == 409

        seed_owner(seeded, password="keeper-secret")
        for email in ("keeper@sanctuary.local", "KEEPER@sanctuary.local", "Keeper@Sanctuary.Local"):
            resp = client.post("/api/auth/register", json={"email": email, **body})
            assert resp.status_code == 409

    def test_email_case_variant_is_not_owner(self, client, seeded, make_user, monkeypatch):
        monkeypatch.setattr(settings, "OWNER_EMAIL", "keeper@sanctuary.local")
        lookalike = make_user(email="KEEPER@sanctuary.local")
        perms = client.get("/api/permissions/me", headers=auth_headers(lookalike)).json()
        assert perms["is_owner"] is False
        assert client.post("/api/assist/", json={"question": "q"},
                           headers=auth_headers(lookalike)).status_code == 403

    def test_register_rejects_case_variant_of_existing_email(self, client):
        body = {"password": "starlight", "full_name": "Seeker"}
        assert client.post("/api/auth/register", json={"email": "seeker@sanctuary.local", **body}).status_code == 200
        assert client.post("/api/auth/register", json={"email": "Seeker@Sanctuary.local", **body}).status_code == 409

    def test_missing_or_bad_token(self, client):
        assert client.get("/api/auth/me").status_code == 401
        resp = client.get("/api/auth/me", headers={"Authorization": "Bearer not-a-jwt"})
        assert resp.status_code == 401

    def test_deactivated_user_rejected(self, client, make_user):
        user = make_user(is_active=False)
        assert client.get("/api/auth/me", headers=auth_headers(user)).status_code == 401

    def test_request_id_header(self, client):
        resp = client.get("/api/health", headers={"X-Request-Id": "abc-123"})
        assert resp.headers["X-Request-Id"] == "abc-123"
        assert "X-Response-Time-Ms" in resp.headers

    def test_unusable_request_id_is_replaced(self, client):
        resp = client.get("/api/health", headers={"X-Request-Id": "x" * 200})
        assert resp.headers["X-Request-Id"] != "x" * 200
        assert len(resp.headers["X-Request-Id"]) == 36

    def test_cors_exposes_retry_after(self, client):
        origin = settings.CORS_ORIGINS[0]
        resp = client.get("/api/health", headers={"Origin": origin})
        assert resp.headers["access-control-allow-origin"] == origin
        exposed = resp.headers["access-control-expose-headers"]
        assert "Retry-After" in exposed
        assert "X-Request-Id" in exposed


class TestRoleEndpoints:

    def test_list_requires_roles_view(self, client, seeded, make_user):
        assert client.get("/api/roles/").status_code == 401

        guest = make_user(roles=["guest"])
        resp = client.get("/api/roles/", headers=auth_headers(guest))
        assert resp.status_code == 403
        assert resp.json()["detail"]["required"] == {"resource": "roles", "action": "view"}

        moderator = make_user(roles=["moderator"])
        resp = client.get("/api/roles/", headers=auth_headers(moderator))
        assert resp.status_code == 200
        assert resp.json()[0]["name"] == "owner"

    def test_create_role_enforced_server_side(self, client, seeded, make_user):
        body = {"name": "curator", "display_name": "Curator", "priority": 250,
                "permissions": {"creations": {"curate": True}}}

        moderator = make_user(roles=["moderator"])
        assert client.post("/api/roles/", json=body, headers=auth_headers(moderator)).status_code == 403

        veil = make_user(roles=["veil"])
        resp = client.post("/api/roles/", json=body, headers=auth_headers(veil))
        assert resp.status_code == 201
        assert resp.json()["permissions"] == {"creations": {"curate": True}}

        again = client.post("/api/roles/", json=body, headers=auth_headers(veil))
        assert again.status_code == 409

        audit = client.get("/api/admin/audit", params={"action": "role.created"},
                           headers=auth_headers(veil)).json()
        assert audit["total"] == 1
        assert audit["logs"][0]["performed_by"] == veil.id

    def test_update_and_delete(self, client, seeded, make_user):
        veil = make_user(roles=["veil"])
        created = client.post("/api/roles/", json={"name": "temp", "display_name": "Temp"},
                              headers=auth_headers(veil)).json()

        resp = client.put(f"/api/roles/{created['id']}", json={"priority": 42},
                          headers=auth_headers(veil))
        assert resp.status_code == 200
        assert resp.json()["priority"] == 42

        assert client.delete(f"/api/roles/{created['id']}", headers=auth_headers(veil)).status_code == 200
        assert client.get(f"/api/roles/{created['id']}", headers=auth_headers(veil)).status_code == 404

    def test_system_role_cannot_be_deleted(self, client, seeded, make_user):
        veil = make_user(roles=["veil"])
        resp = client.delete(f"/api/roles/{role_id(seeded, 'guest')}", headers=auth_headers(veil))
        assert resp.status_code == 409
        assert resp.json() == {"detail": "Cannot delete system role"}

    def test_assign_and_revoke(self, client, seeded, make_user):
        veil = make_user(roles=["veil"])
        target = make_user()
        storyteller = role_id(seeded, "storyteller")

        resp = client.post(f"/api/roles/user/{target.id}", json={"role_id": storyteller},
                           headers=auth_headers(veil))
        assert resp.status_code == 201
        assert resp.json()["role"]["name"] == "storyteller"

        perms = client.get("/api/permissions/me", headers=auth_headers(target)).json()
        assert perms["permissions"]["lore"]["create"] is True
        assert perms["primary_role"]["name"] == "storyteller"

        resp = client.delete(f"/api/roles/user/{target.id}/{storyteller}", headers=auth_headers(veil))
        assert resp.status_code == 200
        perms = client.get("/api/permissions/me", headers=auth_headers(target)).json()
        assert perms["permissions"] == {}
        assert perms["primary_role"] is None

    def test_assign_requires_roles_assign(self, client, seeded, make_user):
        moderator = make_user(roles=["moderator"])
        target = make_user()
        resp = client.post(f"/api/roles/user/{target.id}", json={"role_id": role_id(seeded, "veil")},
                           headers=auth_headers(moderator))
        assert resp.status_code == 403

    def test_bulk_assign(self, client, seeded, make_user):
        veil = make_user(roles=["veil"])
        a, b = make_user(), make_user()
        resp = client.post("/api/roles/bulk-assign",
                           json={"user_ids": [a.id, b.id], "role_id": role_id(seeded, "guest")},
                           headers=auth_headers(veil))
        assert resp.status_code == 200
        assert resp.json()["message"] == "Assigned role to 2 users"

    def test_user_roles_self_or_roles_view(self, client, seeded, make_user):
        member = make_user(roles=["guest"])
        other = make_user(roles=["storyteller"])
        own = client.get(f"/api/roles/user/{member.id}", headers=auth_headers(member))
        assert own.status_code == 200
        assert [a["role"]["name"] for a in own.json()] == ["guest"]
        assert client.get(f"/api/roles/user/{other.id}", headers=auth_headers(member)).status_code == 403


class TestPermissionEndpoints:

    def test_check_any_and_all(self, client, seeded, make_user):
        user = make_user(roles=["storyteller"])
        checks = [{"resource": "lore", "action": "edit"}, {"resource": "lore", "action": "delete"}]

        all_resp = client.post("/api/permissions/check", json={"checks": checks, "mode": "all"},
                               headers=auth_headers(user)).json()
        assert all_resp["allowed"] is False
        assert [r["allowed"] for r in all_resp["results"]] == [True, False]

        any_resp = client.post("/api/permissions/check", json={"checks": checks, "mode": "any"},
                               headers=auth_headers(user)).json()
        assert any_resp["allowed"] is True

    def test_empty_checks(self, client, seeded, make_user):
        user = make_user()
        headers = auth_headers(user)
        assert client.post("/api/permissions/check", json={"checks": [], "mode": "all"},
                           headers=headers).json()["allowed"] is True
        assert client.post("/api/permissions/check", json={"checks": [], "mode": "any"},
                           headers=headers).json()["allowed"] is False

    def test_owner_marker_without_roles(self, client, seeded, make_user):
        owner = make_user(account_role="owner")
        perms = client.get("/api/permissions/me", headers=auth_headers(owner)).json()
        assert perms["is_owner"] is True
        assert perms["roles"] == []
        assert perms["permissions"]["settings"]["edit"] is True
        assert client.get("/api/roles/", headers=auth_headers(owner)).status_code == 200


class TestInviteEndpoints:

    def test_create_and_redeem(self, client, seeded, make_user):
        veil = make_user(roles=["veil"])
        newcomer = make_user()
        invite = client.post("/api/invites/", json={"role_id": role_id(seeded, "architect")},
                             headers=auth_headers(veil))
        assert invite.status_code == 201
        code = invite.json()["code"]

        listed = client.get("/api/invites/", headers=auth_headers(veil)).json()
        assert [i["code"] for i in listed] == [code]

        resp = client.post(f"/api/invites/{code}/redeem", headers=auth_headers(newcomer))
        assert resp.status_code == 200
        assert resp.json()["role"]["name"] == "architect"

        again = client.post(f"/api/invites/{code}/redeem", headers=auth_headers(make_user()))
        assert again.status_code == 404

    def test_guest_cannot_create_invites(self, client, seeded, make_user):
        guest = make_user(roles=["guest"])
        resp = client.post("/api/invites/", json={"role_id": role_id(seeded, "veil")},
                           headers=auth_headers(guest))
        assert resp.status_code == 403


class TestAdminEndpoints:

    def test_audit_requires_audit_view(self, client, seeded, make_user):
        architect = make_user(roles=["architect"])
        assert client.get("/api/admin/audit", headers=auth_headers(architect)).status_code == 403

    def test_users_listing(self, client, seeded, make_user):
        moderator = make_user(roles=["moderator"])
        make_user()
        resp = client.get("/api/admin/users", headers=auth_headers(moderator))
        assert resp.status_code == 200
        assert resp.json()["total"] == 2

    def test_users_listing_accepts_roles_assign(self, client, seeded, make_user):
        role_service.create_role(seeded, "assigner", "Assigner",
                                 permissions={"roles": {"assign": True}})
        assigner = make_user(roles=["assigner"])
        assert client.get("/api/admin/users", headers=auth_headers(assigner)).status_code == 200

        guest = make_user(roles=["guest"])
        resp = client.get("/api/admin/users", headers=auth_headers(guest))
        assert resp.status_code == 403
        assert resp.json()["detail"]["required"] == [
            {"resource": "users", "action": "view"},
            {"resource": "roles", "action": "assign"},
        ]
