"""End-to-end API flows through the FastAPI app.

Runs against the SQLite database, in-memory key-value store and recording
notifier wired up by the ``client`` fixture.
"""

import pytest
from fastapi.testclient import TestClient

from meditrap.db.models import AdminAudit
from meditrap.services.document_verification import TextExtractor
from tests.factories import TEST_PASSWORD, auth_headers


@pytest.fixture
def owner(user_factory):
    return user_factory(status="approved")


@pytest.fixture
def admin(admin_factory):
    return admin_factory()


def _login(client, email, role, password=TEST_PASSWORD):
    return client.post("/api/auth/login", json={"email": email, "password": password, "role": role})


def _open_request(client, owner, candidates):
    response = client.post(
        "/api/purchasing-card/request",
        json={"stockist_ids": [str(s.id) for s in candidates]},
        headers=auth_headers(owner),
    )
    assert response.status_code == 201, response.text
    return response.json()["request_id"]


class TestAuth:
    def test_register_and_login(self, client: TestClient):
        response = client.post("/api/auth/register", json={
            "medical_name": "Lifeline Medicals",
            "owner_name": "Anil",
            "address": "12 Station Road",
            "email": "Anil@Example.com",
            "contact_no": "9876543210",
            "drug_license_no": "MH-20B-1111",
            "password": "secret-123",
        })
        assert response.status_code == 201
        user = response.json()["user"]
        assert user["email"] == "anil@example.com"
        assert user["status"] == "processing"
        assert "password_hash" not in user

        response = _login(client, "anil@example.com", "medicalOwner", "secret-123")
        assert response.status_code == 200
        body = response.json()
        assert body["kind"] == "user"
        assert body["token_type"] == "bearer"

        me = client.get("/api/auth/me", headers={"Authorization": f"Bearer {body['access_token']}"})
        assert me.status_code == 200
        assert me.json()["account"]["medical_name"] == "Lifeline Medicals"

    def test_duplicate_registration(self, client, owner):
        response = client.post("/api/auth/register", json={
            "medical_name": "Copy",
            "owner_name": "Copy",
            "address": "x",
            "email": owner.email,
            "contact_no": "1",
            "drug_license_no": "NEW-1",
            "password": "secret-123",
        })
        assert response.status_code == 409
        assert response.json()["error"] == "conflict"

    def test_bad_credentials(self, client, owner):
        response = _login(client, owner.email, "medicalOwner", "wrong-password")
        assert response.status_code == 401
        assert response.json() == {"success": False, "error": "not_authenticated", "detail": "Invalid credentials."}
        assert response.headers["www-authenticate"] == "Bearer"

    def test_login_checks_the_named_role_only(self, client, owner):
        assert _login(client, owner.email, "stockist").status_code == 401
        assert _login(client, owner.email, "superuser").status_code == 400

    def test_unapproved_stockist_cannot_login(self, client, stockist_factory):
        pending = stockist_factory(status="processing")
        declined = stockist_factory(status="declined")

        response = _login(client, pending.email, "stockist")
        assert response.status_code == 403
        assert "under review" in response.json()["detail"]

        response = _login(client, declined.email, "stockist")
        assert response.status_code == 403
        assert "declined" in response.json()["detail"]

    def test_stockist_signup_then_admin_approval(self, client, admin):
        response = client.post("/api/auth/stockist-signup", json={
            "name": "Metro Pharma Distributors",
            "email": "metro@example.com",
            "password": "metro-pass",
            "address": {"city": "Nagpur"},
        })
        assert response.status_code == 201
        stockist_id = response.json()["stockist"]["id"]
        assert _login(client, "metro@example.com", "stockist", "metro-pass").status_code == 403

        response = client.patch(f"/api/stockists/{stockist_id}/approve", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["stockist"]["status"] == "approved"

        assert _login(client, "metro@example.com", "stockist", "metro-pass").status_code == 200

    def test_purchaser_signup_and_login(self, client):
        response = client.post("/api/auth/purchaser-signup", json={
            "full_name": "Kiran Rao",
            "email": "kiran@example.com",
            "password": "kiran-pass",
            "aadhar_image": "https://blobs.example.com/a.png",
            "photo": "https://blobs.example.com/p.png",
        })
        assert response.status_code == 201
        response = _login(client, "kiran@example.com", "purchaser", "kiran-pass")
        assert response.status_code == 200
        assert response.json()["kind"] == "purchaser"

    def test_logout_revokes_token(self, client, owner):
        headers = auth_headers(owner)
        assert client.get("/api/auth/me", headers=headers).status_code == 200

        response = client.post("/api/auth/logout", headers=headers)
        assert response.status_code == 200

        response = client.get("/api/auth/me", headers=headers)
        assert response.status_code == 401
        # a fresh login still works
        assert client.get("/api/auth/me", headers=auth_headers(owner)).status_code == 200

    def test_missing_token(self, client):
        response = client.get("/api/auth/me")
        assert response.status_code == 401

    def test_inactive_user(self, client, user_factory):
        user = user_factory(is_active=False)
        assert client.get("/api/auth/me", headers=auth_headers(user)).status_code == 403

    def test_password_reset_flow(self, client, owner, notifier):
        response = client.post("/api/auth/forgot-password", json={"email": owner.email})
        assert response.status_code == 200
        token = notifier.token_for(owner.email)

        response = client.post("/api/auth/reset-password", json={
            "token": token, "email": owner.email, "new_password": "brand-new-pass",
        })
        assert response.status_code == 200
        assert _login(client, owner.email, "medicalOwner", "brand-new-pass").status_code == 200

        response = client.post("/api/auth/reset-password", json={
            "token": token, "email": owner.email, "new_password": "again-new-pass",
        })
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_token"

    def test_forgot_password_unknown_email(self, client, notifier):
        response = client.post("/api/auth/forgot-password", json={"email": "ghost@example.com"})
        assert response.status_code == 200
        assert notifier.messages == []


class TestPurchasingCardFlow:
    def test_three_stockists_grant_the_card(self, client, owner, stockists, notifier):
        x, y, z = stockists[:3]
        request_id = _open_request(client, owner, [x, y, z])
        assert len(notifier.messages) == 3

        pending = client.get("/api/purchasing-card/requests", headers=auth_headers(x)).json()["requests"]
        assert [r["id"] for r in pending] == [request_id]

        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(x))
        assert response.status_code == 200
        assert response.json()["message"] == "Approval recorded (1/3)"

        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(x))
        assert response.json()["message"] == "Already approved"
        assert response.json()["approval_count"] == 1

        response = client.get("/api/purchasing-card/approve-web", params={"token": notifier.token_for(y.email)})
        assert response.status_code == 200
        assert response.json()["approval_count"] == 2

        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(z))
        body = response.json()
        assert body["message"] == "Request approved"
        assert body["status"] == "approved"
        assert body["grant_status"] == "granted"

        me = client.get("/api/auth/me", headers=auth_headers(owner)).json()
        assert me["account"]["has_purchasing_card"] is True

        assert client.get("/api/purchasing-card/requests", headers=auth_headers(x)).json()["requests"] == []
        mine = client.get("/api/purchasing-card/requests", headers=auth_headers(owner)).json()["requests"]
        assert mine[0]["status"] == "approved"

    def test_used_token_is_refused(self, client, owner, stockists, notifier):
        _open_request(client, owner, stockists[:3])
        token = notifier.token_for(stockists[0].email)

        assert client.get("/api/purchasing-card/approve-web", params={"token": token}).status_code == 200
        response = client.get("/api/purchasing-card/approve-web", params={"token": token})
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_token"

    def test_non_candidate_stockist(self, client, owner, stockists):
        request_id = _open_request(client, owner, stockists[:3])
        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(stockists[4]))
        assert response.status_code == 403
        assert response.json()["error"] == "unauthorized_approver"

    def test_only_stockists_approve(self, client, owner, stockists):
        request_id = _open_request(client, owner, stockists[:3])
        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(owner))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_fourth_approval_is_refused(self, client, owner, stockists):
        request_id = _open_request(client, owner, stockists[:4])
        for s in stockists[:3]:
            client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(s))

        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(stockists[3]))
        assert response.status_code == 409
        assert response.json()["error"] == "already_processed"

    def test_too_few_stockists(self, client, owner, stockists):
        response = client.post(
            "/api/purchasing-card/request",
            json={"stockist_ids": [str(s.id) for s in stockists[:2]]},
            headers=auth_headers(owner),
        )
        assert response.status_code == 400
        assert response.json()["details"] == {"selected": 2, "required": 3}

    def test_unknown_request(self, client, stockists):
        response = client.post(
            "/api/purchasing-card/approve/00000000-0000-0000-0000-000000000000",
            headers=auth_headers(stockists[0]),
        )
        assert response.status_code == 404

    def test_view_request(self, client, owner, stockists, user_factory):
        request_id = _open_request(client, owner, stockists[:3])

        response = client.get(f"/api/purchasing-card/{request_id}", headers=auth_headers(stockists[1]))
        assert response.status_code == 200
        assert response.json()["request"]["threshold"] == 3

        response = client.get(f"/api/purchasing-card/{request_id}", headers=auth_headers(user_factory()))
        assert response.status_code == 403

    def test_admin_rejects(self, client, owner, stockists, admin):
        request_id = _open_request(client, owner, stockists[:3])

        response = client.post(f"/api/purchasing-card/{request_id}/reject", headers=auth_headers(owner))
        assert response.status_code == 403

        response = client.post(
            f"/api/purchasing-card/{request_id}/reject",
            json={"reason": "Licence expired"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 200
        assert response.json()["request"]["status"] == "rejected"

        response = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(stockists[0]))
        assert response.status_code == 409

    def test_retry_grant_requires_approved_request(self, client, owner, stockists, admin):
        request_id = _open_request(client, owner, stockists[:3])
        response = client.post(f"/api/purchasing-card/{request_id}/retry-grant", headers=auth_headers(admin))
        assert response.status_code == 400

    def test_purchasing_request_creates_purchaser(self, client, owner, stockists):
        response = client.post(
            "/api/purchasing-requests",
            json={
                "stockist_ids": [str(s.id) for s in stockists[:3]],
                "purchaser_data": {"full_name": "Deepa N", "email": "deepa@example.com"},
            },
            headers=auth_headers(owner),
        )
        assert response.status_code == 201
        request_id = response.json()["request_id"]
        assert response.json()["request"]["grant_kind"] == "purchaser_profile"

        for s in stockists[:3]:
            body = client.post(f"/api/purchasing-card/approve/{request_id}", headers=auth_headers(s)).json()
        assert body["grant_status"] == "granted"

        request = client.get(f"/api/purchasing-card/{request_id}", headers=auth_headers(owner)).json()["request"]
        assert request["granted_resource_id"] is not None


class TestAdminOnboarding:
    def test_list_users_by_status(self, client, admin, user_factory):
        user_factory(status="processing")
        response = client.get("/api/users", params={"status": "processing"}, headers=auth_headers(admin))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 1
        assert body["items"][0]["status"] == "processing"

    def test_list_users_requires_admin(self, client, owner):
        assert client.get("/api/users", headers=auth_headers(owner)).status_code == 403

    def test_approve_twice_writes_two_audits(self, client, admin, user_factory, db_session):
        user = user_factory()
        for _ in range(2):
            response = client.patch(
                f"/api/users/{user.id}/approve",
                json={"note": "Documents verified"},
                headers={**auth_headers(admin), "User-Agent": "admin-console"},
            )
            assert response.status_code == 200
            assert response.json()["user"]["status"] == "approved"

        audits = db_session.query(AdminAudit).filter(AdminAudit.target_id == user.id).all()
        assert len(audits) == 2
        assert {a.note for a in audits} == {"Documents verified"}
        assert {a.user_agent for a in audits} == {"admin-console"}

    def test_decline_user(self, client, admin, user_factory):
        user = user_factory()
        response = client.patch(f"/api/users/{user.id}/decline", headers=auth_headers(admin))
        assert response.status_code == 200
        assert response.json()["user"]["status"] == "declined"

    def test_unknown_user(self, client, admin):
        response = client.get("/api/users/not-a-uuid", headers=auth_headers(admin))
        assert response.status_code == 404

    def test_public_stockist_directory(self, client, stockists):
        response = client.get("/api/stockists", params={"status": "approved", "per_page": 2})
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 5
        assert len(body["items"]) == 2
        assert all("password_hash" not in item for item in body["items"])

    def test_admin_creates_approved_stockist(self, client, admin):
        response = client.post(
            "/api/stockists",
            json={"name": "Direct Stockist", "email": "direct@example.com", "password": "direct-pass"},
            headers=auth_headers(admin),
        )
        assert response.status_code == 201
        assert response.json()["stockist"]["status"] == "approved"
        assert _login(client, "direct@example.com", "stockist", "direct-pass").status_code == 200

    def test_admin_email_only_elevates_approved_store_owners(self, client, admin, settings):
        settings.extra_admin_emails = "boss@example.com"
        response = client.post("/api/auth/purchaser-signup", json={
            "full_name": "Not The Boss",
            "email": "boss@example.com",
            "password": "boss-pass",
            "aadhar_image": "https://blobs.example.com/a.png",
            "photo": "https://blobs.example.com/p.png",
        })
        assert response.status_code == 201
        token = _login(client, "boss@example.com", "purchaser", "boss-pass").json()["access_token"]
        purchaser_headers = {"Authorization": f"Bearer {token}"}
        assert client.get("/api/auth/me", headers=purchaser_headers).json()["is_admin"] is False
        assert client.get("/api/users", headers=purchaser_headers).status_code == 403

        response = client.post("/api/auth/register", json={
            "medical_name": "Head Office",
            "owner_name": "Boss",
            "address": "1 Main Road",
            "email": "boss@example.com",
            "contact_no": "9000000000",
            "drug_license_no": "MH-HQ-0001",
            "password": "boss-pass",
        })
        assert response.status_code == 201
        user_id = response.json()["user"]["id"]
        token = _login(client, "boss@example.com", "medicalOwner", "boss-pass").json()["access_token"]
        user_headers = {"Authorization": f"Bearer {token}"}
        assert client.get("/api/users", headers=user_headers).status_code == 403

        client.patch(f"/api/users/{user_id}/approve", headers=auth_headers(admin))
        assert client.get("/api/users", headers=user_headers).status_code == 200
        assert client.get("/api/users", headers=purchaser_headers).status_code == 403


class TestStaff:
    STAFF = {
        "full_name": "Ravi Kumar",
        "contact": "9123456780",
        "email": "Ravi@Example.com",
        "address": "4 Godown Lane",
        "image": "https://blobs.example.com/ravi.png",
        "aadhar_card": "https://blobs.example.com/ravi-aadhar.png",
    }

    def test_stockist_adds_staff(self, client, stockists):
        response = client.post("/api/staff", json=self.STAFF, headers=auth_headers(stockists[0]))
        assert response.status_code == 201
        staff = response.json()["staff"]
        assert staff["stockist_id"] == str(stockists[0].id)
        assert staff["email"] == "ravi@example.com"
        assert "aadhar_card" not in staff
        assert "address" not in staff

        response = client.get(f"/api/staff/{staff['id']}", headers=auth_headers(stockists[1]))
        assert response.status_code == 200
        assert response.json()["staff"]["full_name"] == "Ravi Kumar"

    def test_only_stockists_add_staff(self, client, owner):
        response = client.post("/api/staff", json=self.STAFF, headers=auth_headers(owner))
        assert response.status_code == 403

    def test_documents_are_required(self, client, stockists):
        body = {k: v for k, v in self.STAFF.items() if k != "image"}
        assert client.post("/api/staff", json=body, headers=auth_headers(stockists[0])).status_code == 422

        body = {**self.STAFF, "aadhar_card": ""}
        assert client.post("/api/staff", json=body, headers=auth_headers(stockists[0])).status_code == 422

    def test_list_by_stockist(self, client, stockists, staff_factory, owner):
        mine, theirs = stockists[0], stockists[1]
        staff_factory(mine)
        staff_factory(mine)
        staff_factory(theirs)

        response = client.get("/api/staff", params={"stockist": "me"}, headers=auth_headers(mine))
        assert response.status_code == 200
        body = response.json()
        assert body["total"] == 2
        assert {item["stockist_id"] for item in body["items"]} == {str(mine.id)}

        response = client.get("/api/staff", params={"stockist": str(theirs.id)}, headers=auth_headers(owner))
        assert response.json()["total"] == 1
        assert client.get("/api/staff", headers=auth_headers(owner)).json()["total"] == 3

        response = client.get("/api/staff", params={"stockist": "me"}, headers=auth_headers(owner))
        assert response.status_code == 400
        assert client.get("/api/staff").status_code == 401

    def test_only_admin_deletes_staff(self, client, stockists, staff_factory, admin):
        staff = staff_factory(stockists[0])

        response = client.delete(f"/api/staff/{staff.id}", headers=auth_headers(stockists[0]))
        assert response.status_code == 403

        response = client.delete(f"/api/staff/{staff.id}", headers=auth_headers(admin))
        assert response.status_code == 200
        response = client.get(f"/api/staff/{staff.id}", headers=auth_headers(admin))
        assert response.status_code == 404


class TestPurchasers:
    def test_requester_sees_own_purchasers(self, client, owner, user_factory, purchaser_factory):
        purchaser = purchaser_factory(created_by=owner.id)
        purchaser_factory()
        other = user_factory(status="approved")

        body = client.get("/api/purchasers", headers=auth_headers(owner)).json()
        assert body["total"] == 1
        assert body["items"][0]["id"] == str(purchaser.id)
        assert client.get("/api/purchasers", headers=auth_headers(other)).json()["total"] == 0

        assert client.get(f"/api/purchasers/{purchaser.id}", headers=auth_headers(owner)).status_code == 200
        assert client.get(f"/api/purchasers/{purchaser.id}", headers=auth_headers(purchaser)).status_code == 200
        response = client.get(f"/api/purchasers/{purchaser.id}", headers=auth_headers(other))
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_admin_sees_all(self, client, admin, owner, purchaser_factory):
        purchaser_factory(created_by=owner.id)
        purchaser_factory()
        body = client.get("/api/purchasers", headers=auth_headers(admin)).json()
        assert body["total"] == 2

    def test_delete(self, client, owner, user_factory, purchaser_factory):
        purchaser = purchaser_factory(created_by=owner.id)
        other = user_factory(status="approved")

        assert client.delete(f"/api/purchasers/{purchaser.id}", headers=auth_headers(other)).status_code == 403
        assert client.delete(f"/api/purchasers/{purchaser.id}", headers=auth_headers(owner)).status_code == 200
        assert client.get(f"/api/purchasers/{purchaser.id}", headers=auth_headers(owner)).status_code == 404

    def test_unknown_purchaser(self, client, owner):
        response = client.delete("/api/purchasers/not-a-uuid", headers=auth_headers(owner))
        assert response.status_code == 404


class TestProfile:
    def test_owner_updates_profile(self, client, owner):
        original_address = owner.address
        response = client.put(
            "/api/auth/profile",
            json={"medical_name": "Lifeline Medicals II", "address": "", "contact_no": "9000011111"},
            headers=auth_headers(owner),
        )
        assert response.status_code == 200
        user = response.json()["user"]
        assert user["medical_name"] == "Lifeline Medicals II"
        assert user["contact_no"] == "9000011111"
        assert user["address"] == original_address

        me = client.get("/api/auth/me", headers=auth_headers(owner)).json()
        assert me["account"]["medical_name"] == "Lifeline Medicals II"

    def test_stockist_has_no_profile(self, client, stockists):
        response = client.put("/api/auth/profile", json={"medical_name": "x"}, headers=auth_headers(stockists[0]))
        assert response.status_code == 403


class TestDocumentVerification:
    def test_not_configured(self, client):
        response = client.post("/api/verify/document", files={"document": ("a.png", b"img", "image/png")})
        assert response.status_code == 501

    def test_with_extractor(self, client):
        from meditrap.api import deps
        from meditrap.api.main import app

        class FakeExtractor(TextExtractor):
            def extract_text(self, data, filename):
                return "Aadhaar 1234 5678 9012"

        app.dependency_overrides[deps.get_text_extractor] = FakeExtractor

        response = client.post("/api/verify/document", files={"document": ("a.png", b"img", "image/png")})
        assert response.status_code == 200
        assert response.json()["aadhar_candidates"] == ["123456789012"]

        response = client.post("/api/verify/drug-license")
        assert response.status_code == 400
        assert response.json()["error"] == "invalid_request"
