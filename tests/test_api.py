"""HTTP endpoints: status codes, payload shapes, cookies and admin guards."""

from datetime import timedelta

import pytest

from auth import create_access_token, session_claims, verify_token
from models import Campaign, Donation, Identity, IdentitySpace

from conftest import TEST_PASSWORD


def register_user(client, email="alice@donors.org", **extra):
    data = {"name": "Alice", "email": email, "role": "donor", "password": TEST_PASSWORD}
    data.update(extra)
    return client.post("/addNewUser", data=data)


class TestUserEndpoints:

    def test_register_user(self, client):
        response = register_user(client)

        assert response.status_code == 201
        body = response.json()
        assert body["success"] is True
        assert body["user"]["email"] == "alice@donors.org"
        assert body["user"]["space"] == "user"
        assert "password" not in body["user"]
        assert "password_hash" not in body["user"]

    def test_register_with_photo(self, client, png_bytes):
        response = client.post(
            "/addNewUser",
            data={"name": "Alice", "email": "alice@donors.org", "password": TEST_PASSWORD},
            files={"photo": ("me.png", png_bytes, "image/png")},
        )

        assert response.status_code == 201
        photo = response.json()["user"]["photo"]
        assert photo.startswith("photo_") and photo.endswith(".png")

        served = client.get(f"/images/{photo}")
        assert served.status_code == 200
        assert served.content == png_bytes

    def test_register_rejects_non_image_upload(self, client):
        response = client.post(
            "/addNewUser",
            data={"name": "Alice", "email": "alice@donors.org", "password": TEST_PASSWORD},
            files={"photo": ("me.png", b"definitely not a png", "image/png")},
        )
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"

    def test_register_rejects_wrong_content_type(self, client):
        response = client.post(
            "/addNewUser",
            data={"name": "Alice", "email": "alice@donors.org", "password": TEST_PASSWORD},
            files={"photo": ("notes.txt", b"hello", "text/plain")},
        )
        assert response.status_code == 400

    def test_register_duplicate_email_conflicts(self, client):
        assert register_user(client).status_code == 201

        response = register_user(client, name="Alice Again")
        assert response.status_code == 409
        assert response.json() == {
            "success": False,
            "error": "already_exists",
            "detail": "User already exists. Please log in.",
        }

    @pytest.mark.parametrize("overrides", [
        {"email": "not-an-email"},
        {"password": "short"},
        {"name": "   "},
    ])
    def test_register_validation_failure(self, client, overrides):
        response = register_user(client, **overrides)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"

    def test_register_missing_field(self, client):
        response = client.post("/addNewUser", data={"name": "Alice", "email": "alice@donors.org"})
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"

    def test_list_and_count_users(self, client):
        register_user(client, email="one@donors.org")
        register_user(client, email="two@donors.org")

        users = client.get("/getUsers").json()
        assert [u["email"] for u in users] == ["two@donors.org", "one@donors.org"]
        assert client.get("/usersCount").json() == {"users": 2}

    def test_delete_user_requires_admin(self, client, make_identity):
        user = make_identity()

        assert client.delete(f"/deleteUser/{user.id}").status_code == 401

        user_token = create_access_token(session_claims(user))
        response = client.delete(f"/deleteUser/{user.id}", headers={"Authorization": f"Bearer {user_token}"})
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

    def test_delete_user(self, client, make_identity, admin_headers):
        user = make_identity()

        response = client.delete(f"/deleteUser/{user.id}", headers=admin_headers)
        assert response.status_code == 200
        assert client.get("/usersCount").json() == {"users": 0}

    def test_delete_missing_user_is_not_found(self, client, admin_headers):
        response = client.delete("/deleteUser/4242", headers=admin_headers)
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"


class TestLogin:

    def test_user_login_sets_cookie_and_returns_token(self, client, make_identity):
        user = make_identity(photo="photo_a.png")

        response = client.post("/userLogin", json={"email": "alice@donors.org", "password": TEST_PASSWORD})

        assert response.status_code == 200
        body = response.json()
        assert body["success"] is True
        assert body["user"] == {"id": user.id, "name": "Alice", "email": "alice@donors.org", "photo": "photo_a.png"}
        assert response.cookies.get("token") == body["token"]
        assert verify_token(body["token"])["id"] == user.id

    def test_wrong_password(self, client, make_identity):
        make_identity()
        response = client.post("/userLogin", json={"email": "alice@donors.org", "password": "wrong-password"})
        assert response.status_code == 401
        assert response.json()["error"] == "invalid_credentials"

    def test_unknown_email(self, client):
        response = client.post("/userLogin", json={"email": "ghost@donors.org", "password": TEST_PASSWORD})
        assert response.status_code == 404
        assert response.json()["error"] == "not_found"

    def test_admin_register_and_login(self, client, admin_headers):
        created = client.post(
            "/addNewAdmin",
            data={"name": "Second", "email": "second@donationhub.org", "password": TEST_PASSWORD},
            headers=admin_headers,
        )
        assert created.status_code == 201
        assert created.json()["admin"]["space"] == "admin"

        response = client.post("/adminLogin", json={"email": "second@donationhub.org", "password": TEST_PASSWORD})
        assert response.status_code == 200
        assert response.json()["admin"]["email"] == "second@donationhub.org"

    def test_add_admin_requires_admin(self, client, make_identity, db_session):
        data = {"name": "Mallory", "email": "mallory@donationhub.org", "password": TEST_PASSWORD}

        response = client.post("/addNewAdmin", data=data)
        assert response.status_code == 401

        user = make_identity()
        user_token = create_access_token(session_claims(user))
        response = client.post("/addNewAdmin", data=data, headers={"Authorization": f"Bearer {user_token}"})
        assert response.status_code == 403
        assert response.json()["error"] == "forbidden"

        assert db_session.query(Identity).filter(Identity.space == IdentitySpace.ADMIN).count() == 0

    def test_mixed_case_email_logs_in(self, client):
        assert register_user(client, email="Bob@Example.COM").status_code == 201

        response = client.post("/userLogin", json={"email": "Bob@Example.COM", "password": TEST_PASSWORD})
        assert response.status_code == 200
        assert response.json()["user"]["email"] == "Bob@example.com"

        # Differently cased domain resolves to the same account
        response = client.post("/userLogin", json={"email": "Bob@EXAMPLE.com", "password": TEST_PASSWORD})
        assert response.status_code == 200

    def test_user_credentials_do_not_open_admin_login(self, client, make_identity):
        make_identity()
        response = client.post("/adminLogin", json={"email": "alice@donors.org", "password": TEST_PASSWORD})
        assert response.status_code == 404

    def test_admin_cookie_authorizes_admin_endpoints(self, client, admin, make_campaign):
        campaign = make_campaign()
        login = client.post("/adminLogin", json={"email": admin.email, "password": TEST_PASSWORD})
        assert login.status_code == 200

        # The client now carries the token cookie
        response = client.put(f"/updateCampaignStatus/{campaign.id}", json={"status": "inactive"})
        assert response.status_code == 200

    @pytest.mark.parametrize("method", ["get", "post"])
    def test_logout_clears_cookie(self, client, make_identity, method):
        make_identity()
        client.post("/userLogin", json={"email": "alice@donors.org", "password": TEST_PASSWORD})
        assert client.cookies.get("token")

        response = getattr(client, method)("/logout")
        assert response.status_code == 200
        assert "token=" in response.headers["set-cookie"]
        assert client.cookies.get("token") is None

    def test_verify_token(self, client, make_identity):
        user = make_identity()
        token = create_access_token(session_claims(user))

        response = client.get("/verifyToken", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 200
        assert response.json()["user"]["id"] == user.id

    def test_verify_expired_token(self, client, make_identity):
        token = create_access_token(session_claims(make_identity()), expires_delta=timedelta(seconds=-1))
        response = client.get("/verifyToken", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_admin_token_for_deleted_admin_is_forbidden(self, client, admin, admin_headers, db_session):
        db_session.delete(admin)
        db_session.commit()
        response = client.delete("/deleteUser/1", headers=admin_headers)
        assert response.status_code == 403


class TestCampaignEndpoints:

    def campaign_form(self, **overrides):
        form = {
            "title": "Clean Water",
            "goalAmount": "5000",
            "description": "Wells for three villages",
            "startDate": "2025-01-01",
            "endDate": "2025-06-30",
            "status": "active",
        }
        form.update(overrides)
        return form

    def test_create_campaign(self, client, admin_headers, png_bytes):
        response = client.post(
            "/createCampaign",
            data=self.campaign_form(),
            files={"image": ("well.png", png_bytes, "image/png")},
            headers=admin_headers,
        )

        assert response.status_code == 201
        campaign = response.json()["campaign"]
        assert campaign["title"] == "Clean Water"
        assert campaign["goal"] == 5000
        assert campaign["start"] == "2025-01-01"
        assert campaign["raised"] == 0
        assert campaign["image"].startswith("image_")

    def test_create_campaign_requires_admin(self, client):
        assert client.post("/createCampaign", data=self.campaign_form()).status_code == 401

    @pytest.mark.parametrize("overrides", [
        {"goalAmount": "-10"},
        {"goalAmount": "lots"},
        {"status": "archived"},
        {"startDate": "2025-06-30", "endDate": "2025-01-01"},
    ])
    def test_create_campaign_validation(self, client, admin_headers, overrides):
        response = client.post("/createCampaign", data=self.campaign_form(**overrides), headers=admin_headers)
        assert response.status_code == 400

    def test_list_campaigns(self, client, make_campaign):
        make_campaign(title="Older")
        make_campaign(title="Newer")
        assert [c["title"] for c in client.get("/getCampaigns").json()] == ["Newer", "Older"]
        assert client.get("/campaignsCount").json() == {"campaigns": 2}

    def test_update_status(self, client, admin_headers, make_campaign):
        campaign = make_campaign()
        response = client.put(f"/updateCampaignStatus/{campaign.id}", json={"status": "inactive"}, headers=admin_headers)
        assert response.status_code == 200
        assert response.json()["campaign"]["status"] == "inactive"

    def test_update_status_missing_campaign(self, client, admin_headers):
        response = client.put("/updateCampaignStatus/77", json={"status": "inactive"}, headers=admin_headers)
        assert response.status_code == 404

    def test_count_by_status(self, client, make_campaign):
        make_campaign(title="A")
        make_campaign(title="B")
        make_campaign(title="C", status="inactive")
        assert client.get("/countAllCampaignsStatus").json() == {
            "success": True,
            "result": {"active": 2, "inactive": 1},
        }

    def test_update_raised_amount(self, client, make_identity, make_campaign, make_donation):
        user = make_identity()
        funded = make_campaign(title="Funded")
        empty = make_campaign(title="Empty")
        make_donation(user, funded, 10)
        make_donation(user, funded, 15)

        response = client.put("/updateRaisedAmount")

        assert response.status_code == 200
        raised = {c["title"]: c["raised"] for c in response.json()}
        assert raised == {"Funded": 25, "Empty": 0}

    def test_delete_campaign(self, client, admin_headers, make_campaign, db_session):
        campaign = make_campaign()
        assert client.delete(f"/deleteCampaign/{campaign.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/deleteCampaign/{campaign.id}", headers=admin_headers).status_code == 404
        assert db_session.query(Campaign).count() == 0


class TestDonationEndpoints:

    def test_add_donation(self, client, make_identity, make_campaign):
        user = make_identity()
        campaign = make_campaign()

        response = client.post("/addToDonations", json={
            "user_id": user.id, "campaign_id": campaign.id, "amount": 25, "message": "Good luck",
        })

        assert response.status_code == 201
        assert response.json()["donation"]["amount"] == 25
        assert client.get("/donationsCount").json() == {"donations": 1}

    @pytest.mark.parametrize("payload", [
        {"campaign_id": 1, "amount": 5, "message": "hi"},
        {"user_id": 1, "campaign_id": 1, "amount": 5, "message": "   "},
        {"user_id": 1, "campaign_id": 1, "amount": 0, "message": "hi"},
        {"user_id": 1, "campaign_id": 1, "amount": "abc", "message": "hi"},
    ])
    def test_add_donation_validation(self, client, payload):
        response = client.post("/addToDonations", json=payload)
        assert response.status_code == 400
        assert response.json()["error"] == "validation_failure"

    def test_add_donation_unknown_campaign(self, client, make_identity):
        user = make_identity()
        response = client.post("/addToDonations", json={
            "user_id": user.id, "campaign_id": 999, "amount": 5, "message": "hi",
        })
        assert response.status_code == 404

    def test_donation_feeds(self, client, make_identity, make_campaign, make_donation):
        alice = make_identity()
        bob = make_identity(name="Bob", email="bob@donors.org")
        campaign = make_campaign()
        make_donation(alice, campaign, 10)
        make_donation(bob, campaign, 20)

        feed = client.get("/getDonations").json()
        assert len(feed) == 2
        assert set(feed[0]) == {
            "id", "amount", "message", "date", "campaign_id", "campaign_title",
            "campaign_image", "donor_id", "donor_name", "donor_photo",
        }

        mine = client.get(f"/getMyDonations/{alice.id}").json()
        assert [d["donor_name"] for d in mine] == ["Alice"]

    def test_delete_donation(self, client, admin_headers, make_identity, make_campaign, make_donation, db_session):
        donation = make_donation(make_identity(), make_campaign(), 10)

        assert client.delete(f"/deleteDonation/{donation.id}", headers=admin_headers).status_code == 200
        assert client.delete(f"/deleteDonation/{donation.id}", headers=admin_headers).status_code == 404
        assert db_session.query(Donation).count() == 0


class TestReportingEndpoints:

    def test_leaderboard(self, client, make_identity, make_campaign, make_donation):
        big = make_identity(name="Big", email="big@donors.org")
        small = make_identity(name="Small", email="small@donors.org")
        campaign = make_campaign()
        make_donation(small, campaign, 50)
        make_donation(big, campaign, 60)
        make_donation(big, make_campaign(title="Other"), 40)

        board = client.get("/getLeaderboard").json()

        assert [(e["rank"], e["contributor_name"], e["total_donated"]) for e in board] == [
            (1, "Big", 100), (2, "Small", 50),
        ]
        assert board[0]["donation_count"] == 2
        assert board[0]["campaigns_supported"] == 2

    def test_export_csv(self, client, admin_headers, make_identity, make_campaign, make_donation):
        make_donation(make_identity(), make_campaign(), 10)

        response = client.get("/exportDonations?format=csv", headers=admin_headers)

        assert response.status_code == 200
        assert response.headers["content-type"].startswith("text/csv")
        assert "attachment; filename=donations_" in response.headers["content-disposition"]
        assert response.text.splitlines()[0] == "Donation ID,Donor,Campaign,Amount,Message,Date"

    def test_export_rejects_unknown_format(self, client, admin_headers):
        assert client.get("/exportDonations?format=pdf", headers=admin_headers).status_code == 400

    def test_export_requires_admin(self, client):
        assert client.get("/exportDonations").status_code == 401


class TestPlumbing:

    def test_health(self, client):
        assert client.get("/health").json()["status"] == "healthy"

    def test_security_headers(self, client):
        response = client.get("/health")
        assert response.headers["X-Content-Type-Options"] == "nosniff"
        assert response.headers["X-Frame-Options"] == "DENY"

    def test_unknown_route_uses_error_shape(self, client):
        response = client.get("/doesNotExist")
        assert response.status_code == 404
        assert response.json()["success"] is False

    def test_default_admin_bootstrap(self, db_session, monkeypatch):
        from config import Config
        from main import create_default_admin

        monkeypatch.setattr(Config, "DEFAULT_ADMIN_EMAIL", "boot@donationhub.org")
        monkeypatch.setattr(Config, "DEFAULT_ADMIN_PASSWORD", TEST_PASSWORD)

        first = create_default_admin(db_session)
        second = create_default_admin(db_session)

        assert first.id == second.id
        assert first.space == IdentitySpace.ADMIN
        assert db_session.query(Identity).filter(Identity.space == IdentitySpace.ADMIN).count() == 1

    def test_default_admin_skipped_without_config(self, db_session):
        from main import create_default_admin
        assert create_default_admin(db_session) is None
