"""
Tests for authentication and the member profile.

These tests verify:
  - Signup creates a user and a profile with total_offset = 0
  - Duplicate email signup is rejected (409 Conflict)
  - Login returns a JWT; bad credentials return the same 401
  - Malformed requests are rejected with 400 validation errors
  - Protected endpoints require a valid token
  - Profile updates cannot write total_offset
"""


class TestSignup:
    """Tests for POST /auth/signup."""

    async def test_signup_success(self, client):
        response = await client.post(
            "/auth/signup",
            json={
                "email": "newuser@example.com",
                "password": "StrongPass99!",
                "first_name": "Jane",
                "last_name": "Doe",
            },
        )
        assert response.status_code == 201
        data = response.json()
        assert data["email"] == "newuser@example.com"
        assert data["user_type"] == "member"
        assert data["token_type"] == "bearer"
        assert "token" in data
        assert "user_id" in data

    async def test_signup_without_names(self, client):
        """Names are optional; the profile is created either way."""
        response = await client.post(
            "/auth/signup",
            json={"email": "noname@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 201

    async def test_signup_duplicate_email(self, client):
        signup_data = {
            "email": "duplicate@example.com",
            "password": "StrongPass99!",
        }
        assert (await client.post("/auth/signup", json=signup_data)).status_code == 201

        response = await client.post("/auth/signup", json=signup_data)
        assert response.status_code == 409
        body = response.json()
        assert body["error_type"] == "duplicate_email"
        assert "already registered" in body["error"]

    async def test_signup_short_password(self, client):
        response = await client.post(
            "/auth/signup",
            json={"email": "short@example.com", "password": "short"},
        )
        assert response.status_code == 400
        assert response.json()["error_type"] == "validation_error"

    async def test_signup_invalid_email(self, client):
        response = await client.post(
            "/auth/signup",
            json={"email": "not-an-email", "password": "StrongPass99!"},
        )
        assert response.status_code == 400


class TestLogin:
    """Tests for POST /auth/login."""

    async def test_login_success(self, client):
        await client.post(
            "/auth/signup",
            json={"email": "login@example.com", "password": "StrongPass99!"},
        )
        response = await client.post(
            "/auth/login",
            json={"email": "login@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 200
        assert response.json()["token"]

    async def test_login_wrong_password(self, client):
        await client.post(
            "/auth/signup",
            json={"email": "wrongpw@example.com", "password": "StrongPass99!"},
        )
        response = await client.post(
            "/auth/login",
            json={"email": "wrongpw@example.com", "password": "WrongPass99!"},
        )
        assert response.status_code == 401
        assert response.json()["error_type"] == "invalid_credentials"

    async def test_login_unknown_email_same_error(self, client):
        """Unknown emails get the same error as wrong passwords."""
        response = await client.post(
            "/auth/login",
            json={"email": "ghost@example.com", "password": "StrongPass99!"},
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Invalid email or password"


class TestProtectedEndpoints:

    async def test_no_token_rejected(self, client):
        response = await client.get("/users/profile")
        assert response.status_code == 401

    async def test_garbage_token_rejected(self, client):
        response = await client.get(
            "/users/profile", headers={"Authorization": "Bearer not.a.jwt"}
        )
        assert response.status_code == 401
        assert response.json()["error"] == "Could not validate credentials"

    async def test_health_is_public(self, client):
        response = await client.get("/health")
        assert response.status_code == 200
        assert response.json()["status"] == "ok"


class TestProfile:
    """Tests for GET/PUT /users/profile."""

    async def test_new_member_profile(self, authenticated_client):
        response = await authenticated_client.get("/users/profile")
        assert response.status_code == 200
        data = response.json()
        assert data["user_id"] == authenticated_client.user_id
        assert data["first_name"] == "Test"
        assert data["total_offset"] == 0
        assert data["badge"] == "Getting Started"

    async def test_update_profile_fields(self, authenticated_client):
        response = await authenticated_client.put(
            "/users/profile",
            json={"bio": "Offsetting my commute", "location": "Lisbon"},
        )
        assert response.status_code == 200
        data = response.json()
        assert data["bio"] == "Offsetting my commute"
        assert data["location"] == "Lisbon"
        assert data["first_name"] == "Test"

    async def test_total_offset_is_read_only(self, authenticated_client):
        """total_offset in the body is ignored; only the ledger moves it."""
        response = await authenticated_client.put(
            "/users/profile", json={"total_offset": 5000}
        )
        assert response.status_code == 200
        assert response.json()["total_offset"] == 0

    async def test_admin_has_no_member_profile(self, admin_client):
        response = await admin_client.get("/users/profile")
        assert response.status_code == 403
