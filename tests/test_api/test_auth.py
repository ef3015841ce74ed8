"""Registration, login and bearer-token checks."""

from app.core.security import create_access_token
from app.schemas.user import AuthUser


def _register(client, email="ada@example.com", password="secret123", name="Ada"):
    return client.post(
        "/api/v1/auth/register",
        json={"email": email, "password": password, "name": name},
    )


class TestRegister:

    def test_returns_token_and_public_user(self, client):
        response = _register(client)
        assert response.status_code == 201
        body = response.json()
        assert body["token"]
        assert body["user"]["email"] == "ada@example.com"
        assert body["user"]["name"] == "Ada"
        assert set(body["user"]) == {"id", "email", "name"}

    def test_duplicate_email_conflicts(self, client):
        assert _register(client).status_code == 201
        response = _register(client, name="Someone Else")
        assert response.status_code == 409
        assert response.json() == {"error": "Email already registered"}

    def test_invalid_email_rejected(self, client):
        response = _register(client, email="not-an-email")
        assert response.status_code == 400
        assert "error" in response.json()

    def test_short_password_rejected(self, client):
        response = _register(client, password="12345")
        assert response.status_code == 400
        assert "password" in response.json()["error"]

    def test_missing_name_rejected(self, client):
        response = client.post(
            "/api/v1/auth/register",
            json={"email": "ada@example.com", "password": "secret123"},
        )
        assert response.status_code == 400


class TestLogin:

    def test_login_returns_token(self, client):
        _register(client)
        response = client.post(
            "/api/v1/auth/login",
            json={"email": "ada@example.com", "password": "secret123"},
        )
        assert response.status_code == 200
        token = response.json()["token"]

        me = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert me.status_code == 200
        assert me.json()["user"]["email"] == "ada@example.com"

    def test_unknown_email_and_wrong_password_look_the_same(self, client):
        _register(client)
        unknown = client.post(
            "/api/v1/auth/login",
            json={"email": "nobody@example.com", "password": "secret123"},
        )
        wrong = client.post(
            "/api/v1/auth/login",
            json={"email": "ada@example.com", "password": "wrong-password"},
        )
        assert unknown.status_code == wrong.status_code == 401
        assert unknown.json() == wrong.json() == {"error": "Invalid email or password"}


class TestMe:

    def test_requires_token(self, client):
        response = client.get("/api/v1/auth/me")
        assert response.status_code == 401
        assert "error" in response.json()

    def test_rejects_malformed_token(self, client):
        response = client.get("/api/v1/auth/me", headers={"Authorization": "Bearer not.a.jwt"})
        assert response.status_code == 401

    def test_rejects_token_signed_with_other_key(self, client):
        token = create_access_token(AuthUser(id=1, email="a@example.com", name="A"), secret_key="other-key")
        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401

    def test_rejects_expired_token(self, client, settings):
        token = create_access_token(
            AuthUser(id=1, email="a@example.com", name="A"),
            secret_key=settings.SECRET_KEY,
            expires_in_days=-1,
        )
        response = client.get("/api/v1/auth/me", headers={"Authorization": f"Bearer {token}"})
        assert response.status_code == 401
        assert response.json() == {"error": "Invalid or expired token"}


def test_health(client):
    assert client.get("/health").json() == {"status": "healthy"}
    assert client.get("/api/v1/health").status_code == 200
