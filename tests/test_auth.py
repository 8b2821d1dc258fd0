from unittest.mock import patch

from fastapi import status
from jose import jwt

from agriconnect.config import settings
from agriconnect.models import OneTimeToken, RefreshToken, User
from agriconnect.services.auth_tokens import ONE_TIME_PURPOSE_PHONE_VERIFY
from agriconnect.services.sms_gateway import SmsResult


def _register_payload(email: str = "newfarmer@example.rw", phone: str = "0788123456", role: str = "FARMER") -> dict:
    return {
        "name": "Eric Habimana",
        "email": email,
        "phoneNumber": phone,
        "password": "Secure123",
        "role": role,
    }


def _register(client, **kwargs) -> tuple[dict, str]:
    """Register and return the response body with the texted OTP."""
    with patch("agriconnect.api.auth.sms_gateway.send_otp", return_value=SmsResult(success=True)) as mock_send:
        response = client.post("/api/auth/register", json=_register_payload(**kwargs))
    assert response.status_code == status.HTTP_200_OK, response.text
    mock_send.assert_called_once()
    return response.json(), mock_send.call_args.args[1]


def test_register_success(client, db):
    data, otp = _register(client)

    assert data["email"] == "newfarmer@example.rw"
    assert data["phoneNumber"] == "+250788123456"
    assert data["role"] == "FARMER"
    assert data["isVerified"] is False
    assert data["requiresPhoneVerification"] is True
    assert len(otp) == 6 and otp.isdigit()

    user = db.query(User).filter(User.email == "newfarmer@example.rw").first()
    assert user is not None
    assert user.profile.name == "Eric Habimana"
    assert user.hashed_password != "Secure123"
    token = db.query(OneTimeToken).filter(OneTimeToken.user_id == user.id).one()
    assert token.purpose == ONE_TIME_PURPOSE_PHONE_VERIFY
    assert token.token_hash != otp


def test_register_duplicate_email_conflicts(client, farmer):
    response = client.post("/api/auth/register", json=_register_payload(email=farmer.email))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert response.json()["code"] == "CONFLICT"
    assert "already registered" in response.json()["detail"].lower()


def test_register_duplicate_phone_conflicts(client, farmer):
    response = client.post("/api/auth/register", json=_register_payload(phone="+250788111111"))
    assert response.status_code == status.HTTP_409_CONFLICT
    assert "phone" in response.json()["detail"].lower()


def test_register_rejects_admin_role(client):
    response = client.post("/api/auth/register", json=_register_payload(role="ADMIN"))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_register_rejects_weak_password(client):
    payload = _register_payload()
    payload["password"] = "alllowercase1"
    response = client.post("/api/auth/register", json=payload)
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_register_rejects_foreign_phone_number(client):
    response = client.post("/api/auth/register", json=_register_payload(phone="+254712345678"))
    assert response.status_code == status.HTTP_422_UNPROCESSABLE_ENTITY


def test_register_succeeds_when_sms_gateway_is_down(client, db):
    response = client.post("/api/auth/register", json=_register_payload())
    assert response.status_code == status.HTTP_200_OK
    assert db.query(User).count() == 1


def test_verify_phone_marks_user_verified(client, db):
    data, otp = _register(client)

    response = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": otp})
    assert response.status_code == status.HTTP_200_OK

    user = db.query(User).filter(User.id == data["id"]).one()
    db.refresh(user)
    assert user.is_verified is True


def test_verify_phone_code_is_single_use(client):
    _, otp = _register(client)
    first = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": otp})
    second = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": otp})
    assert first.status_code == status.HTTP_200_OK
    assert second.status_code == status.HTTP_400_BAD_REQUEST


def test_verify_phone_wrong_code(client):
    _, otp = _register(client)
    wrong = "000000" if otp != "000000" else "111111"
    response = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": wrong})
    assert response.status_code == status.HTTP_400_BAD_REQUEST
    assert response.json()["code"] == "BAD_REQUEST"


def test_resend_otp_respects_cooldown(client):
    _register(client)
    response = client.post("/api/auth/verify-phone/resend", json={"phoneNumber": "0788123456"})
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS


def test_resend_otp_for_unknown_phone_is_generic(client):
    response = client.post("/api/auth/verify-phone/resend", json={"phoneNumber": "0788999999"})
    assert response.status_code == status.HTTP_200_OK
    assert "if the account exists" in response.json()["message"].lower()


def test_resend_otp_replaces_previous_code(client, db, monkeypatch):
    data, old_otp = _register(client)
    monkeypatch.setenv("OTP_RESEND_COOLDOWN_SECONDS", "0")

    with patch("agriconnect.api.auth.sms_gateway.send_otp", return_value=SmsResult(success=True)) as mock_send:
        response = client.post("/api/auth/verify-phone/resend", json={"phoneNumber": "0788123456"})
    assert response.status_code == status.HTTP_200_OK
    new_otp = mock_send.call_args.args[1]

    assert db.query(OneTimeToken).filter(OneTimeToken.user_id == data["id"]).count() == 1
    if new_otp != old_otp:
        stale = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": old_otp})
        assert stale.status_code == status.HTTP_400_BAD_REQUEST
    fresh = client.post("/api/auth/verify-phone", json={"phoneNumber": "0788123456", "code": new_otp})
    assert fresh.status_code == status.HTTP_200_OK


def test_login_success(client, farmer):
    response = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"})
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["token_type"] == "bearer"
    assert data["expiresIn"] > 0
    assert data["refreshExpiresIn"] > 0

    payload = jwt.decode(data["accessToken"], settings.JWT_SECRET, algorithms=[settings.JWT_ALGORITHM])
    assert payload["sub"] == str(farmer.id)
    assert payload["role"] == "FARMER"
    assert payload["type"] == "access"


def test_login_email_is_case_insensitive(client, farmer):
    response = client.post("/api/auth/login", json={"email": "FARMER@example.rw", "password": "Password123"})
    assert response.status_code == status.HTTP_200_OK


def test_login_wrong_password(client, farmer):
    response = client.post("/api/auth/login", json={"email": farmer.email, "password": "WrongPass1"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.json()["code"] == "UNAUTHORIZED"


def test_login_unknown_user(client):
    response = client.post("/api/auth/login", json={"email": "ghost@example.rw", "password": "Password123"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED


def test_login_is_rate_limited(client, farmer):
    for _ in range(10):
        client.post("/api/auth/login", json={"email": farmer.email, "password": "WrongPass1"})
    response = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"})
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS
    assert response.json()["code"] == "TOO_MANY_REQUESTS"
    assert int(response.headers["Retry-After"]) >= 1
    assert response.headers["X-RateLimit-Limit"] == "10"
    assert response.headers["X-RateLimit-Remaining"] == "0"


def test_refresh_rotates_token(client, farmer, db):
    login = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"}).json()

    response = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert response.status_code == status.HTTP_200_OK
    rotated = response.json()
    assert rotated["refreshToken"] != login["refreshToken"]

    reused = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert reused.status_code == status.HTTP_401_UNAUTHORIZED
    assert db.query(RefreshToken).filter(RefreshToken.revoked_at.is_(None)).count() == 1


def test_logout_revokes_refresh_token(client, farmer):
    login = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"}).json()

    response = client.post("/api/auth/logout", json={"refreshToken": login["refreshToken"]})
    assert response.status_code == status.HTTP_200_OK

    refreshed = client.post("/api/auth/refresh", json={"refreshToken": login["refreshToken"]})
    assert refreshed.status_code == status.HTTP_401_UNAUTHORIZED


def test_password_reset_flow(client, farmer):
    with patch("agriconnect.api.auth.send_password_reset_email") as mock_send:
        response = client.post("/api/auth/password/forgot", json={"email": farmer.email})
    assert response.status_code == status.HTTP_200_OK
    mock_send.assert_called_once()
    reset_token = mock_send.call_args.args[2]

    response = client.post(
        "/api/auth/password/reset",
        json={"token": reset_token, "password": "NewSecure456", "confirmPassword": "NewSecure456"},
    )
    assert response.status_code == status.HTTP_200_OK

    old = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"})
    new = client.post("/api/auth/login", json={"email": farmer.email, "password": "NewSecure456"})
    assert old.status_code == status.HTTP_401_UNAUTHORIZED
    assert new.status_code == status.HTTP_200_OK


def test_password_forgot_unknown_email_is_generic(client):
    with patch("agriconnect.api.auth.send_password_reset_email") as mock_send:
        response = client.post("/api/auth/password/forgot", json={"email": "ghost@example.rw"})
    assert response.status_code == status.HTTP_200_OK
    mock_send.assert_not_called()


def test_password_reset_invalid_token(client):
    response = client.post(
        "/api/auth/password/reset",
        json={"token": "not-a-token", "password": "NewSecure456", "confirmPassword": "NewSecure456"},
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_password_reset_is_rate_limited(client):
    payload = {"token": "not-a-token", "password": "NewSecure456", "confirmPassword": "NewSecure456"}
    for _ in range(3):
        client.post("/api/auth/password/reset", json=payload)
    response = client.post("/api/auth/password/reset", json=payload)
    assert response.status_code == status.HTTP_429_TOO_MANY_REQUESTS


def test_password_change(client, farmer, farmer_headers):
    response = client.post(
        "/api/auth/password/change",
        json={"currentPassword": "Password123", "newPassword": "Changed789", "confirmPassword": "Changed789"},
        headers=farmer_headers,
    )
    assert response.status_code == status.HTTP_200_OK

    login = client.post("/api/auth/login", json={"email": farmer.email, "password": "Changed789"})
    assert login.status_code == status.HTTP_200_OK


def test_password_change_wrong_current(client, farmer_headers):
    response = client.post(
        "/api/auth/password/change",
        json={"currentPassword": "Nope12345", "newPassword": "Changed789", "confirmPassword": "Changed789"},
        headers=farmer_headers,
    )
    assert response.status_code == status.HTTP_400_BAD_REQUEST


def test_me_returns_current_user(client, farmer, farmer_headers):
    response = client.get("/api/auth/me", headers=farmer_headers)
    assert response.status_code == status.HTTP_200_OK
    data = response.json()
    assert data["id"] == farmer.id
    assert data["name"] == "Jean Farmer"
    assert data["phoneNumber"] == "+250788111111"
    assert data["role"] == "FARMER"


def test_me_requires_authentication(client):
    response = client.get("/api/auth/me")
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
    assert response.headers["WWW-Authenticate"] == "Bearer"


def test_refresh_token_cannot_be_used_as_access_token(client, farmer):
    login = client.post("/api/auth/login", json={"email": farmer.email, "password": "Password123"}).json()
    response = client.get("/api/auth/me", headers={"Authorization": f"Bearer {login['refreshToken']}"})
    assert response.status_code == status.HTTP_401_UNAUTHORIZED
