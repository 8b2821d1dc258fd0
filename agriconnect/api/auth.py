import logging
from datetime import datetime, timedelta, timezone
from typing import Annotated

from fastapi import APIRouter, Depends, Request
from jose import jwt
from passlib.context import CryptContext
from pydantic import BaseModel, ConfigDict, EmailStr, Field, field_validator, model_validator
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from agriconnect.config import settings
from agriconnect.dependencies import get_current_user, rate_limit
from agriconnect.errors import ApiError, bad_request, conflict, internal_error, unauthorized
from agriconnect.models import Profile, User, get_db
from agriconnect.models.enums import UserRole
from agriconnect.services import sms_gateway
from agriconnect.services.auth_tokens import (
    ONE_TIME_PURPOSE_PASSWORD_RESET,
    ONE_TIME_PURPOSE_PHONE_VERIFY,
    consume_one_time_token,
    consume_phone_otp,
    get_latest_one_time_token,
    get_valid_refresh_token,
    issue_one_time_token,
    issue_phone_otp,
    issue_refresh_token,
    revoke_all_refresh_tokens_for_user,
    revoke_refresh_token,
    revoke_refresh_token_by_raw,
    utcnow,
)
from agriconnect.services.email_service import send_password_reset_email

router = APIRouter()
pwd_context = CryptContext(schemes=["pbkdf2_sha256"], deprecated="auto")
logger = logging.getLogger(__name__)

PHONE_PATTERN = r"^(\+250|0)(7[0-9]{8})$"


def _validate_password_strength(v: str) -> str:
    if len(v) < 8:
        raise ValueError("Password must be at least 8 characters long")
    if not any(ch.isupper() for ch in v):
        raise ValueError("Password must contain at least one uppercase letter")
    if not any(ch.islower() for ch in v):
        raise ValueError("Password must contain at least one lowercase letter")
    if not any(ch.isdigit() for ch in v):
        raise ValueError("Password must contain at least one number")
    return v


class CamelModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class RegisterRequest(CamelModel):
    name: str = Field(min_length=2, max_length=255)
    email: EmailStr
    phone_number: str = Field(alias="phoneNumber", pattern=PHONE_PATTERN)
    password: str
    role: UserRole

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password_strength(v)

    @field_validator("role")
    @classmethod
    def validate_role(cls, v: UserRole) -> UserRole:
        if v == UserRole.ADMIN:
            raise ValueError("Role must be FARMER or SELLER")
        return v


class RegisterResponse(CamelModel):
    id: int
    email: str
    phone_number: str = Field(alias="phoneNumber")
    role: UserRole
    is_verified: bool = Field(alias="isVerified")
    requires_phone_verification: bool = Field(alias="requiresPhoneVerification")


class LoginRequest(CamelModel):
    email: EmailStr
    password: str

    model_config = ConfigDict(
        json_schema_extra={"examples": [{"email": "farmer@example.rw", "password": "Secure123"}]},
        populate_by_name=True,
    )


class TokenResponse(CamelModel):
    access_token: str = Field(alias="accessToken")
    refresh_token: str = Field(alias="refreshToken")
    token_type: str = "bearer"
    expires_in: int = Field(alias="expiresIn")
    refresh_expires_in: int = Field(alias="refreshExpiresIn")


class PhoneVerifyRequest(CamelModel):
    phone_number: str = Field(alias="phoneNumber", pattern=PHONE_PATTERN)
    code: str = Field(pattern=r"^[0-9]{6}$")


class PhoneOtpResendRequest(CamelModel):
    phone_number: str = Field(alias="phoneNumber", pattern=PHONE_PATTERN)


class RefreshRequest(CamelModel):
    refresh_token: str = Field(alias="refreshToken")


class LogoutRequest(CamelModel):
    refresh_token: str = Field(alias="refreshToken")


class PasswordForgotRequest(CamelModel):
    email: EmailStr


class PasswordResetRequest(CamelModel):
    token: str
    password: str
    confirm_password: str = Field(alias="confirmPassword")

    @field_validator("password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password_strength(v)

    @model_validator(mode="after")
    def validate_confirm(self) -> "PasswordResetRequest":
        if self.password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class PasswordChangeRequest(CamelModel):
    current_password: str = Field(alias="currentPassword")
    new_password: str = Field(alias="newPassword")
    confirm_password: str = Field(alias="confirmPassword")

    @field_validator("new_password")
    @classmethod
    def validate_password(cls, v: str) -> str:
        return _validate_password_strength(v)

    @model_validator(mode="after")
    def validate_confirm(self) -> "PasswordChangeRequest":
        if self.new_password != self.confirm_password:
            raise ValueError("Password confirmation does not match")
        return self


class MessageResponse(CamelModel):
    message: str


class MeResponse(CamelModel):
    id: int
    email: str
    name: str | None = None
    phone_number: str | None = Field(default=None, alias="phoneNumber")
    role: UserRole
    is_verified: bool = Field(alias="isVerified")
    created_at: str = Field(alias="createdAt")


def verify_password(plain: str, hashed: str) -> bool:
    return pwd_context.verify(plain, hashed)


def get_password_hash(password: str) -> str:
    return pwd_context.hash(password)


def create_access_token(user_id: int, role: str) -> str:
    expire = datetime.now(timezone.utc) + timedelta(minutes=settings.JWT_EXPIRE_MINUTES)
    to_encode = {"sub": str(user_id), "role": role, "exp": expire, "type": "access"}
    return jwt.encode(to_encode, settings.JWT_SECRET, algorithm=settings.JWT_ALGORITHM)


def _build_token_response(access_token: str, refresh_token: str) -> TokenResponse:
    return TokenResponse(
        accessToken=access_token,
        refreshToken=refresh_token,
        expiresIn=settings.JWT_EXPIRE_MINUTES * 60,
        refreshExpiresIn=settings.JWT_REFRESH_EXPIRE_DAYS * 24 * 60 * 60,
    )


def _get_client_ip(request: Request) -> str | None:
    if not request.client:
        return None
    return request.client.host


def _get_user_agent(request: Request) -> str | None:
    user_agent = request.headers.get("user-agent")
    if not user_agent:
        return None
    return user_agent[:512]


def _send_otp(user: User, otp: str) -> None:
    result = sms_gateway.send_otp(user.phone_number, otp)
    if not result.success:
        logger.warning("Failed to send verification SMS to user id=%s: %s", user.id, result.error)


@router.post(
    "/register",
    response_model=RegisterResponse,
    summary="Register a new farmer or seller",
    dependencies=[Depends(rate_limit("auth"))],
)
def register(
    body: RegisterRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Create the user with an empty profile and text a phone verification code."""
    phone_number = sms_gateway.normalize_phone_number(body.phone_number)
    email = body.email.lower()
    if db.query(User).filter(User.email == email).first():
        raise conflict("Email already registered")
    if db.query(User).filter(User.phone_number == phone_number).first():
        raise conflict("Phone number already registered")

    user = User(
        email=email,
        phone_number=phone_number,
        hashed_password=get_password_hash(body.password),
        role=body.role.value,
        is_verified=False,
    )
    user.profile = Profile(name=body.name)
    try:
        db.add(user)
        db.flush()
        otp, _ = issue_phone_otp(db, user.id, settings.OTP_EXPIRE_MINUTES)
        db.commit()
    except IntegrityError:
        db.rollback()
        raise conflict("Email or phone number already registered")
    except Exception:
        db.rollback()
        logger.exception("Registration failed for %s", email)
        raise internal_error("Failed to register user")
    db.refresh(user)

    _send_otp(user, otp)
    logger.info("Registered user id=%s role=%s", user.id, user.role)

    return RegisterResponse(
        id=user.id,
        email=user.email,
        phoneNumber=user.phone_number,
        role=user.role,
        isVerified=user.is_verified,
        requiresPhoneVerification=True,
    )


@router.post(
    "/verify-phone",
    response_model=MessageResponse,
    summary="Confirm phone number with the SMS code",
    dependencies=[Depends(rate_limit("auth"))],
)
def verify_phone(
    body: PhoneVerifyRequest,
    db: Annotated[Session, Depends(get_db)],
):
    phone_number = sms_gateway.normalize_phone_number(body.phone_number)
    user = db.query(User).filter(User.phone_number == phone_number).first()
    if not user or not consume_phone_otp(db, user.id, body.code):
        raise bad_request("Invalid or expired verification code")

    user.is_verified = True
    db.commit()
    return MessageResponse(message="Phone number has been verified")


@router.post(
    "/verify-phone/resend",
    response_model=MessageResponse,
    summary="Resend the phone verification code",
    dependencies=[Depends(rate_limit("auth"))],
)
def resend_phone_otp(
    body: PhoneOtpResendRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Resend the SMS code (generic response for privacy)."""
    phone_number = sms_gateway.normalize_phone_number(body.phone_number)
    generic = MessageResponse(message="If the account exists, a new verification code has been sent.")
    user = db.query(User).filter(User.phone_number == phone_number).first()
    if not user or user.is_verified:
        return generic

    latest = get_latest_one_time_token(db, user.id, ONE_TIME_PURPOSE_PHONE_VERIFY)
    if latest and latest.issued_within(utcnow(), settings.OTP_RESEND_COOLDOWN_SECONDS):
        raise ApiError("TOO_MANY_REQUESTS", "Please wait before requesting another verification code")

    otp, _ = issue_phone_otp(db, user.id, settings.OTP_EXPIRE_MINUTES)
    db.commit()
    _send_otp(user, otp)
    return generic


@router.post(
    "/login",
    response_model=TokenResponse,
    summary="Login and get access/refresh tokens",
    dependencies=[Depends(rate_limit("auth"))],
)
def login(
    body: LoginRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Login with email/password and return JWT access + opaque refresh token."""
    user = db.query(User).filter(User.email == body.email.lower()).first()
    if not user or not verify_password(body.password, user.hashed_password):
        raise unauthorized("Incorrect email or password")

    access_token = create_access_token(user.id, user.role)
    refresh_token, _ = issue_refresh_token(
        db=db,
        user_id=user.id,
        expires_in_days=settings.JWT_REFRESH_EXPIRE_DAYS,
        ip=_get_client_ip(request),
        user_agent=_get_user_agent(request),
    )
    db.commit()

    return _build_token_response(access_token, refresh_token)


@router.post(
    "/refresh",
    response_model=TokenResponse,
    summary="Refresh access token pair",
)
def refresh_tokens(
    body: RefreshRequest,
    request: Request,
    db: Annotated[Session, Depends(get_db)],
):
    """Rotate refresh token and issue fresh access token."""
    current = get_valid_refresh_token(db, body.refresh_token)
    if not current:
        raise unauthorized("Invalid refresh token")

    user = db.query(User).filter(User.id == current.user_id).first()
    if not user:
        raise unauthorized("Invalid refresh token")

    new_refresh, new_record = issue_refresh_token(
        db=db,
        user_id=user.id,
        expires_in_days=settings.JWT_REFRESH_EXPIRE_DAYS,
        ip=_get_client_ip(request),
        user_agent=_get_user_agent(request),
    )
    revoke_refresh_token(current, replaced_by_id=new_record.id)
    db.commit()

    return _build_token_response(create_access_token(user.id, user.role), new_refresh)


@router.post(
    "/logout",
    response_model=MessageResponse,
    summary="Logout by revoking refresh token",
)
def logout(
    body: LogoutRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Revoke refresh token. Always returns success message."""
    revoke_refresh_token_by_raw(db, body.refresh_token)
    db.commit()
    return MessageResponse(message="Logged out")


@router.post(
    "/password/forgot",
    response_model=MessageResponse,
    summary="Request password reset email",
    dependencies=[Depends(rate_limit("password_reset"))],
)
def request_password_reset(
    body: PasswordForgotRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Issue password reset token and send email (privacy-safe response)."""
    user = db.query(User).filter(User.email == body.email.lower()).first()
    generic = MessageResponse(message="If the account exists, a reset email has been sent.")
    if not user:
        return generic

    reset_token, _ = issue_one_time_token(
        db=db,
        user_id=user.id,
        purpose=ONE_TIME_PURPOSE_PASSWORD_RESET,
        expires_in_minutes=settings.PASSWORD_RESET_TOKEN_EXPIRE_MINUTES,
    )
    db.commit()

    name = user.profile.name if user.profile else None
    try:
        send_password_reset_email(user.email, name, reset_token)
    except Exception:
        logger.exception("Failed to send password reset email to user id=%s", user.id)

    return generic


@router.post(
    "/password/reset",
    response_model=MessageResponse,
    summary="Reset password by token",
    dependencies=[Depends(rate_limit("password_reset"))],
)
def reset_password(
    body: PasswordResetRequest,
    db: Annotated[Session, Depends(get_db)],
):
    """Reset password and revoke all active refresh tokens."""
    token = consume_one_time_token(db, body.token, ONE_TIME_PURPOSE_PASSWORD_RESET)
    if not token:
        raise bad_request("Invalid or expired reset token")

    user = db.query(User).filter(User.id == token.user_id).first()
    if not user:
        raise bad_request("User not found")

    user.hashed_password = get_password_hash(body.password)
    revoke_all_refresh_tokens_for_user(db, user.id)
    db.commit()
    return MessageResponse(message="Password has been reset")


@router.post(
    "/password/change",
    response_model=MessageResponse,
    summary="Change password of the current user",
)
def change_password(
    body: PasswordChangeRequest,
    current_user: Annotated[User, Depends(get_current_user)],
    db: Annotated[Session, Depends(get_db)],
):
    if not verify_password(body.current_password, current_user.hashed_password):
        raise bad_request("Current password is incorrect")
    if verify_password(body.new_password, current_user.hashed_password):
        raise bad_request("New password must differ from the current password")

    current_user.hashed_password = get_password_hash(body.new_password)
    revoke_all_refresh_tokens_for_user(db, current_user.id)
    db.commit()
    return MessageResponse(message="Password has been changed")


@router.get(
    "/me",
    response_model=MeResponse,
    summary="Get current authenticated user",
)
def me(
    current_user: Annotated[User, Depends(get_current_user)],
):
    """Return session data of the authenticated user."""
    created = current_user.created_at.isoformat() if current_user.created_at else ""
    return MeResponse(
        id=current_user.id,
        email=current_user.email,
        name=current_user.profile.name if current_user.profile else None,
        phoneNumber=current_user.phone_number,
        role=current_user.role,
        isVerified=current_user.is_verified,
        createdAt=created,
    )
