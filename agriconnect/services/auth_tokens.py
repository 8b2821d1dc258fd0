import hashlib
import secrets
from datetime import datetime, timedelta, timezone

from sqlalchemy.orm import Session

from agriconnect.models import OneTimeToken, RefreshToken
from agriconnect.models.enums import OneTimeTokenPurpose

ONE_TIME_PURPOSE_PHONE_VERIFY = OneTimeTokenPurpose.PHONE_VERIFY.value
ONE_TIME_PURPOSE_PASSWORD_RESET = OneTimeTokenPurpose.PASSWORD_RESET.value

OTP_LENGTH = 6


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def _hash_token(token: str) -> str:
    return hashlib.sha256(token.encode("utf-8")).hexdigest()


def _hash_otp(user_id: int, otp: str) -> str:
    # OTPs are short, so the hash is scoped to the user to keep token_hash unique.
    return _hash_token(f"{user_id}:{otp}")


def db_datetime(db: Session, value: datetime) -> datetime:
    bind = db.get_bind()
    if bind and bind.dialect.name == "sqlite":
        return value.replace(tzinfo=None)
    return value


def _new_token() -> str:
    return secrets.token_urlsafe(48)


def generate_otp() -> str:
    return "".join(secrets.choice("0123456789") for _ in range(OTP_LENGTH))


def get_latest_one_time_token(db: Session, user_id: int, purpose: str) -> OneTimeToken | None:
    return (
        db.query(OneTimeToken)
        .filter(OneTimeToken.user_id == user_id, OneTimeToken.purpose == purpose)
        .order_by(OneTimeToken.created_at.desc(), OneTimeToken.id.desc())
        .first()
    )


def issue_one_time_token(
    db: Session,
    user_id: int,
    purpose: str,
    expires_in_minutes: int,
) -> tuple[str, OneTimeToken]:
    raw = _new_token()
    record = OneTimeToken(
        user_id=user_id,
        purpose=purpose,
        token_hash=_hash_token(raw),
        expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
    )
    db.add(record)
    db.flush()
    return raw, record


def issue_phone_otp(db: Session, user_id: int, expires_in_minutes: int) -> tuple[str, OneTimeToken]:
    """Replace any previous phone OTP of the user with a fresh 6-digit code."""
    db.query(OneTimeToken).filter(
        OneTimeToken.user_id == user_id,
        OneTimeToken.purpose == ONE_TIME_PURPOSE_PHONE_VERIFY,
    ).delete(synchronize_session=False)

    otp = generate_otp()
    record = OneTimeToken(
        user_id=user_id,
        purpose=ONE_TIME_PURPOSE_PHONE_VERIFY,
        token_hash=_hash_otp(user_id, otp),
        expires_at=utcnow() + timedelta(minutes=expires_in_minutes),
    )
    db.add(record)
    db.flush()
    return otp, record


def _consume_by_hash(db: Session, token_hash: str, purpose: str) -> OneTimeToken | None:
    db_now = db_datetime(db, utcnow())

    updated = (
        db.query(OneTimeToken)
        .filter(
            OneTimeToken.token_hash == token_hash,
            OneTimeToken.purpose == purpose,
            OneTimeToken.used_at.is_(None),
            OneTimeToken.expires_at > db_now,
        )
        .update(
            {
                OneTimeToken.used_at: db_now,
            },
            synchronize_session=False,
        )
    )
    if updated != 1:
        return None

    return (
        db.query(OneTimeToken)
        .filter(
            OneTimeToken.token_hash == token_hash,
            OneTimeToken.purpose == purpose,
        )
        .first()
    )


def consume_one_time_token(db: Session, raw_token: str, purpose: str) -> OneTimeToken | None:
    return _consume_by_hash(db, _hash_token(raw_token), purpose)


def consume_phone_otp(db: Session, user_id: int, otp: str) -> OneTimeToken | None:
    return _consume_by_hash(db, _hash_otp(user_id, otp), ONE_TIME_PURPOSE_PHONE_VERIFY)


def issue_refresh_token(
    db: Session,
    user_id: int,
    expires_in_days: int,
    ip: str | None = None,
    user_agent: str | None = None,
) -> tuple[str, RefreshToken]:
    raw = _new_token()
    record = RefreshToken(
        user_id=user_id,
        token_hash=_hash_token(raw),
        expires_at=utcnow() + timedelta(days=expires_in_days),
        ip=ip,
        user_agent=user_agent,
    )
    db.add(record)
    db.flush()
    return raw, record


def get_valid_refresh_token(db: Session, raw_token: str) -> RefreshToken | None:
    record = db.query(RefreshToken).filter(RefreshToken.token_hash == _hash_token(raw_token)).first()
    if not record:
        return None
    if not record.is_active(utcnow()):
        return None
    return record


def revoke_refresh_token(record: RefreshToken, replaced_by_id: int | None = None) -> None:
    record.revoked_at = utcnow()
    record.replaced_by_id = replaced_by_id


def revoke_refresh_token_by_raw(db: Session, raw_token: str) -> bool:
    db_now = db_datetime(db, utcnow())
    updated = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.token_hash == _hash_token(raw_token),
            RefreshToken.revoked_at.is_(None),
        )
        .update(
            {
                RefreshToken.revoked_at: db_now,
            },
            synchronize_session=False,
        )
    )
    return updated == 1


def revoke_all_refresh_tokens_for_user(db: Session, user_id: int) -> None:
    db_now = db_datetime(db, utcnow())
    tokens = (
        db.query(RefreshToken)
        .filter(
            RefreshToken.user_id == user_id,
            RefreshToken.revoked_at.is_(None),
        )
        .all()
    )
    for token in tokens:
        token.revoked_at = db_now
    db.flush()
