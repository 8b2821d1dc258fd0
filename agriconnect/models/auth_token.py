from datetime import datetime, timedelta, timezone

from sqlalchemy import Column, DateTime, ForeignKey, Integer, String
from sqlalchemy.orm import relationship
from sqlalchemy.sql import func

from agriconnect.models.database import Base
from agriconnect.models.enums import OneTimeTokenPurpose


def _aware(value: datetime) -> datetime:
    # SQLite hands back naive datetimes; they are stored as UTC.
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


class OneTimeToken(Base):
    """Hashed phone OTP or password reset token, usable once before it expires."""

    __tablename__ = "one_time_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    purpose = Column(String(32), nullable=False, index=True, default=OneTimeTokenPurpose.PHONE_VERIFY.value)
    token_hash = Column(String(128), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    used_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")

    def issued_within(self, now: datetime, seconds: int) -> bool:
        """True while the OTP resend cooldown started by this token is running."""
        return _aware(self.created_at) > now - timedelta(seconds=seconds)


class RefreshToken(Base):
    """Hashed refresh token; rotation revokes it and links the replacement."""

    __tablename__ = "refresh_tokens"

    id = Column(Integer, primary_key=True, index=True)
    user_id = Column(Integer, ForeignKey("users.id"), nullable=False, index=True)
    token_hash = Column(String(128), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)
    replaced_by_id = Column(Integer, ForeignKey("refresh_tokens.id"), nullable=True)
    ip = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())

    user = relationship("User")
    replaced_by = relationship("RefreshToken", remote_side=[id])

    def is_active(self, now: datetime) -> bool:
        return self.revoked_at is None and _aware(self.expires_at) > now
