from sqlalchemy import Boolean, Column, DateTime, ForeignKey, String

from database import Base


class CustomerRecord(Base):
    __tablename__ = "customers"

    id = Column(String(36), primary_key=True, index=True)
    customer_reference = Column(String(32), unique=True, nullable=False, index=True)
    application_id = Column(String(36), ForeignKey("onboarding_applications.id"), nullable=False, unique=True)
    first_name = Column(String(100), nullable=False)
    last_name = Column(String(100), nullable=False)
    email = Column(String(255), nullable=False)
    phone = Column(String(32), nullable=False)
    account_number = Column(String(34), unique=True, nullable=False, index=True)
    created_at = Column(DateTime(timezone=True), nullable=False)


class StaffUserRecord(Base):
    __tablename__ = "staff_users"

    id = Column(String(36), primary_key=True, index=True)
    username = Column(String(64), unique=True, nullable=False, index=True)
    email = Column(String(255), nullable=False)
    password_hash = Column(String(128), nullable=False)
    role = Column(String(32), nullable=False)
    active = Column(Boolean, nullable=False, default=True)
    last_login_at = Column(DateTime(timezone=True), nullable=True)


class RefreshTokenRecord(Base):
    __tablename__ = "refresh_tokens"

    id = Column(String(36), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("staff_users.id", ondelete="CASCADE"), nullable=False, index=True)
    # SHA-256 of the opaque token; the token itself is never stored
    token_hash = Column(String(64), unique=True, nullable=False, index=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    created_at = Column(DateTime(timezone=True), nullable=False)
    revoked_at = Column(DateTime(timezone=True), nullable=True)


class StaffSessionRecord(Base):
    __tablename__ = "staff_sessions"

    id = Column(String(64), primary_key=True, index=True)
    user_id = Column(String(36), ForeignKey("staff_users.id", ondelete="CASCADE"), nullable=False, index=True)
    role = Column(String(32), nullable=False)
    ip_address = Column(String(64), nullable=True)
    user_agent = Column(String(512), nullable=True)
    created_at = Column(DateTime(timezone=True), nullable=False)
    last_activity_at = Column(DateTime(timezone=True), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    terminated_at = Column(DateTime(timezone=True), nullable=True)
    termination_reason = Column(String(128), nullable=True)
