from sqlalchemy import Column, DateTime, ForeignKey, Integer, String

from database import Base


class OtpVerificationRecord(Base):
    __tablename__ = "otp_verifications"

    id = Column(String(36), primary_key=True, index=True)
    application_id = Column(
        String(36), ForeignKey("onboarding_applications.id", ondelete="CASCADE"), nullable=False, index=True
    )
    channel = Column(String(8), nullable=False)
    otp_hash = Column(String(128), nullable=False)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    attempts = Column(Integer, nullable=False, default=0)
    status = Column(String(32), nullable=False, default="PENDING")
    created_at = Column(DateTime(timezone=True), nullable=False, index=True)
    verified_at = Column(DateTime(timezone=True), nullable=True)
