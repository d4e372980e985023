from models.application import ApplicationRecord
from models.audit import AuditEventRecord
from models.customer import CustomerRecord, RefreshTokenRecord, StaffSessionRecord, StaffUserRecord
from models.otp import OtpVerificationRecord

__all__ = [
    "ApplicationRecord",
    "AuditEventRecord",
    "CustomerRecord",
    "OtpVerificationRecord",
    "RefreshTokenRecord",
    "StaffSessionRecord",
    "StaffUserRecord",
]
