# flowershop/models/otp.py

from sqlalchemy import Column, Integer, String, DateTime
from flowershop.utils.database import Base, utcnow
from flowershop.models.order import new_id


class CustomerEmailOtp(Base):
    __tablename__ = "customer_email_otps"

    id = Column(String(36), primary_key=True, default=new_id)
    email = Column(String, index=True, nullable=False)
    purpose = Column(String, nullable=False)            # login / register / password-reset
    code_hash = Column(String, nullable=False)
    attempts = Column(Integer, default=0)
    last_sent_at = Column(DateTime(timezone=True), nullable=True)
    expires_at = Column(DateTime(timezone=True), nullable=False)
    consumed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), default=utcnow)
