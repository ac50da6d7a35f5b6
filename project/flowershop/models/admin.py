# flowershop/models/admin.py

from sqlalchemy import Column, Integer, String, DateTime
from flowershop.utils.database import Base, utcnow


class Admin(Base):
    __tablename__ = "admins"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String, nullable=True)
    login = Column(String, unique=True, nullable=False)
    password = Column(String, nullable=False)    # хэш
    timestamp = Column(DateTime(timezone=True), default=utcnow)
