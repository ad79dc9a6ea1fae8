"""
User Model - Bill organizers
"""
from sqlalchemy import Column, Integer, String, DateTime

from splitbill.db.database import Base, utcnow


class User(Base):
    """A person who created at least one bill, keyed by phone number"""

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(100), nullable=False)
    phone = Column(String(20), unique=True, index=True, nullable=False)
    created_at = Column(DateTime, default=utcnow)
