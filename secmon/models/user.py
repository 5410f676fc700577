"""ORM model for operator accounts (admin API auth and action attribution)."""

from sqlalchemy import Column, Integer, String

from secmon.models.base import Base


class User(Base):
    """
    Operator account for JWT authentication and role-based access control.

    Issue actions (view, ignore, resolve) and rule creation record the operator's id.
    role: 'admin' or 'user'
    """

    __tablename__ = "users"

    id = Column(Integer, primary_key=True, autoincrement=True)
    username = Column(String(255), nullable=False, unique=True, index=True)
    password_hash = Column(String(255), nullable=False)
    role = Column(String(32), nullable=False, default="user")
