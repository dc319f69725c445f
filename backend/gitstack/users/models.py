"""User SQLAlchemy model and Pydantic schemas."""

from typing import Optional

from pydantic import EmailStr
from sqlalchemy import BigInteger, String
from sqlalchemy.orm import Mapped, mapped_column

from gitstack.db.session import Base, new_id, now_ms
from gitstack.schemas import CamelModel


class User(Base):
    """User table. external_user_id is the identity provider's id for this person."""

    __tablename__ = "users"

    id: Mapped[str] = mapped_column(String(36), primary_key=True, default=new_id)
    external_user_id: Mapped[str] = mapped_column(String(255), unique=True, index=True, nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    name: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    created_at: Mapped[int] = mapped_column(BigInteger, default=now_ms, nullable=False)
    last_login_at: Mapped[Optional[int]] = mapped_column(BigInteger, nullable=True)


# Pydantic schemas for API
class UserCreateOrGet(CamelModel):
    """Payload sent after sign-in to register or look up the caller."""

    external_user_id: str
    email: EmailStr
    name: Optional[str] = None


class UserIdResponse(CamelModel):
    user_id: str
