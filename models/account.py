from __future__ import annotations
from typing import Optional, List

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import Boolean, ForeignKey, Integer, String, UniqueConstraint, text
from sqlalchemy.orm import Mapped, mapped_column

from services.database import Base
from models.hateoas import HALLink

# -----------------------------------------------------------------------------
# SQLAlchemy Models
# -----------------------------------------------------------------------------
class Account(Base):
    __tablename__ = "accounts"
    __table_args__ = (
        UniqueConstraint("email", name="accounts_email_key"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    name: Mapped[str] = mapped_column(String(255), nullable=False)
    email: Mapped[str] = mapped_column(String(255), nullable=False)
    active: Mapped[bool] = mapped_column(
        Boolean,
        default=True,
        server_default=text("true"),
        nullable=False
    )


class Address(Base):
    __tablename__ = "addresses"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    account_id: Mapped[int] = mapped_column(
        ForeignKey("accounts.id", ondelete="CASCADE"),
        nullable=False,
        index=True
    )
    street: Mapped[str] = mapped_column(String(255), nullable=False)
    city: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)

# -----------------------------------------------------------------------------
# Pydantic Schemas
# -----------------------------------------------------------------------------
class AccountSummary(BaseModel):
    id: int = Field(
        ...,
        description="Primary key of the account"
    )
    name: str = Field(
        ...,
        description="Display name of the account holder"
    )
    email: str = Field(
        ...,
        description="Unique email address of the account"
    )
    address_count: int = Field(
        0,
        description="Number of addresses recorded for the account"
    )
    links: Optional[List[HALLink]] = Field(
        None,
        description="HAL links."
    )

    model_config = ConfigDict(from_attributes=True)
