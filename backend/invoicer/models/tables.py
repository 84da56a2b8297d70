"""
Database tables (SQLModel).

User, Account and Session rows are written by the auth provider; this service
reads them. Sources are created by the Gmail connect flow, invoices by the
ingestion pipeline. All datetimes are naive UTC.
"""
import uuid
from datetime import date, datetime
from enum import Enum
from typing import Any, List, Optional

from sqlalchemy import JSON, Column, DateTime, Index, UniqueConstraint
from sqlalchemy import Enum as SAEnum
from sqlmodel import Field, Relationship, SQLModel


# Largest value an INTEGER primary key can hold (signed 64-bit)
MAX_ROW_ID = 2**63 - 1


def _new_id() -> str:
    return uuid.uuid4().hex


class SourceType(str, Enum):
    GMAIL = "gmail"


class PaymentStatus(str, Enum):
    PAID = "paid"
    UNPAID = "unpaid"
    PENDING = "pending"
    UNKNOWN = "unknown"


def _enum_type(enum_cls, name: str) -> SAEnum:
    # Store enum values ("gmail", "paid"), not member names
    return SAEnum(enum_cls, name=name, values_callable=lambda e: [m.value for m in e])


def _timestamp(**kwargs) -> Any:
    """Naive UTC timestamp column (plain DateTime, never timezone-aware)."""
    return Field(sa_type=DateTime(timezone=False), **kwargs)


class User(SQLModel, table=True):
    __tablename__ = "user"

    id: str = Field(default_factory=_new_id, primary_key=True)
    name: str
    email: str = Field(unique=True, index=True)
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)


class Account(SQLModel, table=True):
    """Link between a user and an auth provider identity."""
    __tablename__ = "account"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    provider_id: str
    account_id: str
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)


class UserSession(SQLModel, table=True):
    __tablename__ = "session"

    id: str = Field(default_factory=_new_id, primary_key=True)
    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    expires_at: datetime = _timestamp()
    ip_address: Optional[str] = None
    user_agent: Optional[str] = None
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)


class Source(SQLModel, table=True):
    """A connected email account."""
    __tablename__ = "source"
    __table_args__ = (
        UniqueConstraint("user_id", "email_address", "source_type", name="uq_source_user_email_type"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE", index=True)
    name: str
    email_address: str
    source_type: SourceType = Field(
        default=SourceType.GMAIL, sa_type=_enum_type(SourceType, "source_type")
    )
    oauth2_access_token: str = Field(max_length=2048)
    oauth2_refresh_token: str = Field(max_length=2048)
    oauth2_access_token_expires_at: datetime = _timestamp()
    # None when the provider's refresh token does not expire
    oauth2_refresh_token_expires_at: Optional[datetime] = _timestamp(default=None)
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)

    folders: List["SourceFolder"] = Relationship(
        back_populates="source",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )
    invoices: List["Invoice"] = Relationship(
        back_populates="source",
        sa_relationship_kwargs={"cascade": "all, delete-orphan"},
    )


class SourceFolder(SQLModel, table=True):
    """A mailbox folder (Gmail label) scanned for invoices."""
    __tablename__ = "source_folder"

    id: Optional[int] = Field(default=None, primary_key=True)
    source_id: int = Field(foreign_key="source.id", ondelete="CASCADE", index=True)
    name: str
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)

    source: Optional[Source] = Relationship(back_populates="folders")


class Invoice(SQLModel, table=True):
    __tablename__ = "invoice"
    __table_args__ = (
        # Backs the (created_at DESC, id DESC) keyset scan per user
        Index("ix_invoice_user_created_id", "user_id", "created_at", "id"),
    )

    id: Optional[int] = Field(default=None, primary_key=True)
    user_id: str = Field(foreign_key="user.id", ondelete="CASCADE")
    source_id: int = Field(foreign_key="source.id", ondelete="CASCADE", index=True)
    invoice_number: Optional[str] = None
    vendor_name: Optional[str] = None
    # Decimal as text, as extracted ("2,450.00")
    total_amount: Optional[str] = None
    currency: Optional[str] = None
    due_date: Optional[date] = None
    payment_status: PaymentStatus = Field(
        default=PaymentStatus.UNKNOWN, sa_type=_enum_type(PaymentStatus, "payment_status")
    )
    line_items: List[dict] = Field(default_factory=list, sa_column=Column(JSON, nullable=False))
    created_at: datetime = _timestamp(default_factory=datetime.utcnow)

    source: Optional[Source] = Relationship(back_populates="invoices")
