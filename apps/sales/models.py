from sqlmodel import Field
from typing import Optional
from datetime import datetime, timezone
from decimal import Decimal
from enum import Enum
from framework.database.versioning import VersionedModel


class PaymentMethod(str, Enum):
    """Payment method."""
    CASH = "CASH"
    CHECK = "CHECK"
    TRANSFER = "TRANSFER"


def _utcnow() -> datetime:
    return datetime.now(timezone.utc)


class Customer(VersionedModel, table=True):
    """Customer account; total_debt is the running balance owed."""
    __tablename__ = "customers"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_name: str = Field(index=True, max_length=100)
    phone_number: Optional[str] = Field(default=None, max_length=20)
    address: Optional[str] = Field(default=None, max_length=200)
    total_debt: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    is_active: bool = Field(default=True, index=True)
    created_date: datetime = Field(default_factory=_utcnow)
    updated_date: datetime = Field(default_factory=_utcnow)


class Invoice(VersionedModel, table=True):
    """Sales invoice (weights in kg)."""
    __tablename__ = "invoices"

    id: Optional[int] = Field(default=None, primary_key=True)
    invoice_number: str = Field(unique=True, index=True, max_length=20)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    truck_id: int = Field(foreign_key="trucks.id", index=True)
    invoice_date: datetime = Field(default_factory=_utcnow, index=True)
    gross_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    cages_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    cages_count: int = Field(default=0)
    net_weight: Decimal = Field(default=Decimal("0"), max_digits=10, decimal_places=2)
    unit_price: Decimal = Field(default=Decimal("0"), max_digits=8, decimal_places=2)
    total_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    discount_percentage: Decimal = Field(default=Decimal("0"), max_digits=5, decimal_places=2)
    final_amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    previous_balance: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    current_balance: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    created_date: datetime = Field(default_factory=_utcnow)
    updated_date: datetime = Field(default_factory=_utcnow)


class Payment(VersionedModel, table=True):
    """Customer payment, optionally settling a specific invoice."""
    __tablename__ = "payments"

    id: Optional[int] = Field(default=None, primary_key=True)
    customer_id: int = Field(foreign_key="customers.id", index=True)
    invoice_id: Optional[int] = Field(default=None, foreign_key="invoices.id", index=True)
    payment_date: datetime = Field(default_factory=_utcnow, index=True)
    amount: Decimal = Field(default=Decimal("0"), max_digits=12, decimal_places=2)
    payment_method: PaymentMethod = Field(default=PaymentMethod.CASH)
    notes: Optional[str] = Field(default=None, max_length=500)
    created_date: datetime = Field(default_factory=_utcnow)
    updated_date: datetime = Field(default_factory=_utcnow)
