"""Sales module repository implementations."""

from datetime import datetime, timezone
from decimal import Decimal
from typing import List, Optional, Tuple
from sqlalchemy import or_
from sqlmodel import select, func
from framework.repository.base import BaseRepository
from .models import Customer, Invoice, Payment


def _as_decimal(value) -> Decimal:
    return Decimal(str(value)) if value is not None else Decimal("0")


class CustomerRepository(BaseRepository[Customer]):
    """Customer repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, Customer, logger)

    async def get_active_customers(self) -> List[Customer]:
        return await self.find(Customer.is_active == True, order_by=Customer.customer_name)  # noqa: E712

    async def get_customer_by_name(self, customer_name: str) -> Optional[Customer]:
        """Case-insensitive exact name match."""
        return await self.get(func.lower(Customer.customer_name) == customer_name.lower())

    async def search_customers(self, term: str) -> List[Customer]:
        """Active customers whose name, phone or address contains term."""
        pattern = f"%{term.lower()}%"
        return await self.find(
            [
                Customer.is_active == True,  # noqa: E712
                or_(
                    func.lower(Customer.customer_name).like(pattern),
                    Customer.phone_number.contains(term),
                    func.lower(Customer.address).like(pattern),
                ),
            ],
            order_by=Customer.customer_name,
        )

    async def get_customers_with_debt(self) -> List[Customer]:
        """Active customers owing money, largest debt first."""
        return await self.find(
            [Customer.is_active == True, Customer.total_debt > 0],  # noqa: E712
            order_by=Customer.total_debt.desc(),
        )

    async def update_customer_balance(self, customer_id: int, amount: Decimal) -> bool:
        """Stage total_debt += amount (negative for payments); False when missing."""
        customer = await self.get_by_id(customer_id)
        if customer is None:
            self.logger.warning(f"Customer {customer_id} not found for balance update")
            return False
        customer.total_debt = _as_decimal(customer.total_debt) + _as_decimal(amount)
        customer.updated_date = datetime.now(timezone.utc)
        self.logger.info(
            f"Staged balance change for customer {customer_id} by {amount}. New balance: {customer.total_debt}"
        )
        return True

    async def get_debt_summary(self) -> Tuple[Decimal, int]:
        """(total debt, number of indebted customers) over active customers."""
        statement = select(
            func.coalesce(func.sum(Customer.total_debt), 0),
            func.count(Customer.id),
        ).where(Customer.is_active == True, Customer.total_debt > 0)  # noqa: E712
        total, count = await self._scalar(statement, "summarizing debt of")
        return _as_decimal(total), count


class InvoiceRepository(BaseRepository[Invoice]):
    """Invoice repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, Invoice, logger)

    async def get_invoice_by_number(self, invoice_number: str) -> Optional[Invoice]:
        return await self.find_one(invoice_number=invoice_number)

    async def invoice_number_exists(self, invoice_number: str, exclude_invoice_id: Optional[int] = None) -> bool:
        criteria = [Invoice.invoice_number == invoice_number]
        if exclude_invoice_id is not None:
            criteria.append(Invoice.id != exclude_invoice_id)
        return await self.exists(criteria)

    async def get_invoices_by_date_range(self, start: datetime, end: datetime) -> List[Invoice]:
        """Invoices dated within [start, end], newest first."""
        return await self.find(
            [Invoice.invoice_date >= start, Invoice.invoice_date <= end],
            order_by=Invoice.invoice_date.desc(),
        )

    async def get_customer_invoices(self, customer_id: int, limit: Optional[int] = None) -> List[Invoice]:
        return await self.find(Invoice.customer_id == customer_id, order_by=Invoice.invoice_date.desc(), limit=limit)

    async def get_total_sales_amount(self, start: Optional[datetime] = None, end: Optional[datetime] = None) -> Decimal:
        """Sum of final_amount, optionally bounded by invoice date."""
        statement = select(func.coalesce(func.sum(Invoice.final_amount), 0))
        if start is not None:
            statement = statement.where(Invoice.invoice_date >= start)
        if end is not None:
            statement = statement.where(Invoice.invoice_date <= end)
        return _as_decimal(await self._scalar(statement, "summing sales of"))


class PaymentRepository(BaseRepository[Payment]):
    """Payment repository."""

    def __init__(self, session, logger=None):
        super().__init__(session, Payment, logger)

    async def get_customer_payments(self, customer_id: int, limit: Optional[int] = None) -> List[Payment]:
        return await self.find(Payment.customer_id == customer_id, order_by=Payment.payment_date.desc(), limit=limit)

    async def get_customer_total_payments(
        self,
        customer_id: int,
        start: Optional[datetime] = None,
        end: Optional[datetime] = None,
    ) -> Decimal:
        statement = select(func.coalesce(func.sum(Payment.amount), 0)).where(Payment.customer_id == customer_id)
        if start is not None:
            statement = statement.where(Payment.payment_date >= start)
        if end is not None:
            statement = statement.where(Payment.payment_date <= end)
        return _as_decimal(await self._scalar(statement, f"summing payments of customer {customer_id} for"))

    async def get_invoice_payments(self, invoice_id: int) -> List[Payment]:
        return await self.find(Payment.invoice_id == invoice_id, order_by=Payment.payment_date)
