"""Unit of work exposing the point-of-sale repositories."""

from framework.repository.unit_of_work import UnitOfWork
from apps.fleet.models import DailyReconciliation, Truck, TruckLoad
from apps.fleet.repository import DailyReconciliationRepository, TruckLoadRepository, TruckRepository
from apps.sales.models import Customer, Invoice, Payment
from apps.sales.repository import CustomerRepository, InvoiceRepository, PaymentRepository


class PoultryUnitOfWork(UnitOfWork):
    """UnitOfWork with typed accessors; every repository shares the one session."""

    @property
    def trucks(self) -> TruckRepository:
        return self.get_repository(TruckRepository, Truck)

    @property
    def truck_loads(self) -> TruckLoadRepository:
        return self.get_repository(TruckLoadRepository, TruckLoad)

    @property
    def daily_reconciliations(self) -> DailyReconciliationRepository:
        return self.get_repository(DailyReconciliationRepository, DailyReconciliation)

    @property
    def customers(self) -> CustomerRepository:
        return self.get_repository(CustomerRepository, Customer)

    @property
    def invoices(self) -> InvoiceRepository:
        return self.get_repository(InvoiceRepository, Invoice)

    @property
    def payments(self) -> PaymentRepository:
        return self.get_repository(PaymentRepository, Payment)
