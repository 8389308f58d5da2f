"""
Model registration: import every table model here so create_all() sees the full schema.
When adding/removing apps, add/remove the corresponding imports here.
"""
from apps.fleet.models import DailyReconciliation, Truck, TruckLoad
from apps.sales.models import Customer, Invoice, Payment
from framework.audit.models import AuditLog

__all__ = ["Truck", "TruckLoad", "DailyReconciliation", "Customer", "Invoice", "Payment", "AuditLog"]
