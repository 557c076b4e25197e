from .base import BaseClient
from .catalog_client import CatalogClient
from .customers_client import CustomersClient
from .gateway_client import GatewayClient
from .held_orders_client import HeldOrdersClient
from .shifts_client import ShiftsClient
from .supervisor_client import SupervisorClient
from .transactions_client import TransactionsClient

__all__ = [
    "BaseClient",
    "CatalogClient",
    "CustomersClient",
    "GatewayClient",
    "HeldOrdersClient",
    "ShiftsClient",
    "SupervisorClient",
    "TransactionsClient",
]
