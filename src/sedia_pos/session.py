from __future__ import annotations

from dataclasses import dataclass

from .clients import (
    CatalogClient,
    CustomersClient,
    GatewayClient,
    HeldOrdersClient,
    ShiftsClient,
    SupervisorClient,
    TransactionsClient,
)
from .clients.supervisor_client import PinProvider
from .config import PosConfig
from .http_client import HttpClient, TraceContext


@dataclass
class ApiSession:
    """Builds HTTP collaborators that share one config, token and outlet."""

    config: PosConfig
    outlet_id: str
    token: str | None = None
    trace: TraceContext | None = None

    def __post_init__(self) -> None:
        self.config.require_api()
        self.trace = self.trace or TraceContext()

    def _http(self) -> HttpClient:
        return HttpClient(config=self.config, trace=self.trace)

    def gateway_client(self) -> GatewayClient:
        return GatewayClient(
            http=self._http(), access_token=self.token, outlet_id=self.outlet_id, default_bank=self.config.default_bank
        )

    def transactions_client(self) -> TransactionsClient:
        return TransactionsClient(http=self._http(), access_token=self.token, outlet_id=self.outlet_id)

    def catalog_client(self) -> CatalogClient:
        return CatalogClient(http=self._http(), access_token=self.token, outlet_id=self.outlet_id)

    def customers_client(self) -> CustomersClient:
        return CustomersClient(http=self._http(), access_token=self.token, outlet_id=self.outlet_id)

    def shifts_client(self) -> ShiftsClient:
        return ShiftsClient(http=self._http(), access_token=self.token, outlet_id=self.outlet_id)

    def held_orders_client(self) -> HeldOrdersClient:
        return HeldOrdersClient(http=self._http(), access_token=self.token, outlet_id=self.outlet_id)

    def supervisor_client(self, pin_provider: PinProvider | None = None) -> SupervisorClient:
        return SupervisorClient(
            http=self._http(), access_token=self.token, outlet_id=self.outlet_id, pin_provider=pin_provider
        )
