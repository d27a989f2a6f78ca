"""Business-system endpoint catalog offered to the reasoning engine.

The engine picks endpoints by ``id`` in its ``apiCalls``; the ERP client
resolves the id back to a controller/method route. Anything not listed here
cannot be called.
"""

from dataclasses import dataclass, field
from enum import Enum

from artemis.core.schemas_orchestration import FormActionType


class EndpointKind(str, Enum):
    EXPORT = "export"
    SERVICE = "service"
    IMPORT = "import"


@dataclass(frozen=True)
class EndpointParam:
    name: str
    type: str
    description: str
    required: bool = False


@dataclass(frozen=True)
class ApiEndpoint:
    """One callable ERP endpoint."""

    id: str
    controller: str
    method: str
    kind: EndpointKind
    description: str
    parameters: tuple[EndpointParam, ...] = field(default_factory=tuple)

    @property
    def path(self) -> str:
        return f"/{self.controller}/{self.method}"

    @property
    def is_write(self) -> bool:
        return self.kind == EndpointKind.IMPORT


_FILTER = EndpointParam("filter", "string", "Filter expression, e.g. [Status] = \"Open\"")

READ_ENDPOINTS: tuple[ApiEndpoint, ...] = (
    ApiEndpoint(
        id="export_sales_orders",
        controller="SD/SalesOrder",
        method="ExportSalesOrders",
        kind=EndpointKind.EXPORT,
        description="Sales orders with customer, dates, lines and totals",
        parameters=(
            _FILTER,
            EndpointParam("dateFrom", "date", "Orders on or after this date (YYYY-MM-DD)"),
            EndpointParam("dateTo", "date", "Orders on or before this date (YYYY-MM-DD)"),
            EndpointParam("customerId", "string", "Restrict to one customer"),
        ),
    ),
    ApiEndpoint(
        id="export_sales_invoices",
        controller="SD/SalesInvoice",
        method="ExportSalesInvoices",
        kind=EndpointKind.EXPORT,
        description="Issued sales invoices and their payment status",
        parameters=(_FILTER,),
    ),
    ApiEndpoint(
        id="export_contacts",
        controller="SH/Common",
        method="ExportContacts",
        kind=EndpointKind.EXPORT,
        description="Customers, suppliers and other business partners",
        parameters=(
            _FILTER,
            EndpointParam("contactType", "string", "Customer, Supplier, Both or Other"),
        ),
    ),
    ApiEndpoint(
        id="export_items",
        controller="WM/Common",
        method="ExportItems",
        kind=EndpointKind.EXPORT,
        description="Item master data: codes, descriptions, units, prices",
        parameters=(_FILTER,),
    ),
    ApiEndpoint(
        id="get_items_stock",
        controller="WM/Common",
        method="GetItemsStock",
        kind=EndpointKind.SERVICE,
        description="Current stock per item and warehouse",
        parameters=(
            EndpointParam("itemCodes", "array", "Item codes to check"),
            EndpointParam("warehouseCodes", "array", "Warehouses to check"),
        ),
    ),
    ApiEndpoint(
        id="get_items_availability",
        controller="WM/Common",
        method="GetItemsAvailability",
        kind=EndpointKind.SERVICE,
        description="Whether requested quantities are available",
        parameters=(
            EndpointParam("availabilityRequests", "array", "List of {itemCode, requestedQuantity}", True),
        ),
    ),
    ApiEndpoint(
        id="export_purchase_orders",
        controller="Scm/PurchaseOrder",
        method="ExportPurchaseOrders",
        kind=EndpointKind.EXPORT,
        description="Purchase orders to suppliers",
        parameters=(_FILTER,),
    ),
    ApiEndpoint(
        id="export_production_orders",
        controller="MS/ProductionOrder",
        method="ExportProductionOrders",
        kind=EndpointKind.EXPORT,
        description="Production orders and their progress",
        parameters=(_FILTER,),
    ),
)

WRITE_ENDPOINTS: dict[FormActionType, ApiEndpoint] = {
    FormActionType.CREATE_SALES_ORDER: ApiEndpoint(
        id="import_sales_orders",
        controller="SD/SalesOrder",
        method="ImportSalesOrders",
        kind=EndpointKind.IMPORT,
        description="Create a sales order",
    ),
    FormActionType.CREATE_CUSTOMER: ApiEndpoint(
        id="import_contacts",
        controller="SH/Common",
        method="ImportContacts",
        kind=EndpointKind.IMPORT,
        description="Create a customer",
    ),
    FormActionType.UPDATE_CUSTOMER: ApiEndpoint(
        id="update_contacts",
        controller="SH/Common",
        method="ImportContacts",
        kind=EndpointKind.IMPORT,
        description="Update an existing customer",
    ),
    FormActionType.CREATE_ITEM: ApiEndpoint(
        id="import_items",
        controller="WM/Common",
        method="ImportItems",
        kind=EndpointKind.IMPORT,
        description="Create an item",
    ),
    FormActionType.UPDATE_STOCK: ApiEndpoint(
        id="import_warehouse_postings",
        controller="WM/WarehousePosting",
        method="ImportWarehousePostings",
        kind=EndpointKind.IMPORT,
        description="Post a stock adjustment",
    ),
}

_BY_ID: dict[str, ApiEndpoint] = {endpoint.id: endpoint for endpoint in READ_ENDPOINTS}


def get_endpoint(target_id: str) -> ApiEndpoint | None:
    """Look up a read endpoint by id. Write endpoints are never engine-callable."""
    return _BY_ID.get(target_id)


def catalog_for_prompt() -> str:
    """Render the read catalog as compact text for the engine's system prompt."""
    lines = []
    for endpoint in READ_ENDPOINTS:
        params = ", ".join(
            f"{p.name}{'*' if p.required else ''}: {p.type}" for p in endpoint.parameters
        )
        lines.append(f"- {endpoint.id}({params}): {endpoint.description}")
    return "\n".join(lines)
