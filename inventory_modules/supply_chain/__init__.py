"""
Supply Chain Module (``inventory_modules.supply_chain``).

Requisition -> purchase order -> goods received note -> purchase entry ->
stock transfer.  Each document has its own service; every service owns its
transaction.  Only GRNs (receipt) and transfers (dispatch / receive) move
stock.
"""

from inventory_modules.supply_chain.grns import GRNService
from inventory_modules.supply_chain.models import (
    DeliveryLocationInput,
    DeliveryType,
    GoodsReceivedNote,
    GRNItemInput,
    GRNStatus,
    PaymentInput,
    PaymentStatus,
    Perishability,
    PurchaseEntry,
    PurchaseEntryItemInput,
    PurchaseOrder,
    PurchaseOrderItemInput,
    PurchaseOrderStatus,
    PurchaseOrderType,
    ReceivedQuantity,
    Requisition,
    RequisitionItemInput,
    RequisitionPatch,
    RequisitionPriority,
    RequisitionStatus,
    StockTransfer,
    TransferItemInput,
    TransferStatus,
    TransferType,
)
from inventory_modules.supply_chain.purchase_entries import PurchaseEntryService
from inventory_modules.supply_chain.purchase_orders import PurchaseOrderService
from inventory_modules.supply_chain.requisitions import RequisitionService
from inventory_modules.supply_chain.stock_transfers import StockTransferService

__all__ = [
    "DeliveryLocationInput",
    "DeliveryType",
    "GRNItemInput",
    "GRNService",
    "GRNStatus",
    "GoodsReceivedNote",
    "PaymentInput",
    "PaymentStatus",
    "Perishability",
    "PurchaseEntry",
    "PurchaseEntryItemInput",
    "PurchaseEntryService",
    "PurchaseOrder",
    "PurchaseOrderItemInput",
    "PurchaseOrderService",
    "PurchaseOrderStatus",
    "PurchaseOrderType",
    "ReceivedQuantity",
    "Requisition",
    "RequisitionItemInput",
    "RequisitionPatch",
    "RequisitionPriority",
    "RequisitionService",
    "RequisitionStatus",
    "StockTransfer",
    "StockTransferService",
    "TransferItemInput",
    "TransferStatus",
    "TransferType",
]
