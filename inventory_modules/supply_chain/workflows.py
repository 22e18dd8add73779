"""
Supply Chain Workflows.

State machines for requisitions, purchase orders and stock transfers.
GRN and payment statuses are set from the payload and have no workflow.
"""

from inventory_kernel.domain.workflow import Guard, Transition, Workflow
from inventory_kernel.logging_config import get_logger

logger = get_logger("modules.supply_chain.workflows")


# -----------------------------------------------------------------------------
# Guards
# -----------------------------------------------------------------------------

HAS_RECEIPT = Guard(
    name="has_receipt",
    description="The purchase entry is recorded against a goods received note of the order",
)

SOURCE_STOCK_POSTED = Guard(
    name="source_stock_posted",
    description="The transfer was dispatched and its quantities left the source location",
)

logger.info(
    "supply_chain_workflow_guards_defined",
    extra={"guards": [HAS_RECEIPT.name, SOURCE_STOCK_POSTED.name]},
)


# -----------------------------------------------------------------------------
# Requisition Workflow
# -----------------------------------------------------------------------------

REQUISITION_WORKFLOW = Workflow(
    name="requisition",
    description="Internal stock requisition lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "received",
    ),
    transitions=(
        Transition("pending", "pending", action="update"),
        Transition("pending", "approved", action="approve"),
        Transition("approved", "received", action="receive"),
    ),
)

logger.info(
    "supply_chain_requisition_workflow_registered",
    extra={
        "workflow_name": REQUISITION_WORKFLOW.name,
        "state_count": len(REQUISITION_WORKFLOW.states),
        "transition_count": len(REQUISITION_WORKFLOW.transitions),
        "initial_state": REQUISITION_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Purchase Order Workflow
# -----------------------------------------------------------------------------

_OPEN_PO_STATES = ("pending", "approved", "ordered", "partially_received")

PURCHASE_ORDER_WORKFLOW = Workflow(
    name="purchase_order",
    description="Supplier purchase order lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "ordered",
        "partially_received",
        "completed",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "ordered", action="place"),
        # A GRN against the order
        *(
            Transition(state, "partially_received", action="receive", moves_stock=True)
            for state in _OPEN_PO_STATES
        ),
        # A purchase entry against the order (or one of its GRNs); once
        # completed, only GRN-backed entries may follow
        *(
            Transition(state, "completed", action="complete")
            for state in _OPEN_PO_STATES
        ),
        Transition("completed", "completed", action="complete", guard=HAS_RECEIPT),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
        Transition("ordered", "cancelled", action="cancel"),
    ),
)

logger.info(
    "supply_chain_po_workflow_registered",
    extra={
        "workflow_name": PURCHASE_ORDER_WORKFLOW.name,
        "state_count": len(PURCHASE_ORDER_WORKFLOW.states),
        "transition_count": len(PURCHASE_ORDER_WORKFLOW.transitions),
        "initial_state": PURCHASE_ORDER_WORKFLOW.initial_state,
    },
)


# -----------------------------------------------------------------------------
# Stock Transfer Workflow
# -----------------------------------------------------------------------------

STOCK_TRANSFER_WORKFLOW = Workflow(
    name="stock_transfer",
    description="Inter-location stock transfer lifecycle",
    initial_state="pending",
    states=(
        "pending",
        "approved",
        "dispatched",
        "in_transit",
        "received",
        "cancelled",
    ),
    transitions=(
        Transition("pending", "approved", action="approve"),
        Transition("approved", "dispatched", action="dispatch", moves_stock=True),
        Transition("dispatched", "in_transit", action="mark_in_transit"),
        Transition(
            "dispatched", "received", action="receive",
            guard=SOURCE_STOCK_POSTED, moves_stock=True,
        ),
        Transition(
            "in_transit", "received", action="receive",
            guard=SOURCE_STOCK_POSTED, moves_stock=True,
        ),
        Transition("pending", "cancelled", action="cancel"),
        Transition("approved", "cancelled", action="cancel"),
    ),
)

logger.info(
    "supply_chain_transfer_workflow_registered",
    extra={
        "workflow_name": STOCK_TRANSFER_WORKFLOW.name,
        "state_count": len(STOCK_TRANSFER_WORKFLOW.states),
        "transition_count": len(STOCK_TRANSFER_WORKFLOW.transitions),
        "initial_state": STOCK_TRANSFER_WORKFLOW.initial_state,
    },
)
