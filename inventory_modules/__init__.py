"""
Inventory Modules

Workflow modules built on the inventory kernel:
- orders: order fulfillment with exactly-once stock deduction
- supply_chain: requisitions, purchase orders, GRNs, purchase entries,
  stock transfers
"""
