"""
MineralFlow operational state layer.

Client-side synchronization of truck, warehouse, purchase order, shipping
order and appointment state for the bulk-materials site dashboard.
"""

__version__ = "0.1.0"
