"""Read-only query selectors."""

from inventory_kernel.selectors.base import BaseSelector
from inventory_kernel.selectors.movement_selector import MovementSelector

__all__ = ["BaseSelector", "MovementSelector"]
