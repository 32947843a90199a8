"""ORM models for the inventory kernel."""

from inventory_kernel.models.balance import InventoryBalance
from inventory_kernel.models.cycle_count import CycleCount, CycleCountLine
from inventory_kernel.models.event import InventoryEvent
from inventory_kernel.models.item import Item
from inventory_kernel.models.location import Location, LocationType, Site
from inventory_kernel.models.lot import Lot, LotHistory
from inventory_kernel.models.reason_code import ReasonCode, ReasonType
from inventory_kernel.models.serial import SerialNumber, SerialStatus
from inventory_kernel.models.uom import UomConversion

__all__ = [
    "CycleCount",
    "CycleCountLine",
    "InventoryBalance",
    "InventoryEvent",
    "Item",
    "Location",
    "LocationType",
    "Lot",
    "LotHistory",
    "ReasonCode",
    "ReasonType",
    "SerialNumber",
    "SerialStatus",
    "Site",
    "UomConversion",
]
