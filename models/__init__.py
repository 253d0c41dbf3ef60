from models.student import Student
from models.destination_class import DestinationClass, CombinedAllocation
from models.placement_data import PlacementData, PlacementStructureError, StructureReport

__all__ = [
    "Student",
    "DestinationClass",
    "CombinedAllocation",
    "PlacementData",
    "PlacementStructureError",
    "StructureReport",
]
