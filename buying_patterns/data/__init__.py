"""
Data Access Module
"""
from .relations import FileFormat, Relations, RelationView
from .generators import SnapshotGenerator

__all__ = [
    "FileFormat",
    "Relations",
    "RelationView",
    "SnapshotGenerator",
]
