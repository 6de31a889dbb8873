from splice.models.base import Base, TimestampMixin
from splice.models.export_job import ExportJobRecord

__all__ = [
    "Base",
    "ExportJobRecord",
    "TimestampMixin",
]
