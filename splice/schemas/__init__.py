from splice.schemas.export import ExportJob, ExportStatus
from splice.schemas.timeline import (
    AssetRef,
    Clip,
    Overlay,
    ProjectTimeline,
    SpeedKeyframe,
    TextAnimation,
    Track,
    TransformKeyframe,
)

__all__ = [
    "AssetRef",
    "Clip",
    "ExportJob",
    "ExportStatus",
    "Overlay",
    "ProjectTimeline",
    "SpeedKeyframe",
    "TextAnimation",
    "Track",
    "TransformKeyframe",
]
