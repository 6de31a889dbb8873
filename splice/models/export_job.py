from sqlalchemy import Float, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from splice.models.base import Base, TimestampMixin


class ExportJobRecord(Base, TimestampMixin):
    __tablename__ = "export_jobs"

    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    project_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)

    # Status: QUEUED, RUNNING, COMPLETE, FAILED
    status: Mapped[str] = mapped_column(String(20), default="QUEUED", index=True)
    progress: Mapped[float] = mapped_column(Float, default=0.0)
    current_stage: Mapped[str | None] = mapped_column(String(100), nullable=True)

    # Output
    output_path: Mapped[str | None] = mapped_column(Text, nullable=True)

    # Error handling
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)

    def __repr__(self) -> str:
        return f"<ExportJobRecord {self.id} ({self.status})>"
