import uuid
from datetime import datetime, timezone
from sqlalchemy import String, DateTime, Integer, Index, Text, text
from sqlalchemy.orm import Mapped, mapped_column

from uptimer.database import Base


class Incident(Base):
    __tablename__ = "incidents"
    __table_args__ = (
        # At most one open incident per resource
        Index(
            "uq_incidents_open_resource",
            "kind",
            "resource_id",
            unique=True,
            sqlite_where=text("resolved_at IS NULL"),
            postgresql_where=text("resolved_at IS NULL"),
        ),
        Index("ix_incidents_kind_resource", "kind", "resource_id"),
    )

    id: Mapped[str] = mapped_column(
        String(36), primary_key=True, default=lambda: str(uuid.uuid4())
    )
    kind: Mapped[str] = mapped_column(String(20), nullable=False)  # monitor, cron
    resource_id: Mapped[str] = mapped_column(String(36), nullable=False)
    owner_id: Mapped[str | None] = mapped_column(String(36), nullable=True, index=True)
    cause: Mapped[str | None] = mapped_column(String(100), nullable=True)
    http_status: Mapped[int | None] = mapped_column(Integer, nullable=True)
    started_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc), index=True
    )
    resolved_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    last_update_at: Mapped[datetime] = mapped_column(
        DateTime, default=lambda: datetime.now(timezone.utc)
    )
    screenshot_ref: Mapped[str | None] = mapped_column(Text, nullable=True)

    @property
    def is_open(self) -> bool:
        return self.resolved_at is None
