import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from trainpace.models.base import Base


class PlatformTime(Base):
    """Observed station-entrance-to-platform walking time per station."""

    __tablename__ = "platform_times"

    station_name: Mapped[str] = mapped_column(String(255), primary_key=True)  # normalized
    seconds: Mapped[float] = mapped_column(Float, nullable=False)  # running mean
    sample_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    updated_at: Mapped[datetime.datetime] = mapped_column(
        DateTime(timezone=True), nullable=False
    )
