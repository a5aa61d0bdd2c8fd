"""Counter rows behind ``SequenceService``; one row per sequence name."""

from sqlalchemy import String
from sqlalchemy.orm import Mapped, mapped_column

from institute_kernel.db.base import Base


class SequenceCounter(Base):
    __tablename__ = "sequence_counters"

    name: Mapped[str] = mapped_column(String(50), unique=True)
    current_value: Mapped[int] = mapped_column(default=0)

    def __repr__(self) -> str:
        return f"<SequenceCounter {self.name}={self.current_value}>"
