"""Single-row deployment configuration blob."""

from sqlalchemy import Integer, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base

CONFIG_ROW_ID = 1


class ConfigRecord(Base):
    __tablename__ = "config"

    id: Mapped[int] = mapped_column(Integer, primary_key=True, default=CONFIG_ROW_ID)
    value: Mapped[str] = mapped_column(Text, default="{}", nullable=False)  # JSON object
