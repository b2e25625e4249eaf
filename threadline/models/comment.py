"""Comment model: one row per comment or reply."""

from sqlalchemy import BigInteger, Boolean, String, Text
from sqlalchemy.orm import Mapped, mapped_column

from .base import Base


class Comment(Base):
    __tablename__ = "comment"

    id: Mapped[str] = mapped_column(String(32), primary_key=True)
    uid: Mapped[str] = mapped_column(String(64), default="", nullable=False, index=True)
    nick: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    mail: Mapped[str] = mapped_column(String(255), default="", nullable=False)
    mail_md5: Mapped[str] = mapped_column(String(64), default="", nullable=False)
    link: Mapped[str] = mapped_column(String(500), default="", nullable=False)
    ua: Mapped[str] = mapped_column(Text, default="", nullable=False)
    ip: Mapped[str] = mapped_column(String(45), default="", nullable=False, index=True)
    master: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    url: Mapped[str] = mapped_column(String(500), nullable=False, index=True)
    href: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
    comment: Mapped[str] = mapped_column(Text, nullable=False)
    pid: Mapped[str] = mapped_column(String(32), default="", nullable=False)
    # Empty for top-level comments
    rid: Mapped[str] = mapped_column(String(32), default="", nullable=False, index=True)
    is_spam: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    created: Mapped[int] = mapped_column(BigInteger, nullable=False, index=True)
    updated: Mapped[int] = mapped_column(BigInteger, nullable=False)
    likes: Mapped[str] = mapped_column(Text, default="[]", nullable=False)  # JSON array of uids
    top: Mapped[bool] = mapped_column(Boolean, default=False, nullable=False)
    avatar: Mapped[str] = mapped_column(String(1000), default="", nullable=False)
