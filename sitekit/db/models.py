from sqlalchemy import JSON, Column, DateTime, Integer, String, func
from sqlalchemy.orm import declarative_base

Base = declarative_base()


class Option(Base):
    """A named, JSON-serialized value (site options, tokens, module settings)."""

    __tablename__ = "options"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(191), unique=True, nullable=False, index=True)
    value = Column(JSON, nullable=True)
    updated_at = Column(
        DateTime(timezone=True),
        server_default=func.now(),
        onupdate=func.now(),
        nullable=False,
    )

    def __repr__(self):
        return f"<Option(name={self.name})>"
