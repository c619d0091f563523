from __future__ import annotations
from sqlalchemy import (
    Column,
    Integer,
    String,
    DateTime,
    Float,
    func,
)
from sqlalchemy.orm import declarative_base

Base = declarative_base()

class Order(Base):
    __tablename__ = "orders"
    id = Column(Integer, primary_key=True, autoincrement=True)
    customer = Column(String(128), nullable=False)
    amount = Column(Float, nullable=True)
    status = Column(String(16), nullable=False, default="NEW")  # see OrderStatus
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now(), nullable=False)
