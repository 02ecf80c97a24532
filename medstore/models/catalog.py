# FILE: medstore/models/catalog.py
from __future__ import annotations

from sqlalchemy import Column, Integer, String, Boolean, DateTime
from sqlalchemy.orm import relationship

from medstore.db.base import Base
from medstore.utils.timezone import now_local


class Medicine(Base):
    """
    Catalog reference only. Search/autocomplete live outside the ledger;
    batches just point at a medicine for display and audit.
    """
    __tablename__ = "medicines"

    id = Column(Integer, primary_key=True, index=True)
    name = Column(String(255), nullable=False, index=True)
    generic_name = Column(String(255), default="")
    manufacturer = Column(String(255), default="")
    form = Column(String(100), default="")
    strength = Column(String(100), default="")
    is_active = Column(Boolean, default=True, nullable=False)

    created_at = Column(DateTime, default=now_local, nullable=False)

    batches = relationship("InventoryBatch", back_populates="medicine")
