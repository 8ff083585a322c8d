from __future__ import annotations
from typing import Any, List, Optional
from sqlalchemy.orm import Mapped, mapped_column
from sqlalchemy import String, JSON, DateTime, func
from queue_manager.models.authz import Base

class Location(Base):
    __tablename__ = 'locations'
    CATEGORY_HOSPITAL = 'hospital'
    CATEGORY_BANK = 'bank'
    CATEGORY_CAFE = 'cafe'
    CATEGORY_RESTAURANT = 'restaurant'
    CATEGORY_OTHER = 'other'
    ALL_CATEGORIES = (CATEGORY_HOSPITAL, CATEGORY_BANK, CATEGORY_CAFE, CATEGORY_RESTAURANT, CATEGORY_OTHER)
    DEFAULT_NAME = 'Unnamed Location'
    DEFAULT_SERVICES = ('General Service',)
    id: Mapped[str] = mapped_column(String(64), primary_key=True)
    name: Mapped[str] = mapped_column(String(160), nullable=False, default=DEFAULT_NAME)
    category: Mapped[str] = mapped_column(String(32), nullable=False, default=CATEGORY_OTHER, index=True)
    services: Mapped[List[str]] = mapped_column(JSON, default=list)
    address: Mapped[Optional[str]] = mapped_column(String(255), nullable=True)
    # Raw coordinate document, any of the accepted shapes (see utils.geo)
    coords: Mapped[Optional[Any]] = mapped_column(JSON, nullable=True)
    phone: Mapped[Optional[str]] = mapped_column(String(32), nullable=True)
    hours: Mapped[Optional[str]] = mapped_column(String(120), nullable=True)
    updated_at: Mapped[str] = mapped_column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    @property
    def display_name(self) -> str:
        return self.name or self.DEFAULT_NAME

    @property
    def service_list(self) -> List[str]:
        services = [s for s in (self.services or []) if isinstance(s, str) and s.strip()]
        return services or list(self.DEFAULT_SERVICES)

    @property
    def category_or_other(self) -> str:
        category = (self.category or '').lower()
        return category if category in self.ALL_CATEGORIES else self.CATEGORY_OTHER

# Locations are read-only to the API; rows come from seeds/locations.py
