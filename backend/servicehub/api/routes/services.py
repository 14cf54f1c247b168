"""
Services API routes (read side of the directory).
"""
from typing import List, Optional
from uuid import UUID

from fastapi import APIRouter, Depends, Query
from sqlalchemy import select
from sqlalchemy.orm import Session
from pydantic import BaseModel

from servicehub.lib.db import get_db
from servicehub.models.services import Service


class ServiceResponse(BaseModel):
    """Bookable service."""
    id: UUID
    provider_id: UUID
    name: str
    category: str
    description: Optional[str] = None
    price: float
    duration_minutes: int
    total_bookings: int

    model_config = {"from_attributes": True}


router = APIRouter(prefix="/services", tags=["services"])


@router.get("", response_model=List[ServiceResponse])
def list_services(
    category: Optional[str] = Query(None, description="Filter by category"),
    db: Session = Depends(get_db),
) -> List[ServiceResponse]:
    """
    List active services, ordered by category and name.
    """
    stmt = select(Service).where(Service.is_active.is_(True))
    if category:
        stmt = stmt.where(Service.category == category)
    stmt = stmt.order_by(Service.category, Service.name)

    services = db.execute(stmt).scalars().all()
    return [ServiceResponse.model_validate(s) for s in services]
