from fastapi import APIRouter, Depends, HTTPException, status, Query
from sqlalchemy.orm import Session
from typing import Optional

from park_booking.database import get_db
from park_booking.attractions.schemas import Attraction, AttractionCreate, AttractionList, AttractionUpdate
from park_booking.attractions.service import AttractionService
from park_booking.errors import DomainError, domain_error_to_http

router = APIRouter()

@router.get("/", response_model=AttractionList)
def get_attractions(
    page: int = Query(1, ge=1, description="Page number"),
    limit: int = Query(10, ge=1, le=100, description="Attractions per page"),
    search: Optional[str] = Query(None, description="Search name, description or location"),
    is_active: Optional[bool] = Query(True, description="Filter by active flag"),
    db: Session = Depends(get_db)
):
    """List attractions with pagination"""
    attractions, total, total_pages = AttractionService.get_attractions(
        db, page=page, limit=limit, search=search, is_active=is_active
    )
    return AttractionList(
        count=len(attractions),
        total=total,
        total_pages=total_pages,
        current_page=page,
        data=[Attraction.model_validate(a) for a in attractions]
    )

@router.get("/{attraction_id}", response_model=Attraction)
def get_attraction(attraction_id: int, db: Session = Depends(get_db)):
    """Get a single attraction"""
    attraction = AttractionService.get_attraction(db, attraction_id)
    if not attraction:
        raise HTTPException(
            status_code=status.HTTP_404_NOT_FOUND,
            detail="Attraction not found"
        )
    return attraction

@router.post("/", response_model=Attraction, status_code=status.HTTP_201_CREATED)
def create_attraction(data: AttractionCreate, db: Session = Depends(get_db)):
    """Create a new attraction"""
    try:
        return AttractionService.create_attraction(db, data)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.patch("/{attraction_id}", response_model=Attraction)
def update_attraction(attraction_id: int, data: AttractionUpdate, db: Session = Depends(get_db)):
    """Partially update an attraction"""
    try:
        return AttractionService.update_attraction(db, attraction_id, data)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.delete("/{attraction_id}", response_model=Attraction)
def deactivate_attraction(attraction_id: int, db: Session = Depends(get_db)):
    """Soft delete an attraction by deactivating it"""
    try:
        return AttractionService.set_active(db, attraction_id, False)
    except DomainError as e:
        raise domain_error_to_http(e)

@router.post("/{attraction_id}/activate", response_model=Attraction)
def activate_attraction(attraction_id: int, db: Session = Depends(get_db)):
    """Re-activate a deactivated attraction"""
    try:
        return AttractionService.set_active(db, attraction_id, True)
    except DomainError as e:
        raise domain_error_to_http(e)
