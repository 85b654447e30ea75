import logging
import math
from typing import List, Optional, Tuple

from sqlalchemy import or_
from sqlalchemy.exc import IntegrityError
from sqlalchemy.orm import Session

from park_booking.attractions.schemas import AttractionCreate, AttractionUpdate
from park_booking.errors import ConflictDuplicateError, NotFoundError
from park_booking.models import Attraction

logger = logging.getLogger(__name__)

class AttractionService:
    @staticmethod
    def get_attraction(db: Session, attraction_id: int) -> Optional[Attraction]:
        """Get attraction by ID"""
        return db.get(Attraction, attraction_id)

    @staticmethod
    def get_bookable_attraction(db: Session, attraction_id: int) -> Attraction:
        """Get an active attraction or raise NotFoundError"""
        attraction = db.get(Attraction, attraction_id)
        if attraction is None or not attraction.is_active:
            raise NotFoundError("Attraction not found")
        return attraction

    @staticmethod
    def get_attractions(
        db: Session,
        page: int = 1,
        limit: int = 10,
        search: Optional[str] = None,
        is_active: Optional[bool] = True
    ) -> Tuple[List[Attraction], int, int]:
        """List attractions, newest first, with optional search and active filter"""
        query = db.query(Attraction)

        if is_active is not None:
            query = query.filter(Attraction.is_active == is_active)

        if search:
            pattern = f"%{search}%"
            query = query.filter(or_(
                Attraction.name.ilike(pattern),
                Attraction.description.ilike(pattern),
                Attraction.location.ilike(pattern)
            ))

        total = query.count()
        attractions = query.order_by(Attraction.created_at.desc(), Attraction.id.desc()) \
            .offset((page - 1) * limit).limit(limit).all()

        return attractions, total, math.ceil(total / limit) if limit else 0

    @staticmethod
    def create_attraction(db: Session, data: AttractionCreate) -> Attraction:
        attraction = Attraction(**data.model_dump())
        db.add(attraction)
        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictDuplicateError("Attraction with this name already exists") from e
        db.refresh(attraction)
        logger.info("Created attraction %s (%s)", attraction.id, attraction.name)
        return attraction

    @staticmethod
    def update_attraction(db: Session, attraction_id: int, data: AttractionUpdate) -> Attraction:
        attraction = db.get(Attraction, attraction_id)
        if attraction is None:
            raise NotFoundError("Attraction not found")

        for field, value in data.model_dump(exclude_unset=True).items():
            setattr(attraction, field, value)

        try:
            db.commit()
        except IntegrityError as e:
            db.rollback()
            raise ConflictDuplicateError("Attraction with this name already exists") from e
        db.refresh(attraction)
        return attraction

    @staticmethod
    def set_active(db: Session, attraction_id: int, is_active: bool) -> Attraction:
        """Activate or deactivate (soft delete) an attraction"""
        attraction = db.get(Attraction, attraction_id)
        if attraction is None:
            raise NotFoundError("Attraction not found")

        attraction.is_active = is_active
        db.commit()
        db.refresh(attraction)
        logger.info("Attraction %s active=%s", attraction_id, is_active)
        return attraction
