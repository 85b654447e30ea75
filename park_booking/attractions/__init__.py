"""
Attraction catalog: price and per-slot capacity lookup plus administrative
create/update/activate/deactivate operations.
"""

from .router import router
from .service import AttractionService

__all__ = ["router", "AttractionService"]
