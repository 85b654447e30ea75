from pydantic import BaseModel
from pydantic.alias_generators import to_camel
import re

TIME_SLOT_PATTERN = re.compile(r"^([01]\d|2[0-3]):[0-5]\d$")

class CamelModel(BaseModel):
    """Base model exchanging camelCase JSON with the clients"""

    class Config:
        alias_generator = to_camel
        populate_by_name = True
        from_attributes = True
