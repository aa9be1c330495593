# authcore Models
from authcore.models.base import BaseModel
from authcore.models.user import User

__all__ = [
    "BaseModel",
    "User",
]
