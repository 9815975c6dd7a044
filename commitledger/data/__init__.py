from .database import Database
from .models import Session, Settings, DEFAULT_SETTINGS
from .repository import InMemoryRepository, Repository

__all__ = ["Database", "Session", "Settings", "DEFAULT_SETTINGS",
           "InMemoryRepository", "Repository"]
