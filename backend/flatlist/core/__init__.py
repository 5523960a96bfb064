from flatlist.core.config import settings
from flatlist.core.database import get_db, Base, get_engine

__all__ = ["settings", "get_db", "Base", "get_engine"]
