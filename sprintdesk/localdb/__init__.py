from .session import Base, LocalDatabase, make_sqlite_url
from .models import LocalStorageEntry

__all__ = ["Base", "LocalDatabase", "LocalStorageEntry", "make_sqlite_url"]
