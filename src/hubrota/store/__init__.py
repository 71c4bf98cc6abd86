# hubrota/store - In-memory collections with per-rota locking
from .repository import Repository, new_id

__all__ = ["Repository", "new_id"]
