# hubrota - Volunteer rota assignment
from .errors import ErrorCode, RotaError, StorageError, VersionConflict

__version__ = "1.0.0"

__all__ = ["ErrorCode", "RotaError", "StorageError", "VersionConflict", "__version__"]
