"""Services module - Business logic layer"""

from .apply_client import ApplyClient
from .config_manager import ConfigManager
from .diff_generator import DiffGenerator
from .file_store import FileStore
from .orchestrator import EditOrchestrator, SessionRegistry

__all__ = [
    "ApplyClient",
    "ConfigManager",
    "DiffGenerator",
    "EditOrchestrator",
    "FileStore",
    "SessionRegistry",
]
