"""Config subpackage - settings loaded from the environment."""
from .settings import Settings, get_settings

__all__ = ['Settings', 'get_settings']
