"""HTTP control surface."""

from .server import create_app
from .state import SwitcherState

__all__ = ["SwitcherState", "create_app"]
