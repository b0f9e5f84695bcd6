"""Default configuration values."""

from .model import *  # noqa: F401,F403
from .model import __all__ as _model_all
from .server import *  # noqa: F401,F403
from .server import __all__ as _server_all

__all__ = list(_model_all) + list(_server_all)
