"""ftp over tls client for asyncio"""

# flake8: noqa

from .client import *
from .common import *
from .errors import *
from .parsers import *
from .pathio import *
from .reply import *

__version__ = "0.1.0"
version = tuple(map(int, __version__.split(".")))

__all__ = (
    client.__all__  # type: ignore[name-defined]
    + common.__all__  # type: ignore[name-defined]
    + errors.__all__  # type: ignore[name-defined]
    + parsers.__all__  # type: ignore[name-defined]
    + pathio.__all__  # type: ignore[name-defined]
    + reply.__all__  # type: ignore[name-defined]
    + ("version", "__version__")
)
