"""Prefix and popularity suggestion index."""

from .api import SuggestAPI, build_api
from .errors import InvalidInputError, StoreUnavailableError, SuggestError
from .index import SuggestionIndex
from .keys import DEFAULT_SCOPE
from .models import SuggestConfig
from .service_http import create_app

__all__ = [
    "DEFAULT_SCOPE",
    "InvalidInputError",
    "StoreUnavailableError",
    "SuggestAPI",
    "SuggestConfig",
    "SuggestError",
    "SuggestionIndex",
    "build_api",
    "create_app",
]

__version__ = "0.1.0"
