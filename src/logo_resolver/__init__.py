"""Top-level package for logo_resolver.

Expose primary classes/functions for convenient imports:
    from logo_resolver import LogoResolver, resolve_image, is_valid_image_url
"""

from importlib.metadata import version, PackageNotFoundError

from .models import Candidate, ErrorKind, ResolutionResult, ValidationOutcome
from .resolver import LogoResolver, is_valid_image_url, resolve_image
from .search import BraveSearchClient, search_web

__all__ = [
    "LogoResolver",
    "resolve_image",
    "is_valid_image_url",
    "search_web",
    "BraveSearchClient",
    "Candidate",
    "ErrorKind",
    "ResolutionResult",
    "ValidationOutcome",
]

try:
    __version__ = version("logo-resolver")
except PackageNotFoundError:  # pragma: no cover - during editable/dev installs
    __version__ = "0.0.0"
