"""mvnresolve - resolve Maven coordinates and their transitive dependencies to local files."""

__version__ = "1.0.0"

from .coordinates import Coordinate, Exclusion, parse_coordinate  # noqa: E402
from .errors import (  # noqa: E402
    ArtifactNotFound,
    CacheDirectoryError,
    CycleError,
    DownloadError,
    ParseError,
    POMParseError,
    RepositoryUnavailable,
    ResolutionError,
    VersionResolutionError,
)
from .pom import PomModel  # noqa: E402
from .resolver import DependencyResolver, LookupChain  # noqa: E402
from .settings import Settings  # noqa: E402

__all__ = [
    "__version__",
    "ArtifactNotFound",
    "CacheDirectoryError",
    "Coordinate",
    "CycleError",
    "DependencyResolver",
    "DownloadError",
    "Exclusion",
    "LookupChain",
    "ParseError",
    "POMParseError",
    "PomModel",
    "RepositoryUnavailable",
    "ResolutionError",
    "Settings",
    "VersionResolutionError",
    "parse_coordinate",
]
