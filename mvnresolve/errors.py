"""Exception types raised while resolving artifacts."""

from typing import Optional, Sequence


class ResolutionError(Exception):
    """Base class for all mvnresolve errors."""


class ParseError(ResolutionError, ValueError):
    """A coordinate, exclusion or repository string could not be parsed."""

    def __init__(self, message: str, literal: str):
        super().__init__(f"{message}: {literal}")
        self.literal = literal


class POMParseError(ResolutionError):
    """A project descriptor is malformed."""

    def __init__(self, source: str, reason: str = ""):
        message = f"Error trying to read pom {source}"
        if reason:
            message += f": {reason}"
        super().__init__(message)
        self.source = source


class CycleError(ResolutionError):
    """A parent chain (or dependency chain) loops back on itself."""

    def __init__(self, chain: Sequence[str]):
        super().__init__("Cycle detected: " + " -> ".join(chain))
        self.chain = list(chain)


class RepositoryUnavailable(ResolutionError):
    """Transient failure talking to one repository (timeout, connection, 5xx)."""

    def __init__(self, repository: str, reason: str = ""):
        super().__init__(f"Repository {repository} unavailable" + (f": {reason}" if reason else ""))
        self.repository = repository
        self.reason = reason


class VersionResolutionError(ResolutionError):
    """No reachable repository has a version satisfying the requested range."""

    def __init__(self, coordinate: str, version_range: str):
        super().__init__(
            f"Could not find any version of artifact {coordinate} (looking for: {version_range})"
        )
        self.coordinate = coordinate
        self.version_range = version_range


class DownloadError(ResolutionError):
    """An artifact file could not be fetched."""

    def __init__(self, coordinate: str, reason: str = "", cause: Optional[BaseException] = None):
        super().__init__(f"Could not download {coordinate}" + (f": {reason}" if reason else ""))
        self.coordinate = coordinate
        self.cause = cause


class ArtifactNotFound(DownloadError):
    """The artifact does not exist in any configured repository."""


class CacheDirectoryError(ResolutionError):
    """The local repository directory could not be created."""

    def __init__(self, path: str, reason: str = ""):
        super().__init__(f"Could not create local repo at {path}" + (f": {reason}" if reason else ""))
        self.path = path
