"""Resolves version ranges and the "any version" marker against repository metadata."""

import logging
import threading
import xml.etree.ElementTree as ET
from typing import Dict, List, Optional, Sequence, Tuple

from .cache import LocalRepository, artifact_directory
from .coordinates import Coordinate
from .errors import ArtifactNotFound, DownloadError, RepositoryUnavailable, VersionResolutionError
from .repositories import UPDATE_POLICY_ALWAYS, Repository
from .transport import RepositoryTransport
from .versions import VersionRange

logger = logging.getLogger(__name__)

METADATA_FILE = "maven-metadata.xml"


def parse_metadata_versions(content: bytes) -> List[str]:
    """Extract ``versioning/versions/version`` entries from a maven-metadata.xml document."""
    root = ET.fromstring(content)
    versions = []
    for elem in root.iter():
        if _local_name(elem.tag) != 'versions':
            continue
        for version_elem in elem:
            if _local_name(version_elem.tag) == 'version' and version_elem.text:
                versions.append(version_elem.text.strip())
    return versions


def _local_name(tag: str) -> str:
    return tag.split('}')[-1] if '}' in tag else tag


class VersionResolver:
    """
    Picks concrete versions for coordinates.

    Exact versions are returned unchanged. For a range (or the "any version"
    marker ``[0,)``) the metadata of every configured repository is consulted
    and the highest version inside the range wins. Metadata is cached in the
    local repository and reused unless the repository's update policy is
    ``always`` (force refresh).
    """

    def __init__(self, transport: RepositoryTransport, local_repository: LocalRepository):
        self.transport = transport
        self.local_repository = local_repository
        self._memo: Dict[Tuple[str, str, str], List[str]] = {}
        self._memo_lock = threading.Lock()

    def resolve(self, coordinate: Coordinate, repositories: Sequence[Repository]) -> Coordinate:
        """
        Return the coordinate with an exact version.

        Raises:
            VersionResolutionError: No repository has a version inside the range
            ParseError: The range itself is malformed
        """
        if not coordinate.is_range:
            return coordinate

        version_range = VersionRange.parse(coordinate.version)
        version = version_range.highest(self.available_versions(coordinate, repositories))
        if version is None:
            raise VersionResolutionError(
                f"{coordinate.group}:{coordinate.artifact}", coordinate.version)

        logger.debug(f"Resolved {coordinate.gav} to version {version}")
        return coordinate.with_version(version)

    def available_versions(self, coordinate: Coordinate, repositories: Sequence[Repository]) -> List[str]:
        """All versions of the artifact offered by the repositories, in first-seen order."""
        versions: List[str] = []
        for repository in repositories:
            for version in self._versions(coordinate, repository):
                if version not in versions:
                    versions.append(version)
        return versions

    def _versions(self, coordinate: Coordinate, repository: Repository) -> List[str]:
        """Versions offered by one repository, filtered by its release/snapshot policies."""
        try:
            versions = self._metadata_versions(coordinate, repository)
        except RepositoryUnavailable as e:
            logger.warning(f"{e}; trying next repository")
            return []

        allowed = []
        for version in versions:
            snapshot = version.endswith('-SNAPSHOT')
            if repository.policy(snapshot).enabled:
                allowed.append(version)
        return allowed

    def _metadata_versions(self, coordinate: Coordinate, repository: Repository) -> List[str]:
        memo_key = (repository.id, repository.url, f"{coordinate.group}:{coordinate.artifact}")
        with self._memo_lock:
            if memo_key in self._memo:
                return self._memo[memo_key]

        content = self._load_metadata(coordinate, repository)
        versions: List[str] = []
        if content is not None:
            try:
                versions = parse_metadata_versions(content)
            except ET.ParseError as e:
                logger.warning(f"Malformed metadata for {coordinate.group}:{coordinate.artifact} "
                               f"in {repository.id}: {e}")

        with self._memo_lock:
            self._memo[memo_key] = versions
        return versions

    def _load_metadata(self, coordinate: Coordinate, repository: Repository) -> Optional[bytes]:
        cached = self.local_repository.metadata_path(coordinate, repository.id)
        refresh = repository.release_policy.update_policy == UPDATE_POLICY_ALWAYS

        with self.local_repository.artifact_lock(("metadata", repository.id) + coordinate.key[:2]):
            if cached.is_file() and (not refresh or self.transport.offline):
                logger.debug(f"Using cached metadata {cached}")
                return cached.read_bytes()

            path = (artifact_directory(coordinate) / METADATA_FILE).as_posix()
            try:
                content = self.transport.get(repository, path)
            except ArtifactNotFound:
                logger.debug(f"No metadata for {coordinate.group}:{coordinate.artifact} in {repository.id}")
                return None
            except DownloadError as e:
                logger.warning(f"Could not fetch metadata from {repository.id}: {e}")
                return None

            self.local_repository.write(cached, lambda tmp: tmp.write_bytes(content))
            return content
