"""On-disk artifact store with per-artifact locking."""

import logging
import os
import stat
import tempfile
import threading
from contextlib import contextmanager
from pathlib import Path
from typing import Callable, Dict, Hashable, Iterator, Optional

from .coordinates import Coordinate
from .errors import CacheDirectoryError

logger = logging.getLogger(__name__)


class LocalRepository:
    """
    A local repository laid out like a standard Maven repository::

        <root>/<group/path>/<artifactId>/<version>/<artifactId>-<version>[-<classifier>].<type>

    The root directory is created lazily on first use. If it can't be created
    the repository falls back to ``fallback`` (normally ``~/.m2/repository``).

    Concurrent fetches of the same artifact are serialized through
    :meth:`artifact_lock`, so an artifact is fetched at most once per process.
    """

    def __init__(self, root: Path, fallback: Optional[Path] = None):
        self.requested_root = Path(root)
        self.fallback = Path(fallback) if fallback is not None else None
        self._root: Optional[Path] = None
        self._root_lock = threading.Lock()
        self._locks: Dict[Hashable, threading.Lock] = {}
        self._locks_guard = threading.Lock()

    @property
    def root(self) -> Path:
        """The effective root directory, created on first access."""
        if self._root is None:
            with self._root_lock:
                if self._root is None:
                    self._root = self._init_root()
        return self._root

    def _init_root(self) -> Path:
        try:
            create_directory(self.requested_root)
            return self.requested_root
        except CacheDirectoryError as e:
            if self.fallback is None:
                raise
            logger.debug(f"{e}; falling back to {self.fallback}")
            return self.fallback

    def relative_path(self, coordinate: Coordinate) -> Path:
        name = f"{coordinate.artifact}-{coordinate.version}"
        if coordinate.classifier:
            name += f"-{coordinate.classifier}"
        name += f".{coordinate.type}"
        return artifact_directory(coordinate) / coordinate.version / name

    def path_for(self, coordinate: Coordinate) -> Path:
        return self.root / self.relative_path(coordinate)

    def metadata_path(self, coordinate: Coordinate, repository_id: str) -> Path:
        return self.root / artifact_directory(coordinate) / f"maven-metadata-{repository_id}.xml"

    def contains(self, coordinate: Coordinate) -> bool:
        return self.path_for(coordinate).is_file()

    @contextmanager
    def artifact_lock(self, key: Hashable) -> Iterator[None]:
        """Advisory lock for one artifact (or metadata file), released on every exit path."""
        with self._locks_guard:
            lock = self._locks.get(key)
            if lock is None:
                lock = self._locks[key] = threading.Lock()
        lock.acquire()
        try:
            yield
        finally:
            lock.release()

    def fetch(
        self,
        coordinate: Coordinate,
        downloader: Callable[[Path], None],
        refresh: bool = False,
    ) -> Path:
        """
        Return the local path of an artifact, downloading it if absent.

        The first caller for a coordinate runs ``downloader``; concurrent callers
        for the same coordinate wait for it and then see the file it wrote.

        Args:
            coordinate: Artifact with an exact version
            downloader: Writes the artifact to the path it is given
            refresh: Download even if the file is already cached

        Returns:
            Absolute path of the cached file
        """
        target = self.path_for(coordinate)
        with self.artifact_lock(("artifact",) + coordinate.key + (coordinate.version,)):
            if target.is_file() and not refresh:
                logger.debug(f"Found {coordinate.to_coords()} in local repository: {target}")
                return target.absolute()
            self.write(target, downloader)
        return target.absolute()

    def write(self, target: Path, writer: Callable[[Path], None]) -> None:
        """Run ``writer`` into a temporary file next to ``target`` and move it into place."""
        create_directory(target.parent)
        fd, tmp_name = tempfile.mkstemp(prefix=f".{target.name}.", suffix=".part", dir=str(target.parent))
        os.close(fd)
        tmp = Path(tmp_name)
        try:
            writer(tmp)
            os.replace(tmp, target)
        finally:
            if tmp.exists():
                tmp.unlink()


def artifact_directory(coordinate: Coordinate) -> Path:
    return Path(*coordinate.group.split(".")) / coordinate.artifact


def create_directory(path: Path) -> None:
    """Create ``path`` (and missing parents) with the permissions of its closest existing ancestor."""
    if path.is_dir():
        return
    ancestor = path.parent
    while not ancestor.exists() and ancestor != ancestor.parent:
        ancestor = ancestor.parent
    try:
        mode = stat.S_IMODE(ancestor.stat().st_mode)
        path.mkdir(mode=mode, parents=True, exist_ok=True)
    except OSError as e:
        raise CacheDirectoryError(str(path), str(e)) from e
