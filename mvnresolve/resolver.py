"""Dependency graph resolution: transitive expansion, conflict resolution and artifact download."""

import logging
import sys
import threading
from concurrent.futures import Future, ThreadPoolExecutor
from enum import Enum
from pathlib import Path
from typing import Callable, Dict, Hashable, Iterable, List, Optional, Sequence, TextIO, Tuple, Union

from .cache import LocalRepository
from .coordinates import DEFAULT_TYPE, Coordinate, parse_coordinate
from .errors import (ArtifactNotFound, DownloadError, POMParseError, RepositoryUnavailable,
                     ResolutionError, VersionResolutionError)
from .formatters import OutputFormatter
from .models import Dependency, DependencyNode, derive_scope
from .pom import ArtifactLookup, PomModel
from .proxy import ProxySelector
from .repositories import Repository, RepositoryRegistry
from .transport import DEFAULT_POOL_SIZE, RepositoryTransport
from .version_resolver import VersionResolver

logger = logging.getLogger(__name__)

# Errors that are fatal for one branch or artifact only; siblings keep going.
RECOVERABLE_ERRORS = (VersionResolutionError, DownloadError, POMParseError)

CoordinateLike = Union[str, Coordinate, Dependency]


class State(Enum):
    UNRESOLVED = "unresolved"
    RESOLVING = "resolving"
    RESOLVED = "resolved"
    FAILED = "failed"


class ResolutionSession:
    """
    Memo for one resolution session.

    Each key is computed at most once. Concurrent callers asking for a key
    that is being computed wait for the first caller and share its outcome;
    a failure is remembered and re-raised, never retried.
    """

    def __init__(self):
        self._lock = threading.Lock()
        self._futures: Dict[Hashable, Future] = {}
        self._states: Dict[Hashable, State] = {}

    def state(self, key: Hashable) -> State:
        with self._lock:
            return self._states.get(key, State.UNRESOLVED)

    def run(self, key: Hashable, compute: Callable[[], object]):
        with self._lock:
            future = self._futures.get(key)
            owner = future is None
            if owner:
                future = self._futures[key] = Future()
                self._states[key] = State.RESOLVING

        if not owner:
            return future.result()

        try:
            result = compute()
        except BaseException as e:
            with self._lock:
                self._states[key] = State.FAILED
            future.set_exception(e)
            raise
        with self._lock:
            self._states[key] = State.RESOLVED
        future.set_result(result)
        return result


class LookupChain:
    """
    Ordered artifact lookups sharing the :class:`ArtifactLookup` interface.

    Lookups are asked outermost first; the first one returning a path wins.
    """

    def __init__(self, *lookups: ArtifactLookup):
        self.lookups: List[ArtifactLookup] = list(lookups)

    def push(self, lookup: ArtifactLookup) -> None:
        """Add an overlay in front of the existing lookups."""
        self.lookups.insert(0, lookup)

    def fetch_artifact(self, coords: str, type: str) -> Optional[Path]:
        for lookup in self.lookups:
            path = lookup.fetch_artifact(coords, type)
            if path is not None:
                return path
        return None


class DependencyResolver:
    """
    Resolves coordinates and their transitive dependencies to local files.

    Usage::

        with DependencyResolver(Settings.load()) as resolver:
            paths = resolver.resolve_dependencies(["com.acme:foo:1.0"])
    """

    def __init__(
        self,
        settings,
        repositories: Optional[Sequence[str]] = None,
        transport: Optional[RepositoryTransport] = None,
        local_repository: Optional[LocalRepository] = None,
        max_workers: Optional[int] = None,
        overlays: Sequence[ArtifactLookup] = (),
    ):
        self.settings = settings
        self.max_workers = max_workers or DEFAULT_POOL_SIZE
        self.registry = RepositoryRegistry(settings, ProxySelector.from_settings(settings))

        self._owns_transport = transport is None
        self.transport = transport or RepositoryTransport(settings, pool_size=self.max_workers)
        self.local_repository = local_repository or LocalRepository(
            settings.local_repository or settings.default_local_repository,
            fallback=settings.user_repository,
        )
        self.version_resolver = VersionResolver(self.transport, self.local_repository)
        self.lookup = LookupChain(*overlays, self)
        self.session = ResolutionSession()
        self.root_pom: Optional[PomModel] = None

        self._executor = ThreadPoolExecutor(max_workers=self.max_workers, thread_name_prefix="mvnresolve")
        self._tokens: List[str] = []
        self.repositories: List[Repository] = []
        self.set_repositories(list(settings.repositories) + list(repositories or []))

    def set_repositories(self, tokens: Iterable[str]) -> None:
        """Replace the repository list (duplicates removed, central when empty)."""
        tokens = list(tokens)
        repositories = self.registry.resolve(tokens)
        if repositories != self.repositories:
            logger.info(f"Using repositories: {', '.join(str(r) for r in repositories)}")
        self._tokens = tokens
        self.repositories = repositories

    def load_pom(self, source: Union[str, Path, bytes]) -> PomModel:
        """
        Load the project descriptor the resolution runs for.

        It short-circuits parent lookups of dependency descriptors that inherit
        from it, its dependencyManagement overrides transitive versions, and its
        repositories are added to the repository list.
        """
        if isinstance(source, bytes):
            pom = PomModel(source, lookup=self.lookup, loader=self)
        else:
            pom = PomModel.from_file(source, lookup=self.lookup, loader=self)
        self.root_pom = pom
        logger.info(f"Loaded project {pom}")

        pom_repositories = pom.get_repositories()
        if pom_repositories:
            self.set_repositories(self._tokens + pom_repositories)
        return pom

    # ArtifactLookup

    def fetch_artifact(self, coords: str, type: str) -> Optional[Path]:
        """
        Return the local path of an artifact, downloading it when needed.

        Returns None if no repository has the artifact.
        """
        coordinate = self.version_resolver.resolve(parse_coordinate(coords, type), self.repositories)
        try:
            return self._resolve_artifact(coordinate)
        except ArtifactNotFound as e:
            logger.debug(str(e))
            return None

    # PomLoader

    def get_pom(self, group: str, artifact: str, version: str) -> Optional[PomModel]:
        """The session-cached descriptor of ``group:artifact:version``, or None if there is none."""
        return self._pom(Coordinate(group, artifact, version))

    # Public operations

    def latest_version(self, coords: CoordinateLike, type: str = DEFAULT_TYPE) -> str:
        """Highest version matching the coordinate's version (or range); ``g:a`` means any."""
        coordinate = self._coordinate(coords, type)
        return self.version_resolver.resolve(coordinate, self.repositories).version

    def collect(self, coords: Iterable[CoordinateLike], type: str = DEFAULT_TYPE) -> List[DependencyNode]:
        """
        Build the conflict-resolved dependency tree.

        The graph is expanded breadth first, one depth level at a time, in
        declaration order. The first occurrence of an artifact key (group,
        artifact, classifier, type) wins; later occurrences are omitted along
        with their subtrees.

        Args:
            coords: Root coordinates, or Dependency objects carrying a root scope
            type: Artifact type of the roots and of the dependencies followed

        Returns:
            The root nodes, in the order given

        Raises:
            ParseError: If a root coordinate is malformed
            ResolutionError: The first error of a failed branch, after all
                other branches were expanded
        """
        requested = [self._root_dependency(c, type) for c in coords]
        logger.info(f"Collecting dependencies of {len(requested)} coordinates")

        roots: List[DependencyNode] = []
        claimed: Dict[Tuple, Coordinate] = {}
        errors: List[ResolutionError] = []
        level: List[Tuple[Optional[DependencyNode], Dependency]] = [(None, dep) for dep in requested]
        depth = 1

        while level:
            selected = self._select(level, depth, claimed)

            resolved = self._run_all(
                lambda dep: self.version_resolver.resolve(dep.coordinate, self.repositories),
                [dep for _, dep in selected],
            )
            nodes = []
            for (parent, dep), (coordinate, error) in zip(selected, resolved):
                if error is not None:
                    logger.error(f"Failed to resolve {dep.coordinate}: {error}")
                    errors.append(error)
                    continue
                scope = dep.scope if parent is None else derive_scope(parent.scope, dep.scope)
                node = DependencyNode(coordinate, dep.coordinate, scope, dep.optional, depth)
                if parent is None:
                    roots.append(node)
                else:
                    parent.add_child(node)
                nodes.append(node)

            expanded = self._run_all(lambda node: self._dependencies_of(node, type), nodes)
            level = []
            for node, (dependencies, error) in zip(nodes, expanded):
                if error is not None:
                    logger.error(f"Failed to read dependencies of {node}: {error}")
                    errors.append(error)
                    continue
                level.extend((node, dep) for dep in dependencies)
            depth += 1

        logger.info(f"Collected {len(claimed)} artifacts in {depth - 1} levels")
        if errors:
            raise errors[0]
        return roots

    def resolve_dependencies(self, coords: Iterable[CoordinateLike], type: str = DEFAULT_TYPE) -> List[Path]:
        """Resolve coordinates and their transitive dependencies to a flat, de-duplicated path list."""
        roots = self.collect(coords, type)
        self._download_all(roots)

        paths: List[Path] = []
        for root in roots:
            for node in root.walk():
                if node.path is not None and node.path not in paths:
                    paths.append(node.path)
        return paths

    def resolve_dependency(self, coords: CoordinateLike, type: str = DEFAULT_TYPE) -> List[Path]:
        return self.resolve_dependencies([coords], type)

    def resolve_roots(self, coords: Iterable[CoordinateLike], type: str = DEFAULT_TYPE) -> Dict[Coordinate, List[Path]]:
        """
        Map each resolved root coordinate to the paths reachable through it.

        Every artifact appears under exactly one root: the one through which
        it won conflict resolution.
        """
        roots = self.collect(coords, type)
        self._download_all(roots)
        return {
            root.coordinate: [node.path for node in root.walk() if node.path is not None]
            for root in roots
        }

    def print_dependency_tree(self, coords: Iterable[CoordinateLike], type: str = DEFAULT_TYPE,
                              out: Optional[TextIO] = None) -> None:
        """Write the dependency tree, one ``group:artifact:version[:classifier]`` line per node."""
        out = out or sys.stdout
        out.write(OutputFormatter.format_tree(self.collect(coords, type)))

    # Internals

    def _coordinate(self, coords: CoordinateLike, type: str) -> Coordinate:
        if isinstance(coords, Coordinate):
            return coords
        if isinstance(coords, Dependency):
            return coords.coordinate
        return parse_coordinate(coords, type)

    def _root_dependency(self, coords: CoordinateLike, type: str) -> Dependency:
        if isinstance(coords, Dependency):
            return coords
        return Dependency(self._coordinate(coords, type))

    def _select(self, level, depth: int, claimed: Dict[Tuple, Coordinate]):
        """Drop excluded, optional and conflicting candidates of one level; first declared wins."""
        selected = []
        for parent, dep in level:
            coordinate = dep.coordinate
            if parent is not None and parent.is_excluded(coordinate.group, coordinate.artifact):
                logger.debug(f"Excluding {coordinate.gav} from {parent}")
                continue
            if dep.optional and depth > 1:
                logger.debug(f"Skipping transitive optional dependency {coordinate.gav}")
                continue

            key = coordinate.key
            if key in claimed:
                winner = claimed[key]
                if winner.version != coordinate.version:
                    logger.debug(f"Omitting {coordinate.gav} at depth {depth} (conflicts with {winner.version})")
                continue
            claimed[key] = coordinate
            selected.append((parent, self._managed(dep, depth)))
        return selected

    def _managed(self, dep: Dependency, depth: int) -> Dependency:
        """Apply the root descriptor's dependencyManagement to a transitive dependency."""
        if self.root_pom is None or depth == 1:
            return dep
        managed = self.root_pom.managed_dependencies().get(dep.coordinate.management_key)
        if managed is None or not managed.version:
            return dep
        version = self.root_pom.resolve(managed.version)
        if version == dep.coordinate.version:
            return dep
        logger.debug(f"Managed version override: {dep.coordinate.gav} -> {version}")
        return Dependency(dep.coordinate.with_version(version), dep.scope, dep.optional)

    def _run_all(self, fn, items: Sequence) -> List[Tuple[object, Optional[ResolutionError]]]:
        """Run ``fn`` over items on the pool; results come back in item order."""
        futures = [self._executor.submit(fn, item) for item in items]
        outcomes = []
        for future in futures:
            try:
                outcomes.append((future.result(), None))
            except RECOVERABLE_ERRORS as e:
                outcomes.append((None, e))
        return outcomes

    def _dependencies_of(self, node: DependencyNode, type: str) -> List[Dependency]:
        pom = self._pom(node.coordinate)
        if pom is None:
            logger.warning(f"No POM for {node.coordinate.gav}. Treating as leaf node.")
            return []
        dependencies = pom.dependencies(type)
        logger.debug(f"{node} has {len(dependencies)} dependencies")
        return dependencies

    def _pom(self, coordinate: Coordinate) -> Optional[PomModel]:
        """The (session cached) descriptor of an artifact, or None if it has none."""
        key = ("pom", coordinate.group, coordinate.artifact, coordinate.version)
        return self.session.run(key, lambda: self._load_pom(coordinate))

    def _load_pom(self, coordinate: Coordinate) -> Optional[PomModel]:
        if self.root_pom is not None and self.root_pom.identity == (
                coordinate.group, coordinate.artifact, coordinate.version):
            return self.root_pom

        path = self.lookup.fetch_artifact(coordinate.gav, "pom")
        if path is None:
            return None
        return PomModel.from_file(path, root=self.root_pom, lookup=self.lookup, loader=self)

    def _download_all(self, roots: List[DependencyNode]) -> None:
        """Resolve every node to a local path, concurrently; raise the first failure at the end."""
        nodes = [node for root in roots for node in root.walk()]
        errors = []
        for node, (path, error) in zip(nodes, self._run_all(lambda n: self._resolve_artifact(n.coordinate), nodes)):
            if error is not None:
                logger.error(f"Failed to download {node}: {error}")
                errors.append(error)
            else:
                node.path = path
        logger.info(f"Resolved {len(nodes) - len(errors)} of {len(nodes)} artifacts")
        if errors:
            raise errors[0]

    def _resolve_artifact(self, coordinate: Coordinate) -> Path:
        coordinate = coordinate.without_exclusions()
        return self.session.run(("artifact",) + coordinate.memo_key, lambda: self._download(coordinate))

    def _download(self, coordinate: Coordinate) -> Path:
        snapshot = coordinate.is_snapshot
        refresh = snapshot and self.settings.force_refresh
        relative = self.local_repository.relative_path(coordinate).as_posix()

        def downloader(dest: Path) -> None:
            last_error: Optional[DownloadError] = None
            for repository in self.repositories:
                if not repository.policy(snapshot).enabled:
                    continue
                try:
                    self.transport.download(repository, relative, dest, snapshot=snapshot)
                except ArtifactNotFound:
                    logger.debug(f"{coordinate.to_coords()} not found in {repository.id}")
                    continue
                except RepositoryUnavailable as e:
                    logger.warning(f"{e}; trying next repository")
                    last_error = DownloadError(coordinate.to_coords(), str(e), cause=e)
                    continue
                except DownloadError as e:
                    logger.warning(f"{e}; trying next repository")
                    last_error = e
                    continue
                logger.info(f"Downloaded {coordinate.to_coords()} from {repository.id}")
                return

            if last_error is not None:
                raise last_error
            raise ArtifactNotFound(
                coordinate.to_coords(),
                f"not found in {', '.join(r.id for r in self.repositories) or 'any repository'}")

        return self.local_repository.fetch(coordinate, downloader, refresh=refresh)

    def close(self):
        """Cancel pending work and close the HTTP session."""
        self._executor.shutdown(wait=False, cancel_futures=True)
        if self._owns_transport:
            self.transport.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
