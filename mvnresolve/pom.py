"""Project descriptor (pom.xml) model with parent inheritance and interpolation."""

import logging
import re
import threading
import xml.etree.ElementTree as ET
from dataclasses import dataclass
from pathlib import Path
from typing import Dict, List, Optional, Protocol, Tuple, Union

from .coordinates import DEFAULT_TYPE, Exclusion, ParseError, parse_coordinate
from .errors import CycleError, POMParseError, ResolutionError
from .models import COMPILE, RUNTIME, Dependency

logger = logging.getLogger(__name__)

INCLUDED_SCOPES = (COMPILE, RUNTIME)

PLACEHOLDER_PATTERN = re.compile(r"\$\{([^}]+)\}")


class ArtifactLookup(Protocol):
    """Capability used to fetch parent descriptors."""

    def fetch_artifact(self, coords: str, type: str) -> Optional[Path]:
        """Return the local path of ``coords`` of the given type, or None."""


class PomLoader(Protocol):
    """Capability returning the session-cached descriptor of an artifact."""

    def get_pom(self, group: str, artifact: str, version: str) -> Optional["PomModel"]:
        """Return the parsed descriptor of ``group:artifact:version``, or None if there is none."""


def local_name(tag: str) -> str:
    """Strip the XML namespace from a tag."""
    return tag.split('}')[-1] if '}' in tag else tag


def find_child(parent: ET.Element, tag_name: str) -> Optional[ET.Element]:
    for child in parent:
        if local_name(child.tag) == tag_name:
            return child
    return None


def find_children(parent: Optional[ET.Element], tag_name: str) -> List[ET.Element]:
    if parent is None:
        return []
    return [child for child in parent if local_name(child.tag) == tag_name]


def get_element_text(parent: Optional[ET.Element], tag_name: str) -> Optional[str]:
    """Get text content of a direct child element."""
    if parent is None:
        return None
    elem = find_child(parent, tag_name)
    if elem is not None and elem.text and elem.text.strip():
        return elem.text.strip()
    return None


@dataclass(frozen=True)
class ParentRef:
    group_id: Optional[str]
    artifact_id: Optional[str]
    version: Optional[str]
    relative_path: str = "../pom.xml"

    @property
    def identity(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return (self.group_id, self.artifact_id, self.version)

    def __str__(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.version}"


@dataclass
class PomDependency:
    """A <dependency> element as written in the descriptor."""

    group_id: str
    artifact_id: str
    version: Optional[str] = None
    type: str = DEFAULT_TYPE
    classifier: Optional[str] = None
    scope: Optional[str] = None
    optional: bool = False
    exclusions: Tuple[Exclusion, ...] = ()

    @property
    def management_key(self) -> Tuple[str, str, str, Optional[str]]:
        return (self.group_id, self.artifact_id, self.type, self.classifier)

    def to_coords(self) -> str:
        coords = f"{self.group_id}:{self.artifact_id}:{self.version or ''}"
        if self.classifier:
            coords += f":{self.classifier}"
        if self.exclusions:
            coords += '(' + ','.join(str(ex) for ex in self.exclusions) + ')'
        return coords

    def to_management_coords(self) -> str:
        return (f"{self.group_id}:{self.artifact_id}:{self.type or ''}"
                f":{self.classifier or ''}:{self.version or ''}")


def parse_dependency(elem: ET.Element) -> Optional[PomDependency]:
    group_id = get_element_text(elem, 'groupId')
    artifact_id = get_element_text(elem, 'artifactId')
    if not group_id or not artifact_id:
        return None

    exclusions = []
    for ex in find_children(find_child(elem, 'exclusions'), 'exclusion'):
        ex_group = get_element_text(ex, 'groupId')
        ex_artifact = get_element_text(ex, 'artifactId')
        if ex_group and ex_artifact:
            exclusions.append(Exclusion(ex_group, ex_artifact))

    return PomDependency(
        group_id=group_id,
        artifact_id=artifact_id,
        version=get_element_text(elem, 'version'),
        type=get_element_text(elem, 'type') or DEFAULT_TYPE,
        classifier=get_element_text(elem, 'classifier'),
        scope=get_element_text(elem, 'scope'),
        optional=(get_element_text(elem, 'optional') or '').lower() == 'true',
        exclusions=tuple(exclusions),
    )


def include_dependency(dep: PomDependency) -> bool:
    if dep.optional:
        return False
    if not dep.scope:
        return True
    return dep.scope.lower() in INCLUDED_SCOPES


class PomModel:
    """
    A parsed pom.xml.

    The parent descriptor is resolved lazily (once per instance) through a
    :class:`PomLoader` when one is given, so siblings share one parent model,
    and otherwise through an :class:`ArtifactLookup`. If the parent can't be resolved the model carries
    on without inheritance; a parent chain that loops raises CycleError.
    """

    def __init__(
        self,
        source: Union[bytes, str],
        root: Optional['PomModel'] = None,
        lookup: Optional[ArtifactLookup] = None,
        source_path: Optional[Path] = None,
        loader: Optional[PomLoader] = None,
    ):
        self.source_path = Path(source_path) if source_path else None
        name = str(source_path) if source_path else "<pom>"
        try:
            project = ET.fromstring(source)
        except ET.ParseError as e:
            raise POMParseError(name, str(e)) from e
        if local_name(project.tag) != 'project':
            raise POMParseError(name, f"unexpected root element <{local_name(project.tag)}>")

        self.root = root
        self.lookup = lookup
        self.loader = loader

        parent_elem = find_child(project, 'parent')
        self.parent_ref: Optional[ParentRef] = None
        if parent_elem is not None:
            self.parent_ref = ParentRef(
                get_element_text(parent_elem, 'groupId'),
                get_element_text(parent_elem, 'artifactId'),
                get_element_text(parent_elem, 'version'),
                get_element_text(parent_elem, 'relativePath') or "../pom.xml",
            )

        self._group_id = get_element_text(project, 'groupId')
        self.artifact_id = get_element_text(project, 'artifactId')
        self._version = get_element_text(project, 'version')
        self.name = get_element_text(project, 'name')
        self.packaging = get_element_text(project, 'packaging') or DEFAULT_TYPE
        if not self.artifact_id:
            raise POMParseError(name, "missing artifactId")

        self.properties: Dict[str, str] = {}
        props_elem = find_child(project, 'properties')
        if props_elem is not None:
            for prop in props_elem:
                if isinstance(prop.tag, str):
                    self.properties[local_name(prop.tag)] = (prop.text or '').strip()

        self.raw_dependencies: List[PomDependency] = [
            dep for dep in map(parse_dependency, find_children(find_child(project, 'dependencies'), 'dependency'))
            if dep is not None
        ]

        mgmt = find_child(project, 'dependencyManagement')
        mgmt_deps = find_child(mgmt, 'dependencies') if mgmt is not None else None
        self.raw_managed_dependencies: List[PomDependency] = [
            dep for dep in map(parse_dependency, find_children(mgmt_deps, 'dependency'))
            if dep is not None
        ]

        self.raw_repositories: List[Tuple[Optional[str], str]] = []
        for repo in find_children(find_child(project, 'repositories'), 'repository'):
            url = get_element_text(repo, 'url')
            if url:
                self.raw_repositories.append((get_element_text(repo, 'id'), url))

        self._lock = threading.RLock()
        self._parent: Optional['PomModel'] = None
        self._parent_resolved = False
        self._managed: Optional[Dict[Tuple, PomDependency]] = None
        self._effective_properties: Optional[Dict[str, str]] = None

    @classmethod
    def from_file(cls, path: Union[str, Path], root: Optional['PomModel'] = None,
                  lookup: Optional[ArtifactLookup] = None, loader: Optional[PomLoader] = None) -> 'PomModel':
        path = Path(path)
        try:
            content = path.read_bytes()
        except OSError as e:
            raise POMParseError(str(path), str(e)) from e
        return cls(content, root=root, lookup=lookup, source_path=path, loader=loader)

    # Identity

    @property
    def group_id(self) -> Optional[str]:
        if self._group_id is not None:
            return self._group_id
        return self.parent_ref.group_id if self.parent_ref else None

    @property
    def version(self) -> Optional[str]:
        if self._version is not None:
            return self._version
        return self.parent_ref.version if self.parent_ref else None

    @property
    def identity(self) -> Tuple[Optional[str], Optional[str], Optional[str]]:
        return (self.group_id, self.artifact_id, self.version)

    @property
    def id(self) -> str:
        return f"{self.group_id}:{self.artifact_id}:{self.packaging}:{self.version}"

    def app_identity(self) -> Tuple[str, Optional[str]]:
        """Application name and version derived from the descriptor: ``("group.artifact", version)``."""
        return f"{self.group_id}.{self.artifact_id}", self.version

    def __str__(self) -> str:
        return self.id

    # Parent

    @property
    def parent(self) -> Optional['PomModel']:
        with self._lock:
            if not self._parent_resolved:
                self._parent = self._resolve_parent()
                self._parent_resolved = True
            return self._parent

    def _resolve_parent(self) -> Optional['PomModel']:
        ref = self.parent_ref
        if ref is None:
            return None

        if self.root is not None and ref.identity == self.root.identity:
            return self.root

        local = self._local_parent(ref)
        if local is not None:
            return local

        lookup_error = None
        try:
            if self.loader is not None:
                parent = self.loader.get_pom(ref.group_id, ref.artifact_id, ref.version)
                if parent is not None:
                    return parent
            elif self.lookup is not None:
                path = self.lookup.fetch_artifact(str(ref), "pom")
                if path is not None:
                    return PomModel.from_file(path, root=self.root, lookup=self.lookup)
        except (ResolutionError, OSError, ValueError) as e:
            lookup_error = e

        if lookup_error is not None:
            logger.warning(f"Exception while resolving parent {ref} of pom {self}: {lookup_error}")
        else:
            logger.warning(f"Could not resolve parent POM {ref} of pom {self}")
        return None

    def _local_parent(self, ref: ParentRef) -> Optional['PomModel']:
        """Parent found through <relativePath> next to a descriptor read from disk."""
        if self.source_path is None:
            return None
        candidate = (self.source_path.parent / ref.relative_path)
        if candidate.is_dir():
            candidate = candidate / "pom.xml"
        if not candidate.is_file() or candidate.resolve() == self.source_path.resolve():
            return None
        try:
            pom = PomModel.from_file(candidate, root=self.root, lookup=self.lookup, loader=self.loader)
        except POMParseError as e:
            logger.debug(f"Error reading local parent POM {candidate}: {e}")
            return None
        if (pom.group_id, pom.artifact_id) != (ref.group_id, ref.artifact_id):
            logger.info(f"Local POM at {candidate} has different coordinates, will try repositories")
            return None
        logger.info(f"Found parent POM at: {candidate}")
        return pom

    def lineage(self) -> List['PomModel']:
        """This descriptor followed by its ancestors, nearest first. Raises CycleError if the chain loops."""
        chain: List['PomModel'] = []
        seen = set()
        node: Optional['PomModel'] = self
        while node is not None:
            if node.identity in seen:
                gavs = [':'.join(str(p) for p in pom.identity) for pom in chain]
                raise CycleError(gavs + [':'.join(str(p) for p in node.identity)])
            seen.add(node.identity)
            chain.append(node)
            node = node.parent
        return chain

    # Inherited tables

    @property
    def effective_properties(self) -> Dict[str, str]:
        """Declared properties, inherited from the parent chain; the child's own win."""
        with self._lock:
            if self._effective_properties is not None:
                return self._effective_properties
        props: Dict[str, str] = {}
        for pom in reversed(self.lineage()):
            props.update(pom.properties)
        with self._lock:
            self._effective_properties = props
            return props

    def managed_dependencies(self) -> Dict[Tuple, PomDependency]:
        """dependencyManagement merged bottom-up; entries of this descriptor override the parent's."""
        with self._lock:
            if self._managed is not None:
                return self._managed
        managed: Dict[Tuple, PomDependency] = {}
        for pom in reversed(self.lineage()):
            for dep in pom.raw_managed_dependencies:
                managed[dep.management_key] = dep
        with self._lock:
            self._managed = managed
            return managed

    def manage(self, dep: PomDependency) -> PomDependency:
        """Apply dependency management defaults (version, scope) to a dependency."""
        managed = self.managed_dependencies().get(dep.management_key)
        if managed is None:
            return dep
        version = dep.version if dep.version is not None else managed.version
        scope = dep.scope if dep.scope is not None else managed.scope
        exclusions = dep.exclusions or managed.exclusions
        if (version, scope, exclusions) == (dep.version, dep.scope, dep.exclusions):
            return dep
        return PomDependency(dep.group_id, dep.artifact_id, version, dep.type, dep.classifier,
                             scope, dep.optional, exclusions)

    # Outputs

    def resolve(self, s: Optional[str]) -> Optional[str]:
        """
        Substitute ``${...}`` placeholders in a single scan of ``s``.

        Project fields take precedence over (inherited) properties. Substituted
        values are not expanded again, and unknown placeholders are left as they are.
        """
        if s is None:
            return None

        table = dict(self.effective_properties)
        fields = {
            "project.groupId": self.group_id,
            "pom.groupId": self.group_id,
            "project.artifactId": self.artifact_id,
            "project.version": self.version,
            "pom.version": self.version,
            "version": self.version,
        }
        table.update((name, value) for name, value in fields.items() if value is not None)
        return PLACEHOLDER_PATTERN.sub(lambda m: table.get(m.group(1), m.group(0)), s)

    def get_dependencies(self, type: str = DEFAULT_TYPE) -> List[str]:
        """Coordinate strings of the runtime-relevant dependencies of the given type."""
        return [coords for coords, _ in self._filtered(type)]

    def dependencies(self, type: str = DEFAULT_TYPE) -> List[Dependency]:
        """Like :meth:`get_dependencies`, as Dependency objects carrying their scope."""
        result = []
        for coords, dep in self._filtered(type):
            try:
                coordinate = parse_coordinate(coords, dep.type)
            except ParseError as e:
                logger.warning(f"Skipping dependency of {self}: {e}")
                continue
            result.append(Dependency(coordinate, dep.scope, dep.optional))
        return result

    def _filtered(self, type: str) -> List[Tuple[str, PomDependency]]:
        result: List[Tuple[str, PomDependency]] = []
        seen = set()
        for raw in self.raw_dependencies:
            dep = self.manage(raw)
            if not include_dependency(dep):
                logger.debug(f"Skipping {dep.scope or 'optional'} dependency {dep.group_id}:{dep.artifact_id}")
                continue
            if dep.type != type:
                continue
            coords = self.resolve(dep.to_coords())
            if coords not in seen:
                seen.add(coords)
                result.append((coords, dep))
        return result

    def get_managed_dependencies(self) -> List[str]:
        """``group:artifact:type:classifier:version`` of every managed dependency."""
        return [self.resolve(dep.to_management_coords()) for dep in self.managed_dependencies().values()]

    def get_repositories(self) -> List[str]:
        """Declared repositories as ``id(url)`` tokens (or bare URLs)."""
        repositories = []
        for repo_id, url in self.raw_repositories:
            url = self.resolve(url)
            repositories.append(f"{repo_id}({url})" if repo_id else url)
        return repositories
