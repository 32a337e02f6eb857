"""Core data models for mvnresolve."""

from dataclasses import dataclass, field
from pathlib import Path
from typing import Iterator, List, Optional

from packageurl import PackageURL

from .coordinates import Coordinate

COMPILE = "compile"
RUNTIME = "runtime"
PROVIDED = "provided"
SYSTEM = "system"
TEST = "test"

# Narrower scopes rank higher. provided and system are treated alike.
SCOPE_RANK = {COMPILE: 0, RUNTIME: 1, PROVIDED: 2, SYSTEM: 2, TEST: 3}


def normalize_scope(scope: Optional[str]) -> str:
    """Lowercase a scope; absent or empty means compile."""
    return scope.strip().lower() if scope and scope.strip() else COMPILE


def derive_scope(importer_scope: Optional[str], declared_scope: Optional[str]) -> str:
    """Effective scope of a dependency reached through an importer: never wider than the importer's."""
    importer = normalize_scope(importer_scope)
    declared = normalize_scope(declared_scope)
    return max(importer, declared, key=lambda s: SCOPE_RANK.get(s, SCOPE_RANK[RUNTIME]))


@dataclass
class Dependency:
    """A coordinate together with its scope and optionality."""

    coordinate: Coordinate
    scope: str = COMPILE
    optional: bool = False

    def __post_init__(self):
        self.scope = normalize_scope(self.scope)

    def __str__(self) -> str:
        return f"{self.coordinate} ({self.scope}{', optional' if self.optional else ''})"


@dataclass(frozen=True)
class ResolvedArtifact:
    """An artifact with an exact version and its file in the local repository."""

    coordinate: Coordinate
    path: Path

    @property
    def purl(self) -> str:
        """Package URL, e.g. ``pkg:maven/com.acme/foo@1.0?type=jar``."""
        qualifiers = {}
        if self.coordinate.classifier:
            qualifiers['classifier'] = self.coordinate.classifier
        if self.coordinate.type != 'jar':
            qualifiers['type'] = self.coordinate.type
        return PackageURL(
            type='maven',
            namespace=self.coordinate.group,
            name=self.coordinate.artifact,
            version=self.coordinate.version,
            qualifiers=qualifiers or None,
        ).to_string()

    def __str__(self) -> str:
        return f"{self.coordinate.to_coords()} -> {self.path}"


@dataclass(eq=False)
class DependencyNode:
    """A node of the conflict-resolved dependency tree."""

    coordinate: Coordinate
    requested: Coordinate
    scope: str = COMPILE
    optional: bool = False
    depth: int = 1
    parent: Optional['DependencyNode'] = field(default=None, repr=False)
    children: List['DependencyNode'] = field(default_factory=list, repr=False)
    path: Optional[Path] = None

    def add_child(self, child: 'DependencyNode') -> None:
        """Add a child dependency to this node."""
        child.parent = self
        self.children.append(child)

    @property
    def exclusions(self):
        """Exclusions in force for this node's subtree (its own plus its ancestors')."""
        node, exclusions = self, set()
        while node is not None:
            exclusions.update(node.requested.exclusions)
            node = node.parent
        return exclusions

    def is_excluded(self, group: str, artifact: str) -> bool:
        return any(ex.matches(group, artifact) for ex in self.exclusions)

    def ancestors(self) -> Iterator['DependencyNode']:
        node = self.parent
        while node is not None:
            yield node
            node = node.parent

    def walk(self) -> Iterator['DependencyNode']:
        """Depth-first, declaration order, this node first."""
        yield self
        for child in self.children:
            yield from child.walk()

    def artifact(self) -> Optional[ResolvedArtifact]:
        if self.path is None:
            return None
        return ResolvedArtifact(self.coordinate, self.path)

    def __str__(self) -> str:
        return self.coordinate.to_coords()
