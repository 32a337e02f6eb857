"""Parsing and serialization of artifact coordinate strings.

Grammar::

    group:artifact[:version][:classifier](excl1,excl2,...)

An omitted (or empty) version stands for "any version", the open range
``[0,)``. Exclusions are ``group:artifact`` pairs.
"""

import re
from dataclasses import dataclass, field, replace
from typing import FrozenSet, Optional, Tuple

from .errors import ParseError

ANY_VERSION = "[0,)"
DEFAULT_TYPE = "jar"

COORDINATE_PATTERN = re.compile(
    r'(?P<group>[^:()]+)'
    r':(?P<artifact>[^:()]+)'
    r'(?::(?P<version>\(?[^:(]*))?'
    r'(?::(?P<classifier>[^:(]+))?'
    r'(?:\((?P<exclusions>[^()]*)\))?'
)


def is_version_range(version: Optional[str]) -> bool:
    """Return True if the version is a range like ``[1.0,2.0)``."""
    return bool(version) and version[0] in '(['


@dataclass(frozen=True, order=True)
class Exclusion:
    """A (group, artifact) pair pruned from a dependency's subtree. ``*`` matches anything."""

    group: str
    artifact: str

    def matches(self, group: str, artifact: str) -> bool:
        return self.group in ('*', group) and self.artifact in ('*', artifact)

    def __str__(self) -> str:
        return f"{self.group}:{self.artifact}"


@dataclass(frozen=True)
class Coordinate:
    """Structured identifier of one artifact."""

    group: str
    artifact: str
    version: str = ANY_VERSION
    classifier: Optional[str] = None
    type: str = DEFAULT_TYPE
    exclusions: FrozenSet[Exclusion] = field(default_factory=frozenset, compare=False)

    def __post_init__(self):
        # Normalize empty classifiers and versions so equality is stable.
        if not self.classifier:
            object.__setattr__(self, 'classifier', None)
        if not self.version:
            object.__setattr__(self, 'version', ANY_VERSION)
        if not isinstance(self.exclusions, frozenset):
            object.__setattr__(self, 'exclusions', frozenset(self.exclusions))

    @property
    def is_any_version(self) -> bool:
        return self.version == ANY_VERSION

    @property
    def is_range(self) -> bool:
        return is_version_range(self.version)

    @property
    def is_snapshot(self) -> bool:
        return self.version.endswith('-SNAPSHOT')

    @property
    def key(self) -> Tuple[str, str, Optional[str], str]:
        """Identity used for conflict resolution (everything but the version)."""
        return (self.group, self.artifact, self.classifier, self.type)

    @property
    def management_key(self) -> Tuple[str, str, str, Optional[str]]:
        return (self.group, self.artifact, self.type, self.classifier)

    @property
    def memo_key(self) -> Tuple:
        """Full-field key, exclusions included."""
        return (self.group, self.artifact, self.version, self.classifier, self.type,
                tuple(sorted(self.exclusions)))

    @property
    def gav(self) -> str:
        return f"{self.group}:{self.artifact}:{self.version}"

    def with_version(self, version: str) -> 'Coordinate':
        return replace(self, version=version)

    def with_type(self, type: str) -> 'Coordinate':
        return replace(self, type=type)

    def without_exclusions(self) -> 'Coordinate':
        return replace(self, exclusions=frozenset())

    def excludes(self, group: str, artifact: str) -> bool:
        return any(ex.matches(group, artifact) for ex in self.exclusions)

    def to_coords(self) -> str:
        """Format as ``group:artifact:version[:classifier]`` (the tree-printing form)."""
        coords = f"{self.group}:{self.artifact}:{self.version}"
        if self.classifier:
            coords += f":{self.classifier}"
        return coords

    def serialize(self) -> str:
        version = '' if self.is_any_version else self.version
        text = f"{self.group}:{self.artifact}"
        if version or self.classifier:
            text += f":{version}"
        if self.classifier:
            text += f":{self.classifier}"
        if self.exclusions:
            text += '(' + ','.join(str(ex) for ex in sorted(self.exclusions)) + ')'
        return text

    def __str__(self) -> str:
        return self.serialize()


def parse_exclusions(text: Optional[str], literal: Optional[str] = None) -> FrozenSet[Exclusion]:
    """Parse a comma-separated list of ``group:artifact`` exclusions."""
    if text is None or not text.strip():
        return frozenset()

    exclusions = set()
    for item in text.split(','):
        parts = item.strip().split(':')
        if len(parts) != 2 or not parts[0] or not parts[1]:
            raise ParseError(
                f"Illegal exclusion dependency coordinates (in exclusion '{item.strip()}')",
                literal or text,
            )
        exclusions.add(Exclusion(parts[0], parts[1]))
    return frozenset(exclusions)


def parse_coordinate(text: str, type: str = DEFAULT_TYPE) -> Coordinate:
    """
    Parse a coordinate string.

    Args:
        text: Coordinate in ``group:artifact[:version][:classifier](exclusions)`` form
        type: Artifact type (packaging extension), ``jar`` by default

    Returns:
        The parsed Coordinate

    Raises:
        ParseError: If the string does not follow the grammar
    """
    if text is None:
        raise ParseError("Could not parse dependency", repr(text))
    text = text.strip()
    match = COORDINATE_PATTERN.fullmatch(text)
    if not match:
        raise ParseError("Could not parse dependency", text)

    group = match.group('group').strip()
    artifact = match.group('artifact').strip()
    if not group or not artifact:
        raise ParseError("Could not parse dependency", text)

    version = (match.group('version') or '').strip() or ANY_VERSION
    classifier = (match.group('classifier') or '').strip() or None
    exclusions = parse_exclusions(match.group('exclusions'), literal=text)

    return Coordinate(
        group=group,
        artifact=artifact,
        version=version,
        classifier=classifier,
        type=type or DEFAULT_TYPE,
        exclusions=exclusions,
    )
