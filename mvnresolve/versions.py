"""Maven version ordering and version ranges."""

import functools
import re
from dataclasses import dataclass
from typing import Iterable, List, Optional, Tuple, Union

from .errors import ParseError

# Qualifier ordering; '' is a plain release.
QUALIFIERS = ['alpha', 'beta', 'milestone', 'rc', 'snapshot', '', 'sp']
QUALIFIER_ALIASES = {
    'a': 'alpha',
    'b': 'beta',
    'm': 'milestone',
    'cr': 'rc',
    'ga': '',
    'final': '',
    'release': '',
}
RELEASE_RANK = QUALIFIERS.index('')

Token = Tuple[int, Union[int, str]]


def _tokenize(version: str) -> List[Token]:
    tokens: List[Token] = []
    for part in re.findall(r'\d+|[a-z]+', version.lower()):
        if part.isdigit():
            tokens.append((1, int(part)))
        else:
            tokens.append((0, QUALIFIER_ALIASES.get(part, part)))
    return tokens


def _qualifier_rank(qualifier: str) -> Tuple[int, str]:
    if qualifier in QUALIFIERS:
        return (QUALIFIERS.index(qualifier), '')
    # Unknown qualifiers sort after all known ones, lexically.
    return (len(QUALIFIERS), qualifier)


def _compare_to_null(token: Token) -> int:
    kind, value = token
    if kind == 1:
        return 1 if value > 0 else 0
    rank = _qualifier_rank(value)
    return (rank > (RELEASE_RANK, '')) - (rank < (RELEASE_RANK, ''))


def _compare_tokens(left: Token, right: Token) -> int:
    if left[0] != right[0]:
        # A number always outranks a qualifier at the same position.
        return 1 if left[0] == 1 else -1
    if left[0] == 1:
        return (left[1] > right[1]) - (left[1] < right[1])
    lrank, rrank = _qualifier_rank(left[1]), _qualifier_rank(right[1])
    return (lrank > rrank) - (lrank < rrank)


@functools.total_ordering
class MavenVersion:
    """A version string with Maven ordering semantics (``1.0 == 1.0.0 == 1.0.Final``)."""

    def __init__(self, version: str):
        self.original = version.strip()
        self.tokens = _tokenize(self.original)

    def compare(self, other: 'MavenVersion') -> int:
        """Returns >0 if self > other, <0 if self < other, 0 if equal."""
        length = max(len(self.tokens), len(other.tokens))
        for i in range(length):
            if i >= len(self.tokens):
                result = -_compare_to_null(other.tokens[i])
            elif i >= len(other.tokens):
                result = _compare_to_null(self.tokens[i])
            else:
                result = _compare_tokens(self.tokens[i], other.tokens[i])
            if result:
                return result
        return 0

    def __eq__(self, other) -> bool:
        if not isinstance(other, MavenVersion):
            return NotImplemented
        return self.compare(other) == 0

    def __lt__(self, other) -> bool:
        if not isinstance(other, MavenVersion):
            return NotImplemented
        return self.compare(other) < 0

    def __hash__(self) -> int:
        # Strip trailing "null" tokens so equal versions hash alike.
        tokens = list(self.tokens)
        while tokens and _compare_to_null(tokens[-1]) == 0:
            tokens.pop()
        return hash(tuple(tokens))

    def __str__(self) -> str:
        return self.original

    def __repr__(self) -> str:
        return f"MavenVersion({self.original!r})"


def compare_versions(v1: str, v2: str) -> int:
    """Compare two version strings. Returns >0 if v1 > v2, <0 if v1 < v2, 0 if equal."""
    return MavenVersion(v1).compare(MavenVersion(v2))


@dataclass(frozen=True)
class Restriction:
    """One bracketed interval of a version range."""

    lower: Optional[MavenVersion]
    lower_inclusive: bool
    upper: Optional[MavenVersion]
    upper_inclusive: bool

    def contains(self, version: MavenVersion) -> bool:
        if self.lower is not None:
            result = version.compare(self.lower)
            if result < 0 or (result == 0 and not self.lower_inclusive):
                return False
        if self.upper is not None:
            result = version.compare(self.upper)
            if result > 0 or (result == 0 and not self.upper_inclusive):
                return False
        return True


RANGE_PATTERN = re.compile(r'\s*([\[(])([^\[\]()]*)([\])])\s*(,|$)')


class VersionRange:
    """A Maven version range such as ``[1.0,2.0)``, ``(,1.5]`` or ``[1.0,2.0),[3.0,)``."""

    def __init__(self, spec: str, restrictions: List[Restriction]):
        self.spec = spec
        self.restrictions = restrictions

    @classmethod
    def parse(cls, spec: str) -> 'VersionRange':
        """
        Parse a range specification.

        A plain version (no brackets) is treated as the exact range ``[v]``.

        Raises:
            ParseError: If the specification is malformed
        """
        text = spec.strip()
        if not text:
            raise ParseError("Empty version range", spec)
        if text[0] not in '[(':
            version = MavenVersion(text)
            return cls(spec, [Restriction(version, True, version, True)])

        restrictions = []
        pos = 0
        while pos < len(text):
            match = RANGE_PATTERN.match(text, pos)
            if not match:
                raise ParseError("Malformed version range", spec)
            restrictions.append(cls._parse_restriction(match.group(1), match.group(2), match.group(3), spec))
            pos = match.end()
        return cls(spec, restrictions)

    @staticmethod
    def _parse_restriction(open_: str, inner: str, close: str, spec: str) -> Restriction:
        lower_inclusive = open_ == '['
        upper_inclusive = close == ']'

        if ',' not in inner:
            bound = inner.strip()
            if not bound or not (lower_inclusive and upper_inclusive):
                raise ParseError("Single version must be surrounded by []", spec)
            version = MavenVersion(bound)
            return Restriction(version, True, version, True)

        lower_str, upper_str = (part.strip() for part in inner.split(',', 1))
        lower = MavenVersion(lower_str) if lower_str else None
        upper = MavenVersion(upper_str) if upper_str else None
        if lower is not None and upper is not None and lower > upper:
            raise ParseError("Range defies version ordering", spec)
        return Restriction(lower, lower_inclusive, upper, upper_inclusive)

    def contains(self, version: Union[str, MavenVersion]) -> bool:
        if isinstance(version, str):
            version = MavenVersion(version)
        return any(r.contains(version) for r in self.restrictions)

    def highest(self, candidates: Iterable[str]) -> Optional[str]:
        """Return the highest candidate inside this range, or None."""
        best: Optional[MavenVersion] = None
        for candidate in candidates:
            version = MavenVersion(candidate)
            if self.contains(version) and (best is None or version > best):
                best = version
        return best.original if best is not None else None

    def __str__(self) -> str:
        return self.spec

    def __repr__(self) -> str:
        return f"VersionRange({self.spec!r})"
