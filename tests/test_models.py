"""Tests for scopes, dependency nodes and output formatting."""

from pathlib import Path

import pytest

from mvnresolve.coordinates import parse_coordinate
from mvnresolve.formatters import OutputFormatter
from mvnresolve.models import Dependency, DependencyNode, ResolvedArtifact, derive_scope


def node(coords, requested=None, **kwargs):
    return DependencyNode(parse_coordinate(coords), parse_coordinate(requested or coords), **kwargs)


class TestScopes:

    @pytest.mark.parametrize("importer,declared,expected", [
        ("compile", "compile", "compile"),
        ("compile", "runtime", "runtime"),
        ("runtime", "compile", "runtime"),
        ("runtime", "runtime", "runtime"),
        ("compile", None, "compile"),
        (None, "runtime", "runtime"),
        ("provided", "compile", "provided"),
        ("compile", "test", "test"),
    ])
    def test_derive_scope(self, importer, declared, expected):
        assert derive_scope(importer, declared) == expected

    def test_dependency_normalizes_scope(self):
        assert Dependency(parse_coordinate("g:a:1"), scope=" Runtime ").scope == "runtime"
        assert Dependency(parse_coordinate("g:a:1"), scope="").scope == "compile"


class TestDependencyNode:

    def test_exclusions_inherited_from_ancestors(self):
        root = node("g:root:1", "g:root:1(x:y)")
        child = node("g:child:1", "g:child:1(z:*)")
        grandchild = node("g:leaf:1")
        root.add_child(child)
        child.add_child(grandchild)

        assert grandchild.is_excluded("x", "y")
        assert grandchild.is_excluded("z", "anything")
        assert not grandchild.is_excluded("x", "other")
        assert not root.is_excluded("z", "anything")
        assert list(grandchild.ancestors()) == [child, root]

    def test_walk_is_depth_first(self):
        root = node("g:r:1")
        a, b, c = node("g:a:1"), node("g:b:1"), node("g:c:1")
        root.add_child(a)
        a.add_child(c)
        root.add_child(b)

        assert [str(n) for n in root.walk()] == ["g:r:1", "g:a:1", "g:c:1", "g:b:1"]

    def test_purl(self):
        assert ResolvedArtifact(parse_coordinate("com.acme:foo:1.0"), Path("x")).purl == \
            "pkg:maven/com.acme/foo@1.0"
        assert ResolvedArtifact(parse_coordinate("com.acme:foo:1.0:jdk8", "zip"), Path("x")).purl == \
            "pkg:maven/com.acme/foo@1.0?classifier=jdk8&type=zip"


class TestOutputFormatter:

    def test_format_tree(self):
        root = node("com.acme:app:1.0")
        lib, util = node("com.acme:lib:2.1"), node("com.acme:util:1.0:jdk8")
        root.add_child(lib)
        lib.add_child(node("org.slf4j:slf4j-api:1.7.36"))
        root.add_child(util)

        assert OutputFormatter.format_tree([root]) == (
            "com.acme:app:1.0\n"
            "+- com.acme:lib:2.1\n"
            "|  \\- org.slf4j:slf4j-api:1.7.36\n"
            "\\- com.acme:util:1.0:jdk8\n"
        )

    def test_format_tree_multiple_roots_and_nested_last(self):
        a, b = node("g:a:1"), node("g:b:1")
        x = node("g:x:1")
        a.add_child(x)
        x.add_child(node("g:y:1"))

        assert OutputFormatter.format_tree([a, b]) == "g:a:1\n\\- g:x:1\n   \\- g:y:1\ng:b:1\n"

    def test_empty(self):
        assert OutputFormatter.format_tree([]) == ''
        assert OutputFormatter.format_as_paths([]) == ''
        assert OutputFormatter.format_as_purls([]) == ''

    def test_paths_and_classpath(self):
        paths = [Path("/r/a.jar"), Path("/r/b.jar")]

        assert OutputFormatter.format_as_paths(paths) == "/r/a.jar\n/r/b.jar\n"
        assert OutputFormatter.format_as_classpath(paths) == "/r/a.jar:/r/b.jar\n"
        assert OutputFormatter.format_as_classpath(paths, separator=';') == "/r/a.jar;/r/b.jar\n"

    def test_purls_deduplicated(self):
        a, b = node("g:a:1"), node("g:b:1")
        a.add_child(node("g:c:1"))
        b.add_child(node("g:c:1"))

        assert OutputFormatter.format_as_purls([a, b]) == "pkg:maven/g/a@1\npkg:maven/g/c@1\npkg:maven/g/b@1\n"

    def test_format_roots(self):
        result = {parse_coordinate("g:a:1"): [Path("/r/a.jar"), Path("/r/c.jar")]}

        assert OutputFormatter.format_roots(result) == "g:a:1\n    /r/a.jar\n    /r/c.jar\n"
