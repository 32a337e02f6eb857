"""Output formatters for resolution results."""

import logging
from pathlib import Path
from typing import Collection, Dict, List

from .coordinates import Coordinate
from .models import DependencyNode, ResolvedArtifact

logger = logging.getLogger(__name__)


class OutputFormatter:
    """Formatter for various output formats."""

    @staticmethod
    def format_as_paths(paths: Collection[Path]) -> str:
        """Format paths as a flat list (one per line)."""
        if not paths:
            return ''
        return '\n'.join(str(p) for p in paths) + '\n'

    @staticmethod
    def format_as_classpath(paths: Collection[Path], separator: str = ':') -> str:
        return separator.join(str(p) for p in paths) + '\n'

    @staticmethod
    def format_as_purls(roots: List[DependencyNode]) -> str:
        """One package URL per resolved artifact, depth first."""
        lines = []
        for root in roots:
            for node in root.walk():
                artifact = node.artifact() or ResolvedArtifact(node.coordinate, Path())
                if artifact.purl not in lines:
                    lines.append(artifact.purl)
        return '\n'.join(lines) + '\n' if lines else ''

    @staticmethod
    def format_roots(resolved: Dict[Coordinate, List[Path]]) -> str:
        """Each root followed by the paths it contributes, indented."""
        lines = []
        for coordinate, paths in resolved.items():
            lines.append(coordinate.to_coords())
            lines.extend(f"    {p}" for p in paths)
        return '\n'.join(lines) + '\n' if lines else ''

    @staticmethod
    def format_tree(roots: List[DependencyNode]) -> str:
        """
        Format dependency trees in Maven tree style::

            com.acme:app:1.0
            +- com.acme:lib:2.1
            |  \\- org.slf4j:slf4j-api:1.7.36
            \\- com.acme:util:1.0:jdk8
        """
        lines = []
        for root in roots:
            lines.append(str(root))
            for i, child in enumerate(root.children):
                lines.extend(OutputFormatter._format_node(child, "", i == len(root.children) - 1))
        return '\n'.join(lines) + '\n' if lines else ''

    @staticmethod
    def _format_node(node: DependencyNode, prefix: str, is_last: bool) -> List[str]:
        """Format a single node and its subtree."""
        connector = "\\- " if is_last else "+- "
        lines = [f"{prefix}{connector}{node}"]

        child_prefix = prefix + ("   " if is_last else "|  ")
        for i, child in enumerate(node.children):
            lines.extend(OutputFormatter._format_node(child, child_prefix, i == len(node.children) - 1))
        return lines
