"""Shared fixtures: an on-disk ``file:`` repository and resolver settings."""

from pathlib import Path
from typing import Dict, List, Optional, Sequence

import pytest

from mvnresolve.settings import Settings

POM_NS = "http://maven.apache.org/POM/4.0.0"


def dependency_xml(coords: str, scope: Optional[str] = None, optional: bool = False,
                   exclusions: Sequence[str] = (), type: Optional[str] = None) -> str:
    """Render a <dependency> element from ``group:artifact[:version[:classifier]]``."""
    parts = coords.split(':')
    xml = f"<dependency><groupId>{parts[0]}</groupId><artifactId>{parts[1]}</artifactId>"
    if len(parts) > 2 and parts[2]:
        xml += f"<version>{parts[2]}</version>"
    if len(parts) > 3 and parts[3]:
        xml += f"<classifier>{parts[3]}</classifier>"
    if type:
        xml += f"<type>{type}</type>"
    if scope:
        xml += f"<scope>{scope}</scope>"
    if optional:
        xml += "<optional>true</optional>"
    if exclusions:
        xml += "<exclusions>"
        for ex in exclusions:
            g, a = ex.split(':')
            xml += f"<exclusion><groupId>{g}</groupId><artifactId>{a}</artifactId></exclusion>"
        xml += "</exclusions>"
    return xml + "</dependency>"


def pom_xml(coords: Optional[str] = None, dependencies: Sequence[str] = (), parent: Optional[str] = None,
            managed: Sequence[str] = (), properties: Optional[Dict[str, str]] = None,
            repositories: Sequence[str] = (), packaging: Optional[str] = None) -> str:
    """Render a pom.xml. ``dependencies``/``managed`` are <dependency> snippets (see dependency_xml)."""
    xml = f'<?xml version="1.0" encoding="UTF-8"?>\n<project xmlns="{POM_NS}">\n<modelVersion>4.0.0</modelVersion>\n'
    if parent:
        g, a, v = parent.split(':')
        xml += f"<parent><groupId>{g}</groupId><artifactId>{a}</artifactId><version>{v}</version></parent>\n"
    if coords:
        parts = coords.split(':')
        if parts[0]:
            xml += f"<groupId>{parts[0]}</groupId>"
        xml += f"<artifactId>{parts[1]}</artifactId>"
        if len(parts) > 2 and parts[2]:
            xml += f"<version>{parts[2]}</version>"
        xml += "\n"
    if packaging:
        xml += f"<packaging>{packaging}</packaging>\n"
    if properties:
        xml += "<properties>" + "".join(f"<{k}>{v}</{k}>" for k, v in properties.items()) + "</properties>\n"
    if managed:
        xml += "<dependencyManagement><dependencies>" + "".join(managed) + "</dependencies></dependencyManagement>\n"
    if dependencies:
        xml += "<dependencies>" + "".join(dependencies) + "</dependencies>\n"
    if repositories:
        xml += "<repositories>"
        for repo in repositories:
            repo_id, url = repo.split('=', 1)
            xml += f"<repository><id>{repo_id}</id><url>{url}</url></repository>"
        xml += "</repositories>\n"
    return xml + "</project>\n"


class FileRepository:
    """A Maven repository layout on disk, served through a ``file:`` URL."""

    def __init__(self, root: Path, repo_id: str = "test"):
        self.root = root
        self.id = repo_id
        self.root.mkdir(parents=True, exist_ok=True)
        self._versions: Dict[str, List[str]] = {}

    @property
    def url(self) -> str:
        return f"file:{self.root}"

    @property
    def token(self) -> str:
        return f"{self.id}({self.url})"

    def directory(self, group: str, artifact: str) -> Path:
        return self.root.joinpath(*group.split('.'), artifact)

    def add(self, coords: str, dependencies: Sequence[str] = (), jar: bool = True, pom: bool = True,
            **pom_kwargs) -> Path:
        group, artifact, version = coords.split(':')
        version_dir = self.directory(group, artifact) / version
        version_dir.mkdir(parents=True, exist_ok=True)
        if pom:
            (version_dir / f"{artifact}-{version}.pom").write_text(
                pom_xml(coords, dependencies=dependencies, **pom_kwargs))
        if jar:
            (version_dir / f"{artifact}-{version}.jar").write_bytes(f"jar {coords}".encode())

        versions = self._versions.setdefault(f"{group}:{artifact}", [])
        if version not in versions:
            versions.append(version)
        self._write_metadata(group, artifact, versions)
        return version_dir

    def _write_metadata(self, group: str, artifact: str, versions: List[str]):
        entries = "".join(f"<version>{v}</version>" for v in versions)
        (self.directory(group, artifact) / "maven-metadata.xml").write_text(
            f"<metadata><groupId>{group}</groupId><artifactId>{artifact}</artifactId>"
            f"<versioning><versions>{entries}</versions></versioning></metadata>")


@pytest.fixture
def settings(tmp_path):
    """Settings isolated from the user's environment and home directory."""
    return Settings(
        local_repository=tmp_path / "local",
        cache_dir=tmp_path / "cache",
        user_repository=tmp_path / "m2",
    )


@pytest.fixture
def repo(tmp_path):
    return FileRepository(tmp_path / "remote")
