"""Repository definitions and the registry that resolves repository tokens."""

import logging
import re
from dataclasses import dataclass, replace
from typing import Dict, Iterable, List, Optional

from .errors import ParseError
from .proxy import Proxy, ProxySelector

logger = logging.getLogger(__name__)

UPDATE_POLICY_NEVER = "never"
UPDATE_POLICY_ALWAYS = "always"

CHECKSUM_POLICY_WARN = "warn"
CHECKSUM_POLICY_IGNORE = "ignore"
CHECKSUM_POLICY_FAIL = "fail"

DEFAULT_REPOSITORIES = ["central"]

REPO_PATTERN = re.compile(r'(?P<id>[^(]+)(?:\((?P<url>[^)]+)\))?')


@dataclass(frozen=True)
class RepositoryPolicy:
    """How a repository is used for one kind of artifact (releases or snapshots)."""

    enabled: bool = True
    update_policy: str = UPDATE_POLICY_NEVER
    checksum_policy: str = CHECKSUM_POLICY_WARN


DISABLED_POLICY = RepositoryPolicy(enabled=False, update_policy=UPDATE_POLICY_NEVER,
                                   checksum_policy=CHECKSUM_POLICY_WARN)


@dataclass(frozen=True)
class Repository:
    """A remote (or file:) repository. Value equality is used for deduplication."""

    id: str
    url: str
    release_policy: RepositoryPolicy = RepositoryPolicy()
    snapshot_policy: RepositoryPolicy = DISABLED_POLICY
    proxy: Optional[Proxy] = None

    @property
    def is_file(self) -> bool:
        return self.url.startswith("file:")

    def policy(self, snapshot: bool) -> RepositoryPolicy:
        return self.snapshot_policy if snapshot else self.release_policy

    def with_proxy(self, proxy: Optional[Proxy]) -> 'Repository':
        return replace(self, proxy=proxy)

    def __str__(self) -> str:
        return f"{self.id} ({self.url})"


def well_known_repositories(user_repository) -> Dict[str, str]:
    """Aliases understood in repository tokens."""
    return {
        "central": "central(https://repo1.maven.org/maven2/)",
        "central-http": "central(http://repo1.maven.org/maven2/)",
        "jcenter": "jcenter(https://jcenter.bintray.com/)",
        "jcenter-http": "jcenter(http://jcenter.bintray.com/)",
        "local": f"local(file:{user_repository})",
    }


class RepositoryRegistry:
    """
    Resolves repository tokens (``id`` or ``id(url)``) into Repository objects.

    The alias table and the session flags come from the settings the registry
    is constructed with.
    """

    def __init__(self, settings, proxy_selector: Optional[ProxySelector] = None):
        self.force_refresh = settings.force_refresh
        self.allow_snapshots = settings.allow_snapshots
        self.well_known = well_known_repositories(settings.user_repository)
        self.proxy_selector = proxy_selector

    def release_policy(self, token: str) -> RepositoryPolicy:
        update = UPDATE_POLICY_ALWAYS if self.force_refresh else UPDATE_POLICY_NEVER
        return RepositoryPolicy(True, update, CHECKSUM_POLICY_WARN)

    def snapshot_policy(self, token: str) -> RepositoryPolicy:
        if not self.allow_snapshots:
            return DISABLED_POLICY
        return self.release_policy(token)

    def create(self, token: str) -> Repository:
        """
        Resolve one repository token.

        Raises:
            ParseError: If the token is malformed
        """
        return self._create(token, self.release_policy(token), self.snapshot_policy(token))

    def _create(self, token: str, release: RepositoryPolicy, snapshot: RepositoryPolicy) -> Repository:
        match = REPO_PATTERN.fullmatch(token.strip()) if token else None
        if not match:
            raise ParseError("Could not parse repository", str(token))

        repo_id = match.group("id").strip()
        url = match.group("url")
        if url is None and repo_id in self.well_known:
            return self._create(self.well_known[repo_id], release, snapshot)
        if url is None:
            url = repo_id

        if url.startswith("file:"):
            # local repositories are trusted
            release = replace(release, checksum_policy=CHECKSUM_POLICY_IGNORE)
            snapshot = replace(snapshot, checksum_policy=CHECKSUM_POLICY_IGNORE)

        repository = Repository(repo_id, url, release, snapshot)
        if self.proxy_selector is not None:
            proxy = self.proxy_selector.get_proxy(url)
            if proxy is not None:
                logger.debug(f"Setting proxy: '{proxy}' for repository: {repository}")
                repository = repository.with_proxy(proxy)
        return repository

    def resolve(self, tokens: Optional[Iterable[str]]) -> List[Repository]:
        """Resolve tokens into an ordered list of distinct repositories."""
        tokens = list(tokens) if tokens else list(DEFAULT_REPOSITORIES)

        repositories: List[Repository] = []
        for token in tokens:
            repository = self.create(token)
            if repository not in repositories:
                repositories.append(repository)
        return repositories
