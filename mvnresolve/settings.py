"""Process-scoped configuration.

A :class:`Settings` instance is built once (usually by the host or the CLI)
and passed explicitly to every component that needs it.
"""

import logging
import os
import re
from dataclasses import dataclass, field
from pathlib import Path
from typing import Dict, List, Mapping, Optional

logger = logging.getLogger(__name__)

PROP_LOCAL_REPO = "mvnresolve.local"
PROP_OFFLINE = "mvnresolve.offline"
PROP_CONNECT_TIMEOUT = "mvnresolve.connect.timeout"
PROP_REQUEST_TIMEOUT = "mvnresolve.request.timeout"
PROP_RESET = "mvnresolve.reset"
PROP_ALLOW_SNAPSHOTS = "mvnresolve.allow.snapshots"

ENV_LOCAL_REPO = "MVNRESOLVE_LOCAL_REPO"
ENV_CONNECT_TIMEOUT = "MVNRESOLVE_CONNECT_TIMEOUT"
ENV_REQUEST_TIMEOUT = "MVNRESOLVE_REQUEST_TIMEOUT"
ENV_REPOS = "MVNRESOLVE_REPOS"
ENV_CACHE_DIR = "MVNRESOLVE_CACHE_DIR"

DEFAULT_CONNECT_TIMEOUT_MS = 10000
DEFAULT_REQUEST_TIMEOUT_MS = 60000
DEPS_CACHE_NAME = "deps"


def empty_to_none(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    value = value.strip()
    return value or None


def is_flag_set(value: Optional[str], default: bool = False) -> bool:
    """A flag property counts as set when it is present and empty, or "true"."""
    if value is None:
        return default
    return value.strip() == "" or value.strip().lower() == "true"


def expand_home(path: str) -> str:
    return os.path.expanduser(path) if path.startswith("~/") or path == "~" else path


def split_repositories(value: Optional[str]) -> List[str]:
    if not value:
        return []
    return [item for item in re.split(r'[,\s]\s*', value.strip()) if item]


def default_user_repository() -> Path:
    return Path.home() / ".m2" / "repository"


def default_cache_dir() -> Path:
    return Path.home() / ".cache" / "mvnresolve"


@dataclass
class Settings:
    """Resolution settings shared (read-only) by every component of a session."""

    local_repository: Optional[Path] = None
    cache_dir: Path = field(default_factory=default_cache_dir)
    user_repository: Path = field(default_factory=default_user_repository)
    offline: bool = False
    connect_timeout_ms: int = DEFAULT_CONNECT_TIMEOUT_MS
    request_timeout_ms: int = DEFAULT_REQUEST_TIMEOUT_MS
    force_refresh: bool = False
    allow_snapshots: bool = False
    repositories: List[str] = field(default_factory=list)
    environment: Mapping[str, str] = field(default_factory=dict)
    properties: Mapping[str, str] = field(default_factory=dict)

    @property
    def timeouts(self):
        """(connect, read) timeout tuple in seconds, as requests expects."""
        return (self.connect_timeout_ms / 1000.0, self.request_timeout_ms / 1000.0)

    @property
    def default_local_repository(self) -> Path:
        return self.cache_dir / DEPS_CACHE_NAME

    @classmethod
    def load(
        cls,
        env: Optional[Mapping[str, str]] = None,
        properties: Optional[Mapping[str, str]] = None,
        repositories: Optional[List[str]] = None,
        **overrides,
    ) -> 'Settings':
        """
        Build settings from properties and environment variables.

        Properties take precedence over environment variables. Explicit keyword
        overrides take precedence over both.

        Args:
            env: Environment mapping (defaults to os.environ)
            properties: Property mapping (``-Dkey=value`` style)
            repositories: Repository tokens declared by the host
            **overrides: Field values that win over everything else

        Returns:
            A populated Settings instance
        """
        env = dict(os.environ if env is None else env)
        props: Dict[str, str] = dict(properties or {})

        def property_or_env(prop: str, var: str) -> Optional[str]:
            value = props.get(prop)
            if value is None:
                value = empty_to_none(env.get(var))
            return value

        local = empty_to_none(property_or_env(PROP_LOCAL_REPO, ENV_LOCAL_REPO))
        cache_dir = empty_to_none(env.get(ENV_CACHE_DIR))

        kwargs = dict(
            local_repository=Path(expand_home(local)).absolute() if local else None,
            cache_dir=Path(expand_home(cache_dir)) if cache_dir else default_cache_dir(),
            offline=is_flag_set(props.get(PROP_OFFLINE)),
            connect_timeout_ms=_parse_timeout(
                property_or_env(PROP_CONNECT_TIMEOUT, ENV_CONNECT_TIMEOUT), DEFAULT_CONNECT_TIMEOUT_MS),
            request_timeout_ms=_parse_timeout(
                property_or_env(PROP_REQUEST_TIMEOUT, ENV_REQUEST_TIMEOUT), DEFAULT_REQUEST_TIMEOUT_MS),
            force_refresh=is_flag_set(props.get(PROP_RESET)),
            allow_snapshots=is_flag_set(props.get(PROP_ALLOW_SNAPSHOTS)),
            repositories=split_repositories(env.get(ENV_REPOS)) + list(repositories or []),
            environment=env,
            properties=props,
        )
        kwargs.update(overrides)
        settings = cls(**kwargs)

        logger.debug(f"Settings - Offline: {settings.offline}")
        logger.debug(f"Settings - Local repo: {settings.local_repository or settings.default_local_repository}")
        return settings


def _parse_timeout(value: Optional[str], default: int) -> int:
    if value is None:
        return default
    try:
        return int(value)
    except ValueError:
        logger.warning(f"Ignoring invalid timeout value '{value}', using {default}ms")
        return default
