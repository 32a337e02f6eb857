"""HTTP and file transport for repository access."""

import hashlib
import logging
import os
import shutil
import ssl
from pathlib import Path
from typing import Optional
from urllib.parse import unquote, urlparse

import requests
from requests.adapters import HTTPAdapter
from urllib3.util.ssl_ import create_urllib3_context

from . import __version__
from .errors import ArtifactNotFound, DownloadError, RepositoryUnavailable
from .repositories import CHECKSUM_POLICY_FAIL, CHECKSUM_POLICY_IGNORE, Repository

logger = logging.getLogger(__name__)

# Known corporate SSL inspection cert bundle locations
CORPORATE_CERT_PATHS = [
    "/Library/Application Support/Netskope/STAgent/data/netskope-cert-bundle.pem",  # Netskope macOS
    "/etc/netskope/cert-bundle.pem",  # Netskope Linux
]

DEFAULT_POOL_SIZE = 8
CHUNK_SIZE = 64 * 1024


def get_corporate_cert_path() -> Optional[str]:
    """Find a corporate SSL certificate bundle if present."""
    for path in CORPORATE_CERT_PATHS:
        if os.path.exists(path):
            return path
    return None


class RepositoryAdapter(HTTPAdapter):
    """Connection-pooling adapter; loads a corporate CA bundle when one is installed."""

    def __init__(self, cert_path: Optional[str] = None, pool_size: int = DEFAULT_POOL_SIZE, **kwargs):
        self.cert_path = cert_path
        super().__init__(pool_connections=pool_size, pool_maxsize=pool_size, **kwargs)

    def init_poolmanager(self, *args, **kwargs):
        if self.cert_path:
            ctx = create_urllib3_context()
            ctx.load_default_certs()
            ctx.load_verify_locations(self.cert_path)
            # Relax strict key usage validation (OpenSSL 3.x)
            ctx.verify_flags = ssl.VERIFY_DEFAULT
            kwargs['ssl_context'] = ctx
            logger.debug(f"Loaded corporate cert bundle from {self.cert_path}")
        return super().init_poolmanager(*args, **kwargs)


def create_session(pool_size: int = DEFAULT_POOL_SIZE) -> requests.Session:
    """Create a requests session sized for ``pool_size`` concurrent downloads."""
    session = requests.Session()
    session.headers.update({"User-Agent": f"mvnresolve/{__version__}"})

    cert_path = get_corporate_cert_path()
    if cert_path:
        logger.info(f"Detected corporate SSL environment, using {cert_path}")
    adapter = RepositoryAdapter(cert_path=cert_path, pool_size=pool_size)
    session.mount('https://', adapter)
    session.mount('http://', RepositoryAdapter(pool_size=pool_size))
    return session


def file_url_to_path(url: str) -> Path:
    parsed = urlparse(url)
    if parsed.netloc:
        return Path(unquote(parsed.netloc + parsed.path))
    return Path(unquote(parsed.path or url[len("file:"):]))


def join_url(base: str, path: str) -> str:
    return base.rstrip('/') + '/' + path.lstrip('/')


class RepositoryTransport:
    """Fetches files from repositories over HTTP(S) or from ``file:`` URLs."""

    def __init__(self, settings, pool_size: int = DEFAULT_POOL_SIZE, session: Optional[requests.Session] = None):
        self.offline = settings.offline
        self.timeout = settings.timeouts
        self.session = session or create_session(pool_size)

    def get(self, repository: Repository, path: str) -> bytes:
        """
        Fetch a (small) file such as a POM or a metadata document.

        Raises:
            ArtifactNotFound: The repository doesn't have the file
            RepositoryUnavailable: Timeout, connection failure or server error
        """
        if repository.is_file:
            source = file_url_to_path(join_url(repository.url, path))
            try:
                return source.read_bytes()
            except FileNotFoundError:
                raise ArtifactNotFound(f"{repository.id}:{path}", "not found")
            except OSError as e:
                raise RepositoryUnavailable(repository.id, str(e)) from e

        response = self._request(repository, path, stream=False)
        try:
            return response.content
        finally:
            response.close()

    def download(self, repository: Repository, path: str, dest: Path, snapshot: bool = False) -> None:
        """
        Download a file to ``dest`` and verify its checksum according to the repository policy.

        Raises:
            ArtifactNotFound: The repository doesn't have the file
            RepositoryUnavailable: Timeout, connection failure or server error
            DownloadError: The transfer failed half way or the checksum is wrong
        """
        if repository.is_file:
            source = file_url_to_path(join_url(repository.url, path))
            if not source.is_file():
                raise ArtifactNotFound(f"{repository.id}:{path}", "not found")
            shutil.copyfile(source, dest)
        else:
            response = self._request(repository, path, stream=True)
            try:
                with open(dest, 'wb') as f:
                    for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                        f.write(chunk)
            except requests.RequestException as e:
                raise DownloadError(path, str(e), cause=e) from e
            finally:
                response.close()

        self._verify_checksum(repository, path, dest, snapshot)

    def _request(self, repository: Repository, path: str, stream: bool) -> requests.Response:
        if self.offline:
            raise RepositoryUnavailable(repository.id, "offline mode")

        url = join_url(repository.url, path)
        proxies = None
        if repository.proxy is not None:
            proxies = {repository.proxy.type: repository.proxy.as_url()}

        logger.debug(f"GET {url}")
        try:
            response = self.session.get(url, timeout=self.timeout, stream=stream, proxies=proxies)
        except requests.Timeout as e:
            raise RepositoryUnavailable(repository.id, f"timed out fetching {url}") from e
        except requests.ConnectionError as e:
            raise RepositoryUnavailable(repository.id, f"connection error fetching {url}: {e}") from e
        except requests.RequestException as e:
            raise RepositoryUnavailable(repository.id, str(e)) from e

        if response.status_code == 200:
            return response
        response.close()
        if response.status_code in (404, 410):
            raise ArtifactNotFound(url, f"HTTP {response.status_code}")
        if response.status_code >= 500 or response.status_code == 429:
            raise RepositoryUnavailable(repository.id, f"HTTP {response.status_code} for {url}")
        raise DownloadError(url, f"HTTP {response.status_code}")

    def _verify_checksum(self, repository: Repository, path: str, dest: Path, snapshot: bool) -> None:
        policy = repository.policy(snapshot).checksum_policy
        if policy == CHECKSUM_POLICY_IGNORE:
            return

        try:
            expected = self.get(repository, path + ".sha1").decode('ascii', 'replace').split()
        except (ArtifactNotFound, RepositoryUnavailable, DownloadError) as e:
            logger.debug(f"No checksum for {path} in {repository.id}: {e}")
            return
        if not expected:
            return

        actual = sha1_of(dest)
        if actual != expected[0].lower():
            message = f"Checksum mismatch for {path} from {repository.id}: expected {expected[0]}, got {actual}"
            if policy == CHECKSUM_POLICY_FAIL:
                raise DownloadError(path, message)
            logger.warning(message)

    def close(self):
        """Close the session; aborts in-flight downloads."""
        self.session.close()

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()


def sha1_of(path: Path) -> str:
    digest = hashlib.sha1()
    with open(path, 'rb') as f:
        for chunk in iter(lambda: f.read(CHUNK_SIZE), b''):
            digest.update(chunk)
    return digest.hexdigest()
