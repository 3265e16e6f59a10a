"""
Metadata source clients for the package registry, code forges and OpenSSF Scorecard.
"""

from __future__ import annotations

import logging
import re
import time
from email.utils import parsedate_to_datetime
from typing import Any, Dict, Iterable, List, Mapping, Optional, Tuple
from urllib.parse import parse_qs, quote, urlparse

import requests
from packaging import version as pkg_version

from .config import NetworkConfig
from .interfaces import SourceClient
from .models import Dependency, FailureKind, SourceKind, SourceOutcome
from .time_utils import parse_timestamp


logger = logging.getLogger(__name__)

USER_AGENT = "dependency-audit/0.1.0"

# An open-issue backlog under this size counts as issues being worked.
OPEN_ISSUE_BACKLOG_LIMIT = 50

_FORGE_HOSTS = {
    "github.com": SourceKind.GITHUB,
    "gitlab.com": SourceKind.GITLAB,
}

_SCP_URL = re.compile(r"^[\w.-]+@(?P<host>[\w.-]+):(?P<path>.+)$")


class SourceError(Exception):
    """Classified failure raised inside a client and converted by ``fetch``."""

    def __init__(self, kind: FailureKind, message: str, retry_after: Optional[float] = None) -> None:
        super().__init__(message)
        self.kind = kind
        self.retry_after = retry_after


def split_repository_url(url: Optional[str]) -> Optional[Tuple[str, str]]:
    """Split a repository URL into ``(host, path)``.

    Handles https, git://, git+https:// and scp-style ``git@host:owner/repo.git``.
    """
    if not url:
        return None
    url = url.strip()
    if url.startswith("git+"):
        url = url[4:]

    match = _SCP_URL.match(url)
    if match and "://" not in url:
        host, path = match.group("host"), match.group("path")
    else:
        parsed = urlparse(url if "://" in url else f"https://{url}")
        host, path = parsed.hostname or "", parsed.path

    path = path.strip("/")
    if path.endswith(".git"):
        path = path[:-4]
    parts = [p for p in path.split("/") if p]
    if not host or len(parts) < 2:
        return None
    return host.lower(), "/".join(parts)


def forge_kind(url: Optional[str]) -> Optional[SourceKind]:
    """Return the forge hosting ``url``, if it is one we can query."""
    split = split_repository_url(url)
    if split is None:
        return None
    host = split[0]
    if host.startswith("www."):
        host = host[4:]
    return _FORGE_HOSTS.get(host)


def github_repository(url: Optional[str]) -> Tuple[str, str]:
    split = split_repository_url(url)
    if split is None or forge_kind(url) is not SourceKind.GITHUB:
        raise SourceError(FailureKind.NOT_FOUND, f"Not a GitHub repository URL: {url}")
    owner, repo = split[1].split("/")[:2]
    return owner, repo


def gitlab_project_path(url: Optional[str]) -> str:
    split = split_repository_url(url)
    if split is None or forge_kind(url) is not SourceKind.GITLAB:
        raise SourceError(FailureKind.NOT_FOUND, f"Not a GitLab repository URL: {url}")
    # Anything after "/-/" is a view (tree, blob, issues), not part of the project.
    path = split[1].split("/-/")[0]
    if path.endswith("/-"):
        path = path[:-2]
    return path


def _parse_retry_after(value: Optional[str]) -> Optional[float]:
    if not value:
        return None
    try:
        return max(0.0, float(value))
    except ValueError:
        pass
    try:
        moment = parsedate_to_datetime(value)
    except (TypeError, ValueError):
        return None
    return max(0.0, moment.timestamp() - time.time())


def classify_response(response: requests.Response, service: str) -> Optional[SourceError]:
    """Map an HTTP status to a failure, or None for success."""
    status = response.status_code
    if 200 <= status < 300:
        return None

    if status == 429:
        return SourceError(
            FailureKind.RATE_LIMITED,
            f"{service} rate limit exceeded",
            _parse_retry_after(response.headers.get("Retry-After")),
        )
    if status == 403 and response.headers.get("X-RateLimit-Remaining") == "0":
        retry_after = None
        reset = response.headers.get("X-RateLimit-Reset")
        if reset and reset.isdigit():
            retry_after = max(0.0, int(reset) - time.time())
        return SourceError(FailureKind.RATE_LIMITED, f"{service} rate limit exceeded", retry_after)
    if status == 404:
        return SourceError(FailureKind.NOT_FOUND, f"{service} returned 404 for {response.url}")
    if status >= 500:
        return SourceError(FailureKind.SERVER_ERROR, f"{service} returned HTTP {status}")
    if status >= 400:
        return SourceError(FailureKind.NOT_FOUND, f"{service} refused access (HTTP {status})")
    return SourceError(FailureKind.MALFORMED, f"{service} returned unexpected HTTP {status}")


class HttpSourceClient:
    """Shared request, classification and outcome handling for HTTP sources."""

    kind: SourceKind
    service = "source"

    def __init__(
        self,
        session: requests.Session,
        base_url: str,
        timeout: float = 30.0,
        token: Optional[str] = None,
    ) -> None:
        self.session = session
        self.base_url = base_url.rstrip("/")
        self.timeout = timeout
        self.token = token

    def applies_to(self, dependency: Dependency) -> bool:
        return True

    def fetch(self, dependency: Dependency) -> SourceOutcome:
        try:
            payload = self._lookup(dependency)
        except SourceError as e:
            logger.debug("%s lookup failed for %s: %s", self.service, dependency.name, e)
            return SourceOutcome.failed(self.kind, e.kind, str(e), e.retry_after)
        except (AttributeError, KeyError, TypeError, ValueError) as e:
            logger.debug("%s returned malformed data for %s: %r", self.service, dependency.name, e)
            return SourceOutcome.failed(
                self.kind, FailureKind.MALFORMED, f"Malformed {self.service} response: {e!r}"
            )
        return SourceOutcome.success(self.kind, payload)

    def _lookup(self, dependency: Dependency) -> Dict[str, Any]:
        raise NotImplementedError

    def _headers(self) -> Dict[str, str]:
        return {"User-Agent": USER_AGENT, "Accept": "application/json"}

    def _get(self, url: str, params: Optional[Mapping[str, Any]] = None) -> requests.Response:
        logger.debug("GET %s", url)
        try:
            response = self.session.get(
                url, headers=self._headers(), params=params, timeout=self.timeout
            )
        except requests.Timeout as e:
            raise SourceError(FailureKind.TIMEOUT, f"{self.service} request timed out") from e
        except requests.ConnectionError as e:
            raise SourceError(FailureKind.SERVER_ERROR, f"{self.service} connection failed: {e}") from e
        except requests.RequestException as e:
            raise SourceError(FailureKind.MALFORMED, f"{self.service} request invalid: {e}") from e

        error = classify_response(response, self.service)
        if error is not None:
            raise error
        return response

    def _get_json(self, url: str, params: Optional[Mapping[str, Any]] = None) -> Dict[str, Any]:
        response = self._get(url, params)
        try:
            data = response.json()
        except ValueError as e:
            raise SourceError(FailureKind.MALFORMED, f"{self.service} returned invalid JSON") from e
        return _require_object(data, f"{self.service} response")


def _require_object(value: Any, what: str) -> Dict[str, Any]:
    if not isinstance(value, dict):
        raise SourceError(FailureKind.MALFORMED, f"Expected an object for {what}, got {type(value).__name__}")
    return value


def _drop_absent(payload: Mapping[str, Any]) -> Dict[str, Any]:
    return {key: value for key, value in payload.items() if value is not None}


class CratesIoClient(HttpSourceClient):
    """Registry client for crates.io-compatible APIs."""

    kind = SourceKind.REGISTRY
    service = "crates.io"

    def applies_to(self, dependency: Dependency) -> bool:
        return dependency.from_registry

    def _lookup(self, dependency: Dependency) -> Dict[str, Any]:
        data = self._get_json(f"{self.base_url}/crates/{quote(dependency.name, safe='')}")
        crate = _require_object(data.get("crate"), "crate")
        versions = data.get("versions") or []
        if not isinstance(versions, list) or not versions:
            raise SourceError(FailureKind.MALFORMED, f"No versions listed for {dependency.name}")
        versions = [_require_object(v, "crate version") for v in versions]

        version_info = next(
            (v for v in versions if v.get("num") == dependency.version), None
        )
        if version_info is None:
            logger.warning(
                "Version %s of %s not on registry, using %s",
                dependency.version, dependency.name, versions[0].get("num"),
            )
            version_info = versions[0]

        return _drop_absent({
            "last_activity_at": parse_timestamp(crate.get("updated_at")),
            "version_count": len(versions),
            "download_count": int(crate["downloads"]),
            "author_count": _count_publishers(versions),
            "is_yanked": bool(version_info.get("yanked", False)),
            "license_expression": version_info.get("license") or None,
            "repository_url": crate.get("repository") or None,
            "latest_version": _latest_release(versions),
        })


def _count_publishers(versions: Iterable[Mapping[str, Any]]) -> Optional[int]:
    people = set()
    for ver in versions:
        publisher = ver.get("published_by") or {}
        if publisher.get("login"):
            people.add(publisher["login"])
        for author in ver.get("authors") or []:
            people.add(author)
    return len(people) or None


def _latest_release(versions: Iterable[Mapping[str, Any]]) -> Optional[str]:
    candidates = []
    for ver in versions:
        if ver.get("yanked"):
            continue
        num = ver.get("num")
        try:
            parsed = pkg_version.parse(num)
        except (pkg_version.InvalidVersion, TypeError):
            continue
        if parsed.is_prerelease:
            continue
        candidates.append((parsed, num))
    if not candidates:
        return None
    return max(candidates)[1]


class GitHubClient(HttpSourceClient):
    """Forge client for GitHub repositories."""

    kind = SourceKind.GITHUB
    service = "GitHub"

    def applies_to(self, dependency: Dependency) -> bool:
        return forge_kind(dependency.repository_url) is SourceKind.GITHUB

    def _headers(self) -> Dict[str, str]:
        headers = {"User-Agent": USER_AGENT, "Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"Bearer {self.token}"
        return headers

    def _lookup(self, dependency: Dependency) -> Dict[str, Any]:
        owner, repo = github_repository(dependency.repository_url)
        repo_url = f"{self.base_url}/repos/{owner}/{repo}"
        data = self._get_json(repo_url)

        pushed_at = parse_timestamp(data.get("pushed_at"))
        open_issues = int(data["open_issues_count"])
        license_id = (data.get("license") or {}).get("spdx_id")
        if license_id == "NOASSERTION":
            license_id = None

        return _drop_absent({
            "last_activity_at": pushed_at,
            "last_commit_at": pushed_at,
            "is_archived": bool(data["archived"]),
            "star_count": int(data["stargazers_count"]),
            "open_issue_activity": bool(data.get("has_issues", True))
            and open_issues < OPEN_ISSUE_BACKLOG_LIMIT,
            "contributor_count": self._contributor_count(repo_url, dependency),
            "license_expression": license_id,
        })

    def _contributor_count(self, repo_url: str, dependency: Dependency) -> Optional[int]:
        """Count contributors from the pagination of a one-per-page listing."""
        try:
            response = self._get(f"{repo_url}/contributors", {"per_page": 1, "anon": 1})
        except SourceError as e:
            logger.warning("Contributor count unavailable for %s: %s", dependency.name, e)
            return None
        if response.status_code == 204:
            return 0

        last = response.links.get("last", {}).get("url")
        if last:
            pages = parse_qs(urlparse(last).query).get("page")
            if pages and pages[0].isdigit():
                return int(pages[0])
        try:
            return len(response.json())
        except (ValueError, TypeError):
            return None


class GitLabClient(HttpSourceClient):
    """Forge client for GitLab projects."""

    kind = SourceKind.GITLAB
    service = "GitLab"

    def applies_to(self, dependency: Dependency) -> bool:
        return forge_kind(dependency.repository_url) is SourceKind.GITLAB

    def _headers(self) -> Dict[str, str]:
        headers = super()._headers()
        if self.token:
            headers["PRIVATE-TOKEN"] = self.token
        return headers

    def _lookup(self, dependency: Dependency) -> Dict[str, Any]:
        path = gitlab_project_path(dependency.repository_url)
        data = self._get_json(
            f"{self.base_url}/projects/{quote(path, safe='')}", {"license": "true"}
        )

        last_activity = parse_timestamp(data.get("last_activity_at"))
        open_issue_activity = None
        if "open_issues_count" in data:
            open_issue_activity = bool(data.get("issues_enabled", True)) and (
                int(data["open_issues_count"]) < OPEN_ISSUE_BACKLOG_LIMIT
            )

        return _drop_absent({
            "last_activity_at": last_activity,
            "last_commit_at": last_activity,
            "is_archived": bool(data["archived"]),
            "star_count": int(data["star_count"]),
            "open_issue_activity": open_issue_activity,
            "license_expression": (data.get("license") or {}).get("key"),
        })


class ScorecardClient(HttpSourceClient):
    """OpenSSF Scorecard results for forge-hosted repositories."""

    kind = SourceKind.SCORECARD
    service = "OpenSSF Scorecard"

    def applies_to(self, dependency: Dependency) -> bool:
        return forge_kind(dependency.repository_url) in (SourceKind.GITHUB, SourceKind.GITLAB)

    def _lookup(self, dependency: Dependency) -> Dict[str, Any]:
        if forge_kind(dependency.repository_url) is SourceKind.GITHUB:
            owner, repo = github_repository(dependency.repository_url)
            project = f"github.com/{owner}/{repo}"
        else:
            project = f"gitlab.com/{gitlab_project_path(dependency.repository_url)}"

        data = self._get_json(f"{self.base_url}/projects/{project}")
        score = float(data["score"])
        if not 0.0 <= score <= 10.0:
            raise SourceError(FailureKind.MALFORMED, f"Scorecard score out of range: {score}")

        has_policy = None
        for check in data.get("checks") or []:
            if check.get("name") == "Security-Policy":
                check_score = check.get("score")
                # -1 marks an inconclusive check.
                if isinstance(check_score, (int, float)) and check_score >= 0:
                    has_policy = check_score > 0
                break

        return _drop_absent({"openssf_score": score, "has_security_policy": has_policy})


def build_default_clients(
    network: NetworkConfig, session: Optional[requests.Session] = None
) -> List[SourceClient]:
    """Create one client per provider sharing a single HTTP session."""
    session = session or requests.Session()
    clients: List[SourceClient] = [
        CratesIoClient(session, network.registry_url, network.timeout_secs),
        GitHubClient(session, network.github_api_url, network.timeout_secs, network.github_token),
        GitLabClient(session, network.gitlab_api_url, network.timeout_secs, network.gitlab_token),
    ]
    if network.enable_openssf:
        clients.append(ScorecardClient(session, network.scorecard_api_url, network.timeout_secs))
    return clients
