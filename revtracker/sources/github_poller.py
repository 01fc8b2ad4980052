import asyncio
import base64
import binascii
import logging
from datetime import datetime, timezone
from typing import Any, Dict, List, Optional, Tuple

import aiohttp

from ..config.config_loader import ProjectConfigLoader
from ..core.decorators import async_retry
from ..core.errors import (
    APIRequestError, APIResponseError, APIUnmarshalError, ConfigNotFoundError,
    ResponseReadError, TrackerError, TransientFetchError
)
from ..core.models import ProjectConfig, ProjectRef, Revision
from .base import RepoPoller


PAGE_SIZE = 100


class GitHubRepoPoller(RepoPoller):
    """Polls a GitHub repository through the REST API"""

    def __init__(
        self,
        project_ref: ProjectRef,
        api_url: str = "https://api.github.com",
        token: Optional[str] = None,
        timeout: float = 30.0,
        max_retries: int = 3,
        retry_delay: float = 1.0,
        session: Optional[aiohttp.ClientSession] = None
    ):
        self.project_ref = project_ref
        self.api_url = api_url.rstrip('/')
        self.token = token
        self.timeout = timeout
        self._session = session
        self._owns_session = session is None
        self.logger = logging.getLogger(f"{__name__}.GitHubRepoPoller")

        # Only transport failures are worth retrying
        self._get_json = async_retry(
            max_retries=max_retries, delay=retry_delay, retry_on=(ResponseReadError,)
        )(self._get_json_once)

    @property
    def repo_path(self) -> str:
        return f"/repos/{self.project_ref.owner}/{self.project_ref.repo}"

    def _headers(self) -> Dict[str, str]:
        headers = {"Accept": "application/vnd.github+json"}
        if self.token:
            headers["Authorization"] = f"token {self.token}"
        return headers

    async def _get_session(self) -> aiohttp.ClientSession:
        if self._session is None or self._session.closed:
            self._session = aiohttp.ClientSession(
                timeout=aiohttp.ClientTimeout(total=self.timeout),
                headers=self._headers()
            )
            self._owns_session = True
        return self._session

    async def close(self):
        if self._owns_session and self._session is not None and not self._session.closed:
            await self._session.close()

    async def _get_json_once(self, path: str, params: Optional[Dict[str, Any]] = None,
                             revision: Optional[str] = None) -> Tuple[int, Any]:
        """GET a JSON document; returns (status, body) for 2xx/4xx and raises on 5xx or transport errors"""
        session = await self._get_session()
        url = f"{self.api_url}{path}"
        try:
            async with session.get(url, params=params) as response:
                status = response.status
                if status >= 500:
                    raise APIResponseError(f"GitHub returned {status} for {url}", revision=revision)
                if status >= 400:
                    return status, None
                try:
                    body = await response.json(content_type=None)
                except ValueError as e:
                    raise APIUnmarshalError(f"invalid JSON from {url}: {e}", revision=revision) from e
                if body is None:
                    raise APIResponseError(f"empty response from {url}", revision=revision)
                return status, body
        except (aiohttp.ClientError, asyncio.TimeoutError) as e:
            raise ResponseReadError(f"problem reading {url}: {e!r}", revision=revision) from e

    async def get_remote_config(self, revision: str) -> ProjectConfig:
        path = self.project_ref.remote_path
        status, body = await self._get_json(
            f"{self.repo_path}/contents/{path}", params={"ref": revision}, revision=revision
        )
        if status == 404:
            raise ConfigNotFoundError(
                f"config file {path} not found at revision {revision}", revision=revision, path=path
            )
        if status >= 400:
            raise APIRequestError(
                f"GitHub rejected request for {path} at {revision} with status {status}",
                status=status, revision=revision, path=path
            )

        if not isinstance(body, dict) or 'content' not in body:
            raise APIUnmarshalError(f"contents response for {path} has no 'content'", revision=revision, path=path)
        try:
            content = base64.b64decode(body['content']).decode('utf-8')
        except (binascii.Error, UnicodeDecodeError, TypeError) as e:
            raise APIUnmarshalError(f"could not decode {path} at {revision}: {e}", revision=revision, path=path) from e

        return ProjectConfigLoader.load_from_string(content, path=path, revision=revision)

    async def get_changed_files(self, revision: str) -> List[str]:
        try:
            status, body = await self._get_json(f"{self.repo_path}/commits/{revision}", revision=revision)
        except TrackerError as e:
            raise TransientFetchError(f"could not fetch commit {revision}: {e}") from e
        if status >= 400 or not isinstance(body, dict):
            raise TransientFetchError(f"could not fetch commit {revision}: status {status}")
        return [f['filename'] for f in body.get('files', []) if 'filename' in f]

    async def _list_commits(self, page: int) -> List[Dict[str, Any]]:
        params = {"sha": self.project_ref.branch, "per_page": PAGE_SIZE, "page": page}
        try:
            status, body = await self._get_json(f"{self.repo_path}/commits", params=params)
        except TrackerError as e:
            raise TransientFetchError(f"could not list commits for {self.project_ref}: {e}") from e
        if status >= 400:
            raise TransientFetchError(f"could not list commits for {self.project_ref}: status {status}")
        if not isinstance(body, list):
            raise TransientFetchError(f"unexpected commit listing for {self.project_ref}")
        return body

    async def get_revisions_since(self, since_revision: str, max_revisions: int) -> List[Revision]:
        revisions: List[Revision] = []
        page = 1
        while True:
            commits = await self._list_commits(page)
            if not commits:
                break
            for commit in commits:
                if commit.get('sha') == since_revision:
                    return revisions
                revisions.append(commit_to_revision(commit))
                if 0 < max_revisions <= len(revisions):
                    self.logger.warning(
                        f"Revision {since_revision} not found within {max_revisions} revisions "
                        f"of {self.project_ref}, using the most recent {len(revisions)}"
                    )
                    return revisions
            page += 1

        self.logger.warning(f"Revision {since_revision} not found in history of {self.project_ref}")
        return revisions

    async def get_recent_revisions(self, max_revisions: int) -> List[Revision]:
        revisions: List[Revision] = []
        page = 1
        while len(revisions) < max_revisions:
            commits = await self._list_commits(page)
            if not commits:
                break
            revisions.extend(commit_to_revision(c) for c in commits)
            page += 1
        return revisions[:max_revisions]


def commit_to_revision(commit: Dict[str, Any]) -> Revision:
    """Convert a GitHub commit listing entry to a Revision"""
    details = commit.get('commit') or {}
    author = details.get('author') or {}
    committer = details.get('committer') or {}
    github_author = commit.get('author') or {}

    create_time = None
    date = committer.get('date') or author.get('date')
    if date:
        create_time = datetime.fromisoformat(date.replace('Z', '+00:00')).astimezone(timezone.utc)

    return Revision(
        revision=commit['sha'],
        author=author.get('name', ''),
        author_email=author.get('email', ''),
        author_external_id=github_author.get('id'),
        message=details.get('message', ''),
        create_time=create_time,
    )
