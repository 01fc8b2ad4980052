from typing import Optional

from ..config.global_config_loader import GlobalConfig, get_global_config
from ..core.models import ProjectRef
from .base import RepoPoller
from .github_poller import GitHubRepoPoller


def poller_for_project(project_ref: ProjectRef, global_config: Optional[GlobalConfig] = None) -> RepoPoller:
    """Create the repository poller for a tracked project"""
    if global_config is None:
        global_config = get_global_config()

    return GitHubRepoPoller(
        project_ref,
        api_url=global_config.github.api_url,
        token=global_config.github.token,
        timeout=global_config.tracker.fetch_timeout,
        max_retries=global_config.github.max_retries,
        retry_delay=global_config.github.retry_delay,
    )


__all__ = ['RepoPoller', 'GitHubRepoPoller', 'poller_for_project']
