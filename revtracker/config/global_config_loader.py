import yaml
from pathlib import Path
from typing import Optional, Dict, Any
from dataclasses import dataclass, field

from .config_loader import resolve_env_vars


DEFAULT_NUM_NEW_REPO_REVISIONS_TO_FETCH = 200
DEFAULT_MAX_REPO_REVISIONS_TO_SEARCH = 50
DEFAULT_NUM_CONCURRENT_REQUESTS = 10


@dataclass
class RedisConfig:
    """Redis configuration"""
    url: str = "redis://localhost:6379"
    database: int = 0


@dataclass
class StoreConfig:
    """Document store configuration"""
    type: str = "memory"  # 'memory' or 'redis'
    key_prefix: str = "revtracker:"


@dataclass
class TrackerConfig:
    """Repository tracker configuration"""
    num_new_repo_revisions_to_fetch: int = DEFAULT_NUM_NEW_REPO_REVISIONS_TO_FETCH
    max_repo_revisions_to_search: int = DEFAULT_MAX_REPO_REVISIONS_TO_SEARCH
    num_concurrent_requests: int = DEFAULT_NUM_CONCURRENT_REQUESTS
    fetch_timeout: float = 60.0  # seconds, per remote call
    activation_lookback: int = 50  # versions scanned when activating

    def __post_init__(self):
        # Non-positive values mean "use the default"
        if self.num_new_repo_revisions_to_fetch <= 0:
            self.num_new_repo_revisions_to_fetch = DEFAULT_NUM_NEW_REPO_REVISIONS_TO_FETCH
        if self.max_repo_revisions_to_search <= 0:
            self.max_repo_revisions_to_search = DEFAULT_MAX_REPO_REVISIONS_TO_SEARCH
        if self.num_concurrent_requests <= 0:
            self.num_concurrent_requests = DEFAULT_NUM_CONCURRENT_REQUESTS


@dataclass
class GitHubConfig:
    """GitHub API client configuration"""
    api_url: str = "https://api.github.com"
    token: Optional[str] = None
    max_retries: int = 3
    retry_delay: float = 1.0


@dataclass
class WorkerConfig:
    """
    Worker configuration.

    ``track_interval_minutes`` must divide 60 so tracking runs are evenly
    spaced across the hour; 1 or less runs every minute.
    """
    max_jobs: int = 4
    job_timeout: int = 3600
    track_interval_minutes: int = 5

    def __post_init__(self):
        interval = self.track_interval_minutes
        if interval > 1 and (interval > 60 or 60 % interval):
            raise ValueError(f"track_interval_minutes must divide 60, got {interval}")


@dataclass
class ProjectsConfig:
    """Location of the tracked projects definition"""
    projects_path: str = "./examples/configs/projects.yaml"


@dataclass
class GlobalConfig:
    """Global configuration for the tracker, workers and CLI"""
    redis: RedisConfig = field(default_factory=RedisConfig)
    store: StoreConfig = field(default_factory=StoreConfig)
    tracker: TrackerConfig = field(default_factory=TrackerConfig)
    github: GitHubConfig = field(default_factory=GitHubConfig)
    worker: WorkerConfig = field(default_factory=WorkerConfig)
    projects: ProjectsConfig = field(default_factory=ProjectsConfig)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> 'GlobalConfig':
        """Create GlobalConfig from dictionary"""
        data = resolve_env_vars(data)
        return cls(
            redis=RedisConfig(**data.get('redis', {})),
            store=StoreConfig(**data.get('store', {})),
            tracker=TrackerConfig(**data.get('tracker', {})),
            github=GitHubConfig(**data.get('github', {})),
            worker=WorkerConfig(**data.get('worker', {})),
            projects=ProjectsConfig(**data.get('projects', {})),
        )

    @classmethod
    def from_yaml(cls, yaml_path: str) -> 'GlobalConfig':
        """Load GlobalConfig from YAML file"""
        path = Path(yaml_path)
        if not path.exists():
            # Return default config if file doesn't exist
            return cls.default()

        with open(path, 'r') as f:
            data = yaml.safe_load(f)

        return cls.from_dict(data or {})

    @classmethod
    def default(cls) -> 'GlobalConfig':
        """Return default configuration"""
        return cls()


# Global instance - can be overridden
_global_config: Optional[GlobalConfig] = None


def load_global_config(config_path: Optional[str] = None) -> GlobalConfig:
    """
    Load global configuration from YAML file.
    If no path provided, looks for global_config.yaml in standard locations.
    """
    global _global_config

    if config_path:
        _global_config = GlobalConfig.from_yaml(config_path)
        return _global_config

    # Try standard locations
    search_paths = [
        Path("./global_config.yaml"),
        Path("./revtracker/config/global_config.yaml"),
        Path("./config/global_config.yaml"),
        Path("/etc/revtracker/global_config.yaml"),
    ]

    for path in search_paths:
        if path.exists():
            _global_config = GlobalConfig.from_yaml(str(path))
            return _global_config

    # Return default if no config found
    _global_config = GlobalConfig.default()
    return _global_config


def get_global_config() -> GlobalConfig:
    """Get the loaded global configuration"""
    global _global_config
    if _global_config is None:
        _global_config = load_global_config()
    return _global_config
