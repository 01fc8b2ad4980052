"""
Revtracker - revision ingestion and build/task expansion for a CI orchestrator

Main modules:
- core: Data models, enums, errors
- config: Global config, project config loading and serialization
- store: Document stores (in-memory, Redis)
- sources: Repository pollers
- validator: Project config validation
- tracker: Config resolution, version building, build expansion, activation
- notifications: Hooks run after a version is stored
- worker / cli: ARQ worker and command line entry points
"""

from .core.models import ProjectRef, ProjectConfig, Revision, Version, Build, Task
from .config.config_loader import ProjectConfigLoader, load_project_refs
from .config.global_config_loader import GlobalConfig, load_global_config
from .store import BaseStore, InMemoryStore, RedisStore, get_store
from .tracker import (
    ConfigResolver, VersionBuilder, BuildExpander, RepoTracker, ProjectActivator, TrackerRunner
)

__version__ = "1.0.0"
__all__ = [
    'ProjectRef',
    'ProjectConfig',
    'Revision',
    'Version',
    'Build',
    'Task',
    'ProjectConfigLoader',
    'load_project_refs',
    'GlobalConfig',
    'load_global_config',
    'BaseStore',
    'InMemoryStore',
    'RedisStore',
    'get_store',
    'ConfigResolver',
    'VersionBuilder',
    'BuildExpander',
    'RepoTracker',
    'ProjectActivator',
    'TrackerRunner',
]
