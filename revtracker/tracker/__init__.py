from .activation import ProjectActivator
from .expander import BuildExpander, TaskIdTable
from .repotracker import RepoTracker
from .resolver import ConfigResolver
from .runner import TrackerRunner
from .version_builder import VersionBuilder

__all__ = [
    'ConfigResolver',
    'VersionBuilder',
    'BuildExpander',
    'TaskIdTable',
    'RepoTracker',
    'ProjectActivator',
    'TrackerRunner',
]
