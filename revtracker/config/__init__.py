from .config_loader import ProjectConfigLoader, load_project_refs, load_project_refs_from_dict
from .config_serializer import ConfigSerializer
from .global_config_loader import GlobalConfig, load_global_config, get_global_config

__all__ = [
    'ProjectConfigLoader', 'load_project_refs', 'load_project_refs_from_dict',
    'ConfigSerializer', 'GlobalConfig', 'load_global_config', 'get_global_config',
]
