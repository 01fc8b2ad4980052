from typing import Dict, Any

import yaml

from ..core.models import ProjectConfig, TaskSpec, BuildVariantSpec


class ConfigSerializer:
    """Utility class for serializing project configurations stored on versions"""

    @staticmethod
    def config_to_dict(config: ProjectConfig) -> Dict[str, Any]:
        """Convert ProjectConfig to dictionary in the same shape ProjectConfigLoader reads"""
        result: Dict[str, Any] = {}
        if config.identifier:
            result['identifier'] = config.identifier
        if config.ignore:
            result['ignore'] = list(config.ignore)
        if config.batch_time is not None:
            result['batchtime'] = config.batch_time
        result['tasks'] = [ConfigSerializer._task_to_dict(task) for task in config.tasks]
        result['buildvariants'] = [
            ConfigSerializer._build_variant_to_dict(bv) for bv in config.build_variants
        ]
        return result

    @staticmethod
    def _task_to_dict(task: TaskSpec) -> Dict[str, Any]:
        result: Dict[str, Any] = {'name': task.name}
        if task.depends_on:
            deps = []
            for dep in task.depends_on:
                dep_dict = {'name': dep.name}
                if dep.variant is not None:
                    dep_dict['variant'] = dep.variant
                deps.append(dep_dict)
            result['depends_on'] = deps
        if task.priority:
            result['priority'] = task.priority
        if task.commands:
            result['commands'] = task.commands
        return result

    @staticmethod
    def _build_variant_to_dict(variant: BuildVariantSpec) -> Dict[str, Any]:
        result: Dict[str, Any] = {'name': variant.name}
        if variant.display_name:
            result['display_name'] = variant.display_name
        if variant.batch_time is not None:
            result['batchtime'] = variant.batch_time
        if variant.disabled:
            result['disabled'] = True
        result['tasks'] = [{'name': name} for name in variant.tasks]
        return result

    @staticmethod
    def config_to_yaml(config: ProjectConfig) -> str:
        return yaml.safe_dump(ConfigSerializer.config_to_dict(config), default_flow_style=False, sort_keys=False)
