import os
import yaml
from typing import Dict, Any, List, Optional

from ..core.errors import ConfigFormatError
from ..core.models import (
    ProjectConfig, ProjectRef, TaskSpec, TaskDependency, BuildVariantSpec
)


def resolve_env_vars(value: Any) -> Any:
    """Substitute ``${ENV_VAR}`` / ``${ENV_VAR:default}`` strings, recursively"""
    if isinstance(value, str) and value.startswith("${") and value.endswith("}"):
        env_var = value[2:-1]  # Remove ${ and }
        default_value = ""
        if ":" in env_var:
            env_var, default_value = env_var.split(":", 1)
        return os.getenv(env_var, default_value)
    elif isinstance(value, dict):
        return {k: resolve_env_vars(v) for k, v in value.items()}
    elif isinstance(value, list):
        return [resolve_env_vars(item) for item in value]
    return value


class ProjectConfigLoader:
    """Load project build configurations (tasks, build variants, ignore rules)"""

    @staticmethod
    def load_from_yaml(file_path: str) -> ProjectConfig:
        """Load configuration from YAML file"""
        with open(file_path, 'r') as file:
            content = file.read()
        return ProjectConfigLoader.load_from_string(content, path=file_path)

    @staticmethod
    def load_from_string(content: str, path: Optional[str] = None,
                         revision: Optional[str] = None) -> ProjectConfig:
        """Parse YAML text; syntax errors are reported as ConfigFormatError"""
        try:
            config_dict = yaml.safe_load(content)
        except yaml.YAMLError as e:
            raise ConfigFormatError(f"invalid YAML in {path or 'project config'}: {e}",
                                    revision=revision, path=path) from e

        if config_dict is None:
            raise ConfigFormatError(f"Empty or invalid YAML file: {path or 'project config'}",
                                    revision=revision, path=path)

        return ProjectConfigLoader.load_from_dict(config_dict, path=path, revision=revision)

    @staticmethod
    def load_from_dict(config_dict: Dict[str, Any], path: Optional[str] = None,
                       revision: Optional[str] = None) -> ProjectConfig:
        """Load configuration from dictionary"""
        def fail(message: str):
            raise ConfigFormatError(message, revision=revision, path=path)

        if not isinstance(config_dict, dict):
            fail(f"project config must be a mapping, got {type(config_dict).__name__}")

        ignore = config_dict.get('ignore') or []
        if isinstance(ignore, str):
            ignore = [ignore]
        if not isinstance(ignore, list):
            fail("'ignore' must be a list of patterns")

        tasks_data = config_dict.get('tasks') or []
        if not isinstance(tasks_data, list):
            fail("'tasks' must be a list")
        variants_data = config_dict.get('buildvariants') or config_dict.get('build_variants') or []
        if not isinstance(variants_data, list):
            fail("'buildvariants' must be a list")

        try:
            tasks = [ProjectConfigLoader._process_task(t) for t in tasks_data]
            build_variants = [ProjectConfigLoader._process_build_variant(bv) for bv in variants_data]
            batch_time = ProjectConfigLoader._parse_batch_time(config_dict)
        except (TypeError, ValueError) as e:
            fail(str(e))

        return ProjectConfig(
            identifier=config_dict.get('identifier'),
            ignore=[str(p) for p in ignore],
            batch_time=batch_time,
            tasks=tasks,
            build_variants=build_variants,
        )

    @staticmethod
    def _parse_batch_time(data: Dict[str, Any]) -> Optional[int]:
        value = data.get('batchtime', data.get('batch_time'))
        if value is None:
            return None
        if isinstance(value, bool) or not isinstance(value, (int, float, str)):
            raise ValueError(f"batch time must be a number of minutes, got {value!r}")
        return int(value)

    @staticmethod
    def _process_task(task_dict: Any) -> TaskSpec:
        if not isinstance(task_dict, dict):
            raise ValueError(f"task definition must be a mapping, got {task_dict!r}")

        depends_on = task_dict.get('depends_on') or []
        if not isinstance(depends_on, list):
            depends_on = [depends_on]

        dependencies = []
        for dep in depends_on:
            if isinstance(dep, str):
                dependencies.append(TaskDependency(name=dep))
            elif isinstance(dep, dict):
                dependencies.append(TaskDependency(
                    name=str(dep.get('name', '')),
                    variant=dep.get('variant')
                ))
            else:
                raise ValueError(f"invalid dependency {dep!r} in task {task_dict.get('name')!r}")

        return TaskSpec(
            name=str(task_dict.get('name') or ''),
            depends_on=dependencies,
            priority=int(task_dict.get('priority', 0)),
            commands=list(task_dict.get('commands') or []),
        )

    @staticmethod
    def _process_build_variant(variant_dict: Any) -> BuildVariantSpec:
        if not isinstance(variant_dict, dict):
            raise ValueError(f"build variant definition must be a mapping, got {variant_dict!r}")

        task_names = []
        for entry in variant_dict.get('tasks') or []:
            if isinstance(entry, str):
                task_names.append(entry)
            elif isinstance(entry, dict):
                task_names.append(str(entry.get('name', '')))
            else:
                raise ValueError(
                    f"invalid task reference {entry!r} in build variant {variant_dict.get('name')!r}"
                )

        return BuildVariantSpec(
            name=str(variant_dict.get('name') or ''),
            display_name=variant_dict.get('display_name'),
            tasks=task_names,
            disabled=bool(variant_dict.get('disabled', variant_dict.get('disable', False))),
            batch_time=ProjectConfigLoader._parse_batch_time(variant_dict),
        )


def load_project_refs(file_path: str) -> List[ProjectRef]:
    """Load tracked projects from a projects YAML file"""
    with open(file_path, 'r') as file:
        config_dict = yaml.safe_load(file)

    if config_dict is None:
        raise ValueError(f"Empty or invalid projects YAML file: {file_path}")

    return load_project_refs_from_dict(config_dict)


def load_project_refs_from_dict(config_dict: Dict[str, Any]) -> List[ProjectRef]:
    projects = []
    for identifier, project_config in (config_dict.get('projects') or {}).items():
        resolved = resolve_env_vars(project_config or {})
        resolved.setdefault('identifier', identifier)
        projects.append(ProjectRef(**resolved))
    return projects
