"""
Project configuration validation.

Validators return a list of diagnostics; error-level diagnostics stop a
version from being expanded into builds and tasks, warnings are stored on the
version for display.
"""

from abc import ABC, abstractmethod
from collections import Counter
from typing import Dict, List, Set

from ..core.enums import DiagnosticLevel
from ..core.models import Diagnostic, ProjectConfig

WILDCARD = "*"


class ProjectValidator(ABC):
    """Checks a project configuration"""

    @abstractmethod
    def check(self, config: ProjectConfig) -> List[Diagnostic]:
        pass


class SyntaxValidator(ProjectValidator):
    """Structural checks on tasks, build variants and dependencies"""

    def check(self, config: ProjectConfig) -> List[Diagnostic]:
        diagnostics: List[Diagnostic] = []
        for check in (
            self._check_build_variants,
            self._check_tasks,
            self._check_dependencies,
            self._check_dependency_cycles,
            self._check_batch_times,
        ):
            diagnostics.extend(check(config))
        return diagnostics

    @staticmethod
    def _error(message: str) -> Diagnostic:
        return Diagnostic(level=DiagnosticLevel.ERROR, message=message)

    @staticmethod
    def _warning(message: str) -> Diagnostic:
        return Diagnostic(level=DiagnosticLevel.WARNING, message=message)

    def _check_build_variants(self, config: ProjectConfig) -> List[Diagnostic]:
        diagnostics = []
        if not config.build_variants:
            diagnostics.append(self._error("project must define at least one build variant"))
            return diagnostics

        names = Counter(bv.name for bv in config.build_variants)
        for name, count in names.items():
            if not name.strip():
                diagnostics.append(self._error("build variant names must not be blank"))
            elif count > 1:
                diagnostics.append(self._error(f"build variant '{name}' is defined {count} times"))

        task_names = {t.name for t in config.tasks}
        for variant in config.build_variants:
            if not variant.tasks:
                diagnostics.append(self._warning(f"build variant '{variant.name}' has no tasks"))
            for task_name in variant.tasks:
                if task_name not in task_names:
                    diagnostics.append(self._error(
                        f"build variant '{variant.name}' references undefined task '{task_name}'"
                    ))

        if all(bv.disabled for bv in config.build_variants):
            diagnostics.append(self._warning("all build variants are disabled"))
        return diagnostics

    def _check_tasks(self, config: ProjectConfig) -> List[Diagnostic]:
        diagnostics = []
        names = Counter(t.name for t in config.tasks)
        for name, count in names.items():
            if not name.strip():
                diagnostics.append(self._error("task names must not be blank"))
            elif count > 1:
                diagnostics.append(self._error(f"task '{name}' is defined {count} times"))

        used = {name for bv in config.build_variants for name in bv.tasks}
        for task in config.tasks:
            if task.name and task.name not in used:
                diagnostics.append(self._warning(f"task '{task.name}' is not run by any build variant"))
        return diagnostics

    def _check_dependencies(self, config: ProjectConfig) -> List[Diagnostic]:
        diagnostics = []
        task_names = {t.name for t in config.tasks}
        variant_names = {bv.name for bv in config.build_variants}

        for task in config.tasks:
            for dep in task.depends_on:
                if dep.name != WILDCARD and dep.name not in task_names:
                    diagnostics.append(self._error(
                        f"task '{task.name}' depends on undefined task '{dep.name}'"
                    ))
                if dep.variant not in (None, WILDCARD) and dep.variant not in variant_names:
                    diagnostics.append(self._error(
                        f"task '{task.name}' depends on undefined build variant '{dep.variant}'"
                    ))
                if dep.name == task.name and dep.variant is None:
                    diagnostics.append(self._error(f"task '{task.name}' depends on itself"))
        return diagnostics

    def _check_dependency_cycles(self, config: ProjectConfig) -> List[Diagnostic]:
        graph: Dict[str, Set[str]] = {
            task.name: {dep.name for dep in task.depends_on if dep.name not in (WILDCARD, task.name)}
            for task in config.tasks
        }
        visiting: Set[str] = set()
        done: Set[str] = set()
        cycles: List[str] = []

        def visit(name: str, path: List[str]):
            if name in done or name not in graph:
                return
            if name in visiting:
                cycle = path[path.index(name):] + [name]
                cycles.append(" -> ".join(cycle))
                return
            visiting.add(name)
            for dep in sorted(graph[name]):
                visit(dep, path + [name])
            visiting.discard(name)
            done.add(name)

        for name in sorted(graph):
            visit(name, [])

        return [self._error(f"dependency cycle: {cycle}") for cycle in cycles]

    def _check_batch_times(self, config: ProjectConfig) -> List[Diagnostic]:
        diagnostics = []
        if config.batch_time is not None and config.batch_time < 0:
            diagnostics.append(self._error("batch time must not be negative"))
        for variant in config.build_variants:
            if variant.batch_time is not None and variant.batch_time < 0:
                diagnostics.append(self._error(f"build variant '{variant.name}' has a negative batch time"))
        return diagnostics


def split_diagnostics(diagnostics: List[Diagnostic]):
    """Split diagnostics into (errors, warnings) message lists"""
    errors = [d.message for d in diagnostics if d.level == DiagnosticLevel.ERROR]
    warnings = [d.message for d in diagnostics if d.level == DiagnosticLevel.WARNING]
    return errors, warnings
