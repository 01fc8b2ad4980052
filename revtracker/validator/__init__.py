from .project_validator import ProjectValidator, SyntaxValidator, split_diagnostics

__all__ = ['ProjectValidator', 'SyntaxValidator', 'split_diagnostics']
