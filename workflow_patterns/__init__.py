"""
Workflow Patterns - local pattern library with opt-in community sync.

Records fixes, blueprints and solutions under .workflow/patterns, keeps
them anonymous before they are shared, and exchanges them with a central
registry.
"""

__version__ = "0.1.0"
__all__ = ["__version__"]
