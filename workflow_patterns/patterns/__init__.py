"""Pattern models, identity, storage and anonymization."""

from workflow_patterns.patterns.anonymizer import (
    AnonymizationOptions,
    AnonymizationReport,
    AnonymizationResult,
    PatternAnonymizer,
)
from workflow_patterns.patterns.identity import (
    generate_pattern_hash,
    pattern_file_path,
    slugify,
)
from workflow_patterns.patterns.models import (
    Blueprint,
    FixPattern,
    Pattern,
    PatternKind,
    PatternMetrics,
    SchemaValidationError,
    SolutionPattern,
    create_default_metrics,
    is_pattern_deprecated,
    update_metrics,
)
from workflow_patterns.patterns.store import (
    ConflictResult,
    PatternQuery,
    PatternResult,
    PatternStats,
    PatternStore,
)

__all__ = [
    "AnonymizationOptions",
    "AnonymizationReport",
    "AnonymizationResult",
    "Blueprint",
    "ConflictResult",
    "FixPattern",
    "Pattern",
    "PatternAnonymizer",
    "PatternKind",
    "PatternMetrics",
    "PatternQuery",
    "PatternResult",
    "PatternStats",
    "PatternStore",
    "SchemaValidationError",
    "SolutionPattern",
    "create_default_metrics",
    "generate_pattern_hash",
    "is_pattern_deprecated",
    "pattern_file_path",
    "slugify",
    "update_metrics",
]
