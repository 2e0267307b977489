"""
Resolution, merge and cleanup pipeline for the vehicle catalog.
"""

from .aliases import AliasTable
from .audit import AuditCheck, AuditReport, run_catalog_audit
from .candidates import CandidateIndex, CatalogEntry, build_candidate_index, load_catalog
from .chassis import ChassisCodeExtractor
from .cleanup import (
    CodeBackfillSummary,
    VariantCleanupSummary,
    apply_model_renames,
    backfill_internal_codes,
    clean_variant_names,
)
from .dedupe import (
    AppearanceDedupeSummary,
    CatalogMerger,
    DedupeSummary,
    DuplicateGroup,
    GenerationRecord,
    MergeReport,
    ModelRenameResult,
    dedupe_appearances,
    find_duplicate_generations,
    group_duplicate_generations,
)
from .linking import LinkSummary, ReviewItem, link_unresolved_appearances
from .normalize import code_key, has_artifacts, match_key, normalize, slugify, strip_artifacts
from .resolver import (
    MalformedMentionError,
    MatchConfidence,
    MatchResult,
    MentionResolver,
    RawMention,
    Suggestion,
    resolve_mention,
)
from .rules import RulesSummary, apply_drivetrain_rules
from .run_service import CatalogRunService, resolve_status

__all__ = [
    "AliasTable",
    "AppearanceDedupeSummary",
    "AuditCheck",
    "AuditReport",
    "CandidateIndex",
    "CatalogEntry",
    "CatalogMerger",
    "CatalogRunService",
    "ChassisCodeExtractor",
    "CodeBackfillSummary",
    "DedupeSummary",
    "DuplicateGroup",
    "GenerationRecord",
    "LinkSummary",
    "MalformedMentionError",
    "MatchConfidence",
    "MatchResult",
    "MentionResolver",
    "MergeReport",
    "ModelRenameResult",
    "RawMention",
    "ReviewItem",
    "RulesSummary",
    "Suggestion",
    "VariantCleanupSummary",
    "apply_drivetrain_rules",
    "apply_model_renames",
    "backfill_internal_codes",
    "build_candidate_index",
    "clean_variant_names",
    "code_key",
    "dedupe_appearances",
    "find_duplicate_generations",
    "group_duplicate_generations",
    "has_artifacts",
    "link_unresolved_appearances",
    "load_catalog",
    "match_key",
    "normalize",
    "resolve_mention",
    "resolve_status",
    "run_catalog_audit",
    "slugify",
    "strip_artifacts",
]
