"""
CoursePilot Classroom - Runtime components for loading and navigating courses.

This module provides:
- ContentTree: Validated course hierarchy
- ContentLoader: Load courses and assessments from catalog.db
- ProgressStore: Track learner progress
- Navigator functions and CoursePlayer: progression and resume logic
"""

from .tree import (
    ContentTree,
    Position,
)

from .loader import (
    ContentLoader,
    ContentProvider,
    SCHEMA,
)

from .catalog import (
    load_catalog_file,
    parse_catalog,
    check_integrity,
    compile_catalog,
)

from .progress import (
    ProgressStore,
    ProgressStoreAdapter,
)

from .navigator import (
    CoursePlayer,
    NavigationLesson,
    NavigationModule,
    advance,
    completed_lesson_ids,
    course_progress_percent,
    course_summary,
    is_first,
    is_last,
    jump_to,
    module_progress_percent,
    navigation_tree,
    record_completion,
    resume_position,
    retreat,
)

__all__ = [
    # Tree
    "ContentTree",
    "Position",
    # Loader
    "ContentLoader",
    "ContentProvider",
    "SCHEMA",
    # Catalog
    "load_catalog_file",
    "parse_catalog",
    "check_integrity",
    "compile_catalog",
    # Progress
    "ProgressStore",
    "ProgressStoreAdapter",
    # Navigator
    "CoursePlayer",
    "NavigationLesson",
    "NavigationModule",
    "advance",
    "completed_lesson_ids",
    "course_progress_percent",
    "course_summary",
    "is_first",
    "is_last",
    "jump_to",
    "module_progress_percent",
    "navigation_tree",
    "record_completion",
    "resume_position",
    "retreat",
]
