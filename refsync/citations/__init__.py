"""Citations package.

Reference list ordering engine, citation renumbering and the filesystem
document store that commits both together.
"""

from .numbering import (
    format_number_list,
    parse_number_list,
)

from .position_map import (
    DELETED,
    PositionMap,
    build_alphabetical_map,
    build_appearance_map,
    build_delete_map,
    build_move_map,
    build_year_map,
)

from .rewriter import (
    RewriteResult,
    rewrite_citation,
    rewrite_text,
)

from .reordering import (
    ChangeSet,
    CitationUpdate,
    ReferenceChange,
    delete_reference,
    move_reference,
    sort_alphabetically,
    sort_by_appearance,
    sort_by_year,
)

from .store import (
    DocumentStore,
    DocumentTransaction,
)

from .service import (
    CitationReferenceService,
    CommitResult,
    commit_change_set,
)

__all__ = [
    "format_number_list",
    "parse_number_list",

    "DELETED",
    "PositionMap",
    "build_alphabetical_map",
    "build_appearance_map",
    "build_delete_map",
    "build_move_map",
    "build_year_map",

    "RewriteResult",
    "rewrite_citation",
    "rewrite_text",

    "ChangeSet",
    "CitationUpdate",
    "ReferenceChange",
    "delete_reference",
    "move_reference",
    "sort_alphabetically",
    "sort_by_appearance",
    "sort_by_year",

    "DocumentStore",
    "DocumentTransaction",

    "CitationReferenceService",
    "CommitResult",
    "commit_change_set",
]
