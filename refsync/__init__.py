"""Reference list ordering and citation renumbering engine."""
