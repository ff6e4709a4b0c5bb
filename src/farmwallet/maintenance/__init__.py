"""Generic data-maintenance operations (ticker names, category renames, text cleanup)."""
