"""Data integrity checks over the stored document."""
