"""Markdown reports, net-worth charts and CSV exports."""
