"""REST API over the farmwallet store."""
