"""
Storage module for the design-system knowledge graph.

Canonical path normalization plus SQLite persistence of assembled graphs.
"""
