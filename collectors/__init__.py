"""
Collectors for the design-system knowledge graph.

Independent, read-only passes over one project:

- RepositoryInspector: typed access to git metadata
- GitHistoryCollector: commits, developers and file changes
- UsageCollector: design-token references, hardcoded values, components
- ImportCollector: file imports, dependency graph and cycles

Each collector returns a result record (payload, diagnostics, status) and
never raises across its boundary.
"""
