"""
Knowledge Graph module.

Merges the collector results into one read-only graph of files, commits,
developers, tokens and components.

Components:
- GraphAssembler: deduplicating merge of the three collector results
- KnowledgeGraph: the assembled graph, queried by node id and relation
- GraphBuilder: runs the collectors in parallel, then assembles
"""
