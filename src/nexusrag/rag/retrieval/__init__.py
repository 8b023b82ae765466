"""
Retrieval for nexusrag: query rewriting, hybrid search, and rank fusion.

Import from the submodules directly.
"""
