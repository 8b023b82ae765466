"""
RAG components: chunking, retrieval, and storage.
"""
