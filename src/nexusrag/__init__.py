"""
nexusrag - hybrid retrieval and indexing core.
"""

__version__ = "0.1.0"
