"""
Content embeddings service: chunked embedding storage across a vector store
and a mirror store, with a reconciler that keeps the mirror aligned.
"""

__version__ = "0.1.0"
