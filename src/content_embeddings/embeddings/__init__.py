"""
Embeddings Package

Record models shared by both stores and the embedding provider client.
"""

from .models import MirrorRecord, Relation, VectorRecord
from .embedder import Embedder

__all__ = ["Embedder", "MirrorRecord", "Relation", "VectorRecord"]
