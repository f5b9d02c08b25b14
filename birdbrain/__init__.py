"""
birdbrain - topic clustering and hybrid search over bookmarked posts.

Posts are embedded with a local SentenceTransformer, grouped into topics
with k-means (k chosen by the elbow method) and searched by fusing cosine
similarity with BM25 lexical relevance. Claude classifies posts into topics
and extracts tasks, ideas and resources from them.
"""

__version__ = "0.1.0"

from birdbrain.context import BirdbrainContext, create_context

__all__ = ["BirdbrainContext", "create_context", "__version__"]
