"""
Similarity-driven graph layout and spatial indexing.
"""

__version__ = "0.1.0"
