"""
Contrib — collaborators built on the cache.
"""
