"""
pipecache

Request-pipeline middleware for RPC-style procedures:
1. Resolves browsing mode and merges user visibility exclusions into input
2. Serves repeated reads from a Redis application cache
3. Annotates responses with edge (CDN) cache directives
4. Purges CDN cache tags after successful mutations
"""

__version__ = "0.1.0"
