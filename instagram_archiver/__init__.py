"""
Instagram Archiver
Archives profiles, highlights, stories and media from Instagram into a local directory tree
"""

__version__ = "0.1.0"
