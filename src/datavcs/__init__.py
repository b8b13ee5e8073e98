"""datavcs - Content-addressed version control for large data files.

datavcs tracks large files outside Git by content hash: file bodies live in a
content-addressable storage directory, while small metadata sidecars, a
repository manifest and an append-only reflog record what is tracked.
"""

__version__ = "0.1.0"
__author__ = "datavcs Contributors"

__all__ = ["__version__", "__author__"]
