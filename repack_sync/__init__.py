"""
repack-sync: download-source synchronization and catalog matching.
"""

__version__ = "1.0.0"
