"""
Augment Token Manager Package.

Admin API for storing, validating and sharing Augment access tokens, with
SQL or Redis storage.
"""

__version__ = "1.0.0"
__description__ = "Admin API for managing Augment access tokens"
