"""
Domain layer - Core records managed by the token manager.

Entities here are storage-agnostic; both the SQL and the key-value
repositories map their rows onto these types.
"""
