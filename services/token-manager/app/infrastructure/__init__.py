"""
Infrastructure layer - HTTP clients for partner services.
"""
