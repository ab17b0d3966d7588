"""
Service layer - business operations on users, sessions and tokens.
"""
