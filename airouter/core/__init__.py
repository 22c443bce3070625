"""
Core infrastructure: configuration, logging, database, cache, errors.
"""
