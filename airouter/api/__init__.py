"""
HTTP API for provider administration and routed calls.
"""
