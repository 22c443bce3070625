"""
Multi-provider AI routing with health tracking, circuit breaking and failover.
"""

__version__ = "1.0.0"
