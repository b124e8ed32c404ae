"""
Gatehouse - authentication and authorization core for multi-tenant APIs.
"""

__version__ = "0.1.0"
