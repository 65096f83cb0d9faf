"""
Access Control
Layered resource authorization with audit trail
"""

__version__ = "1.0.0"
