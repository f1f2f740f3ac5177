"""
DocVault
Document access-control and envelope-encryption engine
"""

__version__ = "1.0.0"
