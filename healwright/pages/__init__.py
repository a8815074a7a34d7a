"""
Page-level capabilities that page objects compose over.
"""

from healwright.pages.actions import PageActions

__all__ = ["PageActions"]
