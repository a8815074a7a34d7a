"""
healwright - self-healing browser and API test automation harness.
"""

__version__ = "0.1.0"
