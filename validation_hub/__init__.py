"""
Validation Hub - tile data pipeline.
"""

__version__ = "1.0.0"
