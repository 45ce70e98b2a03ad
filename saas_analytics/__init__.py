"""
SaaS Analytics Pipeline

Cleans raw SaaS business records into a typed Clean layer and derives fact
and metric tables for dashboard consumption.
"""

__version__ = "1.0.0"
