"""
Background Removal Batch Service

Batch upload, staging and external-processor invocation with status
polling, plus the polling client and its local result cache.
"""

__version__ = "1.0.0"
