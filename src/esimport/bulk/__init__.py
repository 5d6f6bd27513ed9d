"""
Bulk payload generation.
"""
from .payload import BulkFile, write_bulk_payload

__all__ = ['BulkFile', 'write_bulk_payload']
