"""
Local Elasticsearch provisioning and bulk import.
"""
__version__ = "0.1.0"
