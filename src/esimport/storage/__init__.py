"""
Storage module for creating indices and importing documents.
"""
from .elasticsearch_client import ElasticsearchClient
from .models import Character

__all__ = [
    'ElasticsearchClient',
    'Character'
]
