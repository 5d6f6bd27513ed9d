"""
Dataset download and conversion.
"""
from .wikipedia import WikipediaDatasetClient, parse_characters

__all__ = ['WikipediaDatasetClient', 'parse_characters']
