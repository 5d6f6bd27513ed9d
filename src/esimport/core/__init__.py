"""
Configuration, logging and error handling shared by the pipeline.
"""
