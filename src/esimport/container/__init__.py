"""
Container runtime management.
"""
from .docker_manager import DockerManager

__all__ = ['DockerManager']
