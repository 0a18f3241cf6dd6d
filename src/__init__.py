"""
Source package initialization.
"""

from . import scheduling
from . import integrations

__all__ = [
    'scheduling',
    'integrations',
]
