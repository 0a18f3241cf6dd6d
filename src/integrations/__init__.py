from .groq.client import EnhancedGroqClient
from .postmark.client import PostmarkClient

__all__ = [
    'EnhancedGroqClient',
    'PostmarkClient',
]
