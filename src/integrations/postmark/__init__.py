from .client import PostmarkClient, DEFAULT_API_URL

__all__ = [
    'PostmarkClient',
    'DEFAULT_API_URL',
]
