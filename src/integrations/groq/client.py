from groq import Groq
from typing import Dict, List, Optional
from datetime import datetime
import asyncio
import logging
import os

from dotenv import load_dotenv

logger = logging.getLogger(__name__)


class EnhancedGroqClient:
    """Groq chat client with retry logic, exponential backoff and in-memory metrics."""

    def __init__(self, api_key: Optional[str] = None, client: Optional[Groq] = None,
                 backoff_base: float = 2.0):
        """Initialize the client with an explicit key or GROQ_API_KEY from the environment."""
        if client is None:
            load_dotenv()
            self.api_key = api_key or os.getenv('GROQ_API_KEY')
            if not self.api_key:
                raise ValueError("GROQ_API_KEY must be provided either through initialization or environment")
            client = Groq(api_key=self.api_key)
        else:
            self.api_key = api_key

        self.client = client
        self.backoff_base = backoff_base
        self.metrics = {
            'requests': [],
            'errors': [],
            'performance': {
                'avg_response_time': 0,
                'total_requests': 0,
                'success_rate': 100
            }
        }

    async def process_with_retry(self,
                                 messages: List[Dict],
                                 model: str = "llama-3.3-70b-versatile",
                                 max_retries: int = 3,
                                 **kwargs):
        """Send a chat completion request, retrying with exponential backoff.

        Args:
            messages: Chat messages in role/content form
            model: Model name
            max_retries: Attempts before giving up
            **kwargs: Extra completion parameters (temperature, response_format...)

        Returns:
            The Groq completion response

        Raises:
            RuntimeError: After max_retries failed attempts
        """
        start_time = datetime.now()
        retries = 0
        last_error = None
        params = {
            'model': model,
            'messages': messages,
            'temperature': 0.2,
            'max_completion_tokens': 2048,
            **kwargs
        }

        while retries < max_retries:
            try:
                response = await asyncio.to_thread(self.client.chat.completions.create, **params)
                self.record_success(start_time)
                return response

            except Exception as e:
                retries += 1
                last_error = str(e)
                self.record_error(last_error)

                if retries >= max_retries:
                    logger.error(f"Failed after {max_retries} retries: {last_error}")
                    raise RuntimeError(f"Failed after {max_retries} retries: {last_error}") from e

                wait_time = self.backoff_base ** retries if self.backoff_base else 0
                logger.warning(f"Attempt {retries} failed. Waiting {wait_time} seconds before retry...")
                await asyncio.sleep(wait_time)

    def record_success(self, start_time: datetime):
        duration = (datetime.now() - start_time).total_seconds()
        self.metrics['requests'].append({
            'timestamp': datetime.now().isoformat(),
            'duration': duration,
            'status': 'success'
        })

        total_reqs = len(self.metrics['requests'])
        self.metrics['performance'].update({
            'avg_response_time': (
                    (self.metrics['performance']['avg_response_time'] * (total_reqs - 1) + duration)
                    / total_reqs
            ),
            'total_requests': total_reqs,
            'success_rate': max(
                0.0, (total_reqs - len(self.metrics['errors'])) / total_reqs * 100
            )
        })

    def record_error(self, error_message: str):
        self.metrics['errors'].append({
            'timestamp': datetime.now().isoformat(),
            'error': error_message
        })

    def get_performance_metrics(self) -> Dict:
        return self.metrics['performance']
