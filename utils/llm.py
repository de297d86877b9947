import os
import httpx
import logging
from typing import Dict, List, Optional

from dotenv import load_dotenv

from brain.models import PromptContext

load_dotenv()

logger = logging.getLogger(__name__)


class DeepSeekClient:
    def __init__(self, api_key: str, base_url: str = "https://api.deepseek.com", model: str = "deepseek-chat", timeout: float = 30.0):
        """
        Initialize DeepSeek client.

        Args:
            api_key: DeepSeek API key
            base_url: Base URL for API (default: https://api.deepseek.com)
            model: Model name (default: deepseek-chat)
            timeout: Read timeout in seconds (default: 30.0, outreach messages are short)
        """
        self.api_key = api_key
        self.base_url = base_url.rstrip("/")
        self.model = model
        self.timeout = timeout

    def _headers(self) -> Dict[str, str]:
        return {
            "Authorization": f"Bearer {self.api_key}",
            "Content-Type": "application/json"
        }

    def _timeout_config(self) -> httpx.Timeout:
        return httpx.Timeout(
            connect=10.0,
            read=self.timeout,
            write=10.0,
            pool=10.0
        )

    async def chat(self, messages: List[Dict[str, str]], **kwargs) -> str:
        """
        Non-streaming chat completion (OpenAI-compatible).
        Returns the message content, empty string if the model returned none.
        """
        payload = {
            "model": self.model,
            "messages": messages
        }
        if kwargs:
            payload.update(kwargs)

        url = f"{self.base_url}/v1/chat/completions"
        async with httpx.AsyncClient(timeout=self._timeout_config()) as client:
            resp = await client.post(url, headers=self._headers(), json=payload)
            resp.raise_for_status()
            data = resp.json()
            message = data["choices"][0]["message"]
            return message.get("content") or ""


class DeepSeekMessageGenerator:
    """Writes outreach messages from a PromptContext. Returns None when the model has nothing to say."""

    def __init__(self, client: DeepSeekClient, max_tokens: int = 200, temperature: float = 0.8):
        self.client = client
        self.max_tokens = max_tokens
        self.temperature = temperature

    async def generate(self, prompt_context: PromptContext) -> Optional[str]:
        messages = [
            {"role": "system", "content": prompt_context.system_prompt},
            {"role": "user", "content": prompt_context.prompt}
        ]
        content = await self.client.chat(messages, max_tokens=self.max_tokens, temperature=self.temperature)
        content = content.strip()
        if not content:
            logger.warning(f"DeepSeek returned an empty message for {prompt_context.kind}")
            return None
        return content


def get_message_generator(max_tokens: int = 200, temperature: float = 0.8) -> Optional[DeepSeekMessageGenerator]:
    """
    Build the generator from environment variables.

    Returns:
        DeepSeekMessageGenerator, or None when DEEPSEEK_API_KEY is not set
        (the executor then uses template messages only)
    """
    api_key = os.getenv("DEEPSEEK_API_KEY")
    if not api_key:
        logger.warning("DEEPSEEK_API_KEY not set, brain messages will use templates")
        return None

    client = DeepSeekClient(
        api_key=api_key,
        base_url=os.getenv("DEEPSEEK_BASE_URL", "https://api.deepseek.com"),
        model=os.getenv("DEEPSEEK_MODEL", "deepseek-chat")
    )
    return DeepSeekMessageGenerator(client, max_tokens=max_tokens, temperature=temperature)
