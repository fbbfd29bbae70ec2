"""API client module for conceptvault.

This module handles the interaction with the LLM providers behind the
analysis, quiz and assessment services.
"""

import logging
import re
import time
import threading
from typing import Any, Dict, List, Optional

import anthropic
import httpx
import requests
import yaml
from openai import OpenAI

from conceptvault.config import provider_config_from, rate_limit_config_from
from conceptvault.exceptions import ExternalServiceError, ValidationError
from conceptvault.models import RateLimitConfig

logger = logging.getLogger(__name__)


class APIRateLimiter:
    """Handles API rate limiting.

    Keeps track of request times and waits when the provider limit would be
    exceeded.

    Attributes:
        config (RateLimitConfig): Configuration for rate limiting
        request_times (List[float]): Timestamps of recent requests
    """

    def __init__(self, config: RateLimitConfig):
        self.config = config
        self.request_times: List[float] = []
        self._lock = threading.Lock()

    def wait_if_needed(self) -> None:
        """Wait if we're exceeding rate limits."""
        with self._lock:
            now = time.time()
            self.request_times = [t for t in self.request_times if now - t < 60]

            if len(self.request_times) >= self.config.max_requests_per_minute:
                sleep_time = 60 - (now - self.request_times[0])
                if sleep_time > 0:
                    logger.info(f"Rate limit reached, waiting {sleep_time:.2f} seconds")
                    time.sleep(sleep_time)

            self.request_times.append(now)
            logger.debug(f"Current request count: {len(self.request_times)}/{self.config.max_requests_per_minute}")


class APIClientFactory:
    """Factory for creating provider SDK clients.

    Attributes:
        config (Dict): Configuration dictionary
    """

    def __init__(self, config: Dict):
        self.config = config

    def create_client(self, provider_name: Optional[str] = None) -> Any:
        """Create an API client for the specified provider.

        Args:
            provider_name: Name of the provider (uses default if None)

        Returns:
            Any: The initialized API client

        Raises:
            ValidationError: If the provider configuration is invalid
        """
        provider_name = provider_name or self.config.get("provider")
        if not provider_name:
            raise ValidationError("No default provider specified in configuration")

        provider_config = provider_config_from(self.config, provider_name)
        if not provider_config.api_key:
            raise ValidationError(f"{provider_name.title()} API key not found in config")

        if provider_name == "anthropic":
            logger.info(f"Initializing Anthropic client with base URL: {provider_config.base_url}")
            return anthropic.Anthropic(
                api_key=provider_config.api_key,
                base_url=provider_config.base_url or "https://api.anthropic.com"
            )

        http_client = httpx.Client(
            timeout=httpx.Timeout(
                connect=10.0,
                read=120.0,
                write=20.0,
                pool=10.0
            ),
            limits=httpx.Limits(
                max_keepalive_connections=5,
                max_connections=10,
                keepalive_expiry=30.0
            )
        )

        if provider_name == "openai":
            logger.info(f"Initializing OpenAI client with base URL: {provider_config.base_url}")
            return OpenAI(
                api_key=provider_config.api_key,
                base_url=provider_config.base_url or "https://api.openai.com/v1",
                http_client=http_client
            )

        # Any other provider is assumed to speak the OpenAI protocol.
        if not provider_config.base_url:
            raise ValidationError(f"Base URL for provider '{provider_name}' not specified in config")
        logger.info(f"Initializing generic client for {provider_name} with base URL: {provider_config.base_url}")
        return OpenAI(
            api_key=provider_config.api_key,
            base_url=provider_config.base_url,
            http_client=http_client
        )


class LLMClient:
    """Sends one prompt to the configured provider and returns the text reply.

    Calls are made once; retrying is left to the caller.

    Attributes:
        config (Dict): Configuration dictionary
        client (Any): Provider SDK client
        rate_limiter (APIRateLimiter): Rate limiter for API calls
    """

    def __init__(self, config: Dict, client: Optional[Any] = None):
        self.config = config
        self.provider_name = config.get("provider")
        self.client = client if client is not None else APIClientFactory(config).create_client()
        self.rate_limiter = APIRateLimiter(rate_limit_config_from(config))

    def _model_settings(self) -> Dict[str, Any]:
        provider_config = provider_config_from(self.config, self.provider_name)
        model_name = self.config.get("current_model")
        for model in provider_config.models:
            if model.name == model_name:
                return {"name": model.name, "max_tokens": model.max_tokens, "temperature": model.temperature}

        if provider_config.models:
            model = provider_config.models[0]
            logger.warning(f"Model {model_name} not found, using {model.name}")
            return {"name": model.name, "max_tokens": model.max_tokens, "temperature": model.temperature}
        raise ValidationError(f"No models configured for provider '{self.provider_name}'")

    def generate(self, prompt: str) -> str:
        """Generate a reply for the prompt.

        Args:
            prompt: The prompt to send

        Returns:
            str: The reply text

        Raises:
            ExternalServiceError: If the call fails or the reply is empty
        """
        settings = self._model_settings()
        self.rate_limiter.wait_if_needed()

        try:
            if self.provider_name == "anthropic":
                logger.debug(f"Using Anthropic API with model {settings['name']}")
                response = self.client.messages.create(
                    model=settings["name"],
                    max_tokens=settings["max_tokens"],
                    temperature=settings["temperature"],
                    messages=[{"role": "user", "content": prompt}]
                )
                content = response.content[0].text
            else:
                logger.debug(f"Using {self.provider_name} API with model {settings['name']}")
                try:
                    response = self.client.chat.completions.create(
                        model=settings["name"],
                        max_tokens=settings["max_tokens"],
                        temperature=settings["temperature"],
                        messages=[{"role": "user", "content": prompt}]
                    )
                    content = response.choices[0].message.content
                except (AttributeError, NotImplementedError) as e:
                    logger.debug(f"Chat completions not available for {self.provider_name}, using HTTP request: {e}")
                    content = self._post_chat_completion(prompt, settings)
        except ExternalServiceError:
            raise
        except Exception as e:
            logger.error(f"{self.provider_name} API call failed: {e}")
            raise ExternalServiceError(f"LLM request failed: {e}") from e

        if not content:
            logger.error("Empty content in API response")
            raise ExternalServiceError("Empty content in API response")
        logger.info(f"Received {len(content)} characters from {self.provider_name} API")
        return content

    def _post_chat_completion(self, prompt: str, settings: Dict[str, Any]) -> str:
        provider_config = provider_config_from(self.config, self.provider_name)
        url = f"{provider_config.base_url}/chat/completions"
        headers = {
            "Authorization": f"Bearer {provider_config.api_key}",
            "Content-Type": "application/json"
        }
        data = {
            "model": settings["name"],
            "messages": [{"role": "user", "content": prompt}],
            "temperature": settings["temperature"],
            "max_tokens": settings["max_tokens"]
        }

        response = requests.post(url, headers=headers, json=data, timeout=120)
        if response.status_code != 200:
            logger.error(f"API error: {response.status_code} - {response.text}")
            raise ExternalServiceError(f"API error: {response.status_code}")

        result = response.json()
        if not result.get("choices"):
            logger.error("No choices in API response")
            raise ExternalServiceError("No content in API response")
        return result["choices"][0]["message"]["content"]


def parse_yaml_reply(text: str) -> Any:
    """Parse a YAML reply, tolerating a surrounding markdown code fence.

    Raises:
        ExternalServiceError: If the reply is not valid YAML
    """
    match = re.search(r"```(?:ya?ml)?\s*\n(.*?)```", text, re.DOTALL)
    body = match.group(1) if match else text
    try:
        return yaml.safe_load(body)
    except yaml.YAMLError as e:
        logger.error(f"Could not parse YAML reply: {e}")
        raise ExternalServiceError(f"Unparseable reply: {e}") from e
