# Multi-provider LLM wrapper
# services/llm_service.py
"""
LLM integration service for SQL generation.
Talks to Gemini, OpenAI and Azure OpenAI; transient provider errors are retried
with exponential backoff, everything else propagates to the caller.
"""

import asyncio
from typing import Dict, Optional, Tuple
import google.generativeai as genai
from google.api_core.exceptions import DeadlineExceeded, ResourceExhausted, ServiceUnavailable
import openai
from openai import AsyncAzureOpenAI, AsyncOpenAI
from tenacity import AsyncRetrying, retry_if_exception_type, stop_after_attempt, wait_exponential
import structlog
from models.schema import SchemaSnapshot
from services.interfaces import SqlGenerator
from utils.config import settings
from utils.sql import extract_sql_from_response


logger = structlog.get_logger()

DEFAULT_MODELS = {
    "gemini": "gemini-1.5-pro",
    "openai": "gpt-4",
    "azure": "gpt-4",
}

TRANSIENT_ERRORS = (
    ResourceExhausted,
    ServiceUnavailable,
    DeadlineExceeded,
    openai.RateLimitError,
    openai.APIConnectionError,
    openai.APITimeoutError,
)

SYSTEM_PROMPT = (
    "You translate business questions into a single read-only SQL SELECT statement. "
    "Return only the SQL."
)


class ProviderNotConfiguredError(Exception):
    """No credentials for the requested provider"""


class LLMService(SqlGenerator):
    """
    Manages interactions with the configured LLM providers.
    Clients are created on first use so a missing key only fails its own provider.
    """

    def __init__(self, config=None):
        self.config = config or settings
        self.default_temperature = self.config.llm_temperature
        self.max_tokens = self.config.llm_max_tokens
        self.retry_attempts = max(1, self.config.llm_retry_attempts)
        self._openai_client: Optional[AsyncOpenAI] = None
        self._azure_client: Optional[AsyncAzureOpenAI] = None
        self._gemini_models: Dict[str, genai.GenerativeModel] = {}
        self._gemini_configured = False
        self.logger = logger.bind(service="LLMService")

    def configured_providers(self) -> list:
        providers = []
        if self.config.gemini_api_key:
            providers.append("gemini")
        if self.config.openai_api_key:
            providers.append("openai")
        if self.config.azure_openai_api_key and self.config.azure_openai_endpoint:
            providers.append("azure")
        return providers

    async def generate_sql(self, prompt: str, schema: SchemaSnapshot) -> Tuple[str, float]:
        """Unpinned generation on the first configured provider"""
        providers = self.configured_providers()
        if not providers:
            raise ProviderNotConfiguredError("No LLM provider is configured")

        provider_id = providers[0]
        return await self.generate_sql_with_model(prompt, schema, provider_id, DEFAULT_MODELS[provider_id])

    async def generate_sql_with_model(
        self,
        prompt: str,
        schema: SchemaSnapshot,
        provider_id: str,
        model_id: str
    ) -> Tuple[str, float]:
        provider = provider_id.lower()

        async for attempt in AsyncRetrying(
            stop=stop_after_attempt(self.retry_attempts),
            wait=wait_exponential(multiplier=1, min=1, max=10),
            retry=retry_if_exception_type(TRANSIENT_ERRORS),
            reraise=True
        ):
            with attempt:
                text = await self.generate(prompt, provider, model_id)

        self.logger.info("LLM generation successful",
                       provider_id=provider,
                       model_id=model_id,
                       prompt_length=len(prompt),
                       response_length=len(text))

        return text, self.estimate_confidence(text, schema)

    async def generate(self, prompt: str, provider_id: str, model_id: str,
                       temperature: Optional[float] = None,
                       max_tokens: Optional[int] = None) -> str:
        """Single completion call without retries"""

        temperature = self.default_temperature if temperature is None else temperature
        max_tokens = max_tokens or self.max_tokens

        if provider_id == "gemini":
            return await self._generate_gemini(prompt, model_id, temperature, max_tokens)
        if provider_id == "openai":
            return await self._generate_chat(self._openai(), prompt, model_id, temperature, max_tokens)
        if provider_id == "azure":
            return await self._generate_chat(self._azure(), prompt, model_id, temperature, max_tokens)

        raise ValueError(f"Unknown LLM provider: {provider_id}")

    async def _generate_gemini(self, prompt: str, model_id: str, temperature: float, max_tokens: int) -> str:
        model = self._gemini(model_id)

        generation_config = genai.types.GenerationConfig(
            temperature=temperature,
            max_output_tokens=max_tokens,
            top_p=0.95,
            top_k=40
        )

        response = await asyncio.to_thread(
            model.generate_content,
            f"{SYSTEM_PROMPT}\n\n{prompt}",
            generation_config=generation_config
        )

        if not response.text:
            raise ValueError("Empty response from LLM")
        return response.text

    async def _generate_chat(self, client, prompt: str, model_id: str, temperature: float, max_tokens: int) -> str:
        response = await client.chat.completions.create(
            model=model_id,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {"role": "user", "content": prompt},
            ],
            temperature=temperature,
            max_tokens=max_tokens
        )

        content = response.choices[0].message.content if response.choices else None
        if not content:
            raise ValueError("Empty response from LLM")
        return content

    def _gemini(self, model_id: str) -> genai.GenerativeModel:
        if not self.config.gemini_api_key:
            raise ProviderNotConfiguredError("GEMINI_API_KEY is not set")

        if not self._gemini_configured:
            genai.configure(api_key=self.config.gemini_api_key)
            self._gemini_configured = True

        if model_id not in self._gemini_models:
            self._gemini_models[model_id] = genai.GenerativeModel(model_id)
        return self._gemini_models[model_id]

    def _openai(self) -> AsyncOpenAI:
        if not self.config.openai_api_key:
            raise ProviderNotConfiguredError("OPENAI_API_KEY is not set")
        if self._openai_client is None:
            self._openai_client = AsyncOpenAI(api_key=self.config.openai_api_key)
        return self._openai_client

    def _azure(self) -> AsyncAzureOpenAI:
        if not (self.config.azure_openai_api_key and self.config.azure_openai_endpoint):
            raise ProviderNotConfiguredError("Azure OpenAI credentials are not set")
        if self._azure_client is None:
            self._azure_client = AsyncAzureOpenAI(
                api_key=self.config.azure_openai_api_key,
                azure_endpoint=self.config.azure_openai_endpoint,
                api_version=self.config.azure_openai_api_version
            )
        return self._azure_client

    @staticmethod
    def estimate_confidence(text: str, schema: SchemaSnapshot) -> float:
        """
        Rough self-assessment of a completion: parseable SQL that touches the
        known tables scores highest.
        """
        sql = extract_sql_from_response(text)
        if not sql:
            return 0.0

        confidence = 0.7
        sql_lower = sql.lower()
        if schema.tables and any(name.lower() in sql_lower for name in schema.table_names()):
            confidence += 0.2
        if "```" not in text:
            confidence += 0.05
        return min(confidence, 0.95)
