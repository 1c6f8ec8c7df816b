"""
Service for interacting with the Google Gemini API.
Issues schema-constrained requests, parses JSON replies and retries
rate-limited calls with exponential backoff.
"""

import asyncio
import json
import logging
import re
import time
from dataclasses import dataclass
from typing import Any, Awaitable, Callable, Dict, Optional

import google.generativeai as genai

logger = logging.getLogger(__name__)

_RATE_LIMIT_PATTERN = re.compile(
    r"resource_exhausted|resource has been exhausted|\b429\b|rate limit|rate-limit|ratelimit",
    re.IGNORECASE,
)


class GeminiServiceError(Exception):
    """Base exception for Gemini service errors"""
    pass


class RateLimitError(GeminiServiceError):
    """Raised when the API reports resource exhaustion or rate limiting"""
    pass


class QuotaExceededError(GeminiServiceError):
    """Raised when API quota is exceeded"""
    pass


class InvalidRequestError(GeminiServiceError):
    """Raised for invalid requests or rejected credentials"""
    pass


class ResponseParseError(GeminiServiceError):
    """Raised when a structured reply is not valid JSON"""
    pass


def is_rate_limit_error(error: Exception) -> bool:
    """Check whether a failure is a rate-limit / resource-exhaustion signal"""
    if isinstance(error, RateLimitError):
        return True
    status = getattr(error, "status", None)
    if isinstance(status, str) and status.upper() == "RESOURCE_EXHAUSTED":
        return True
    return bool(_RATE_LIMIT_PATTERN.search(str(error)))


async def retry_with_backoff(operation: Callable[[], Awaitable[Any]],
                             retries: int = 3,
                             delay: float = 2.0,
                             sleep: Optional[Callable[[float], Awaitable[Any]]] = None) -> Any:
    """Run ``operation``, retrying only rate-limited failures.

    Each retry waits ``delay`` seconds and doubles it for the next one. Any
    other failure, or a rate limit after the budget is spent, propagates the
    original exception unchanged.
    """
    sleep = sleep or asyncio.sleep

    while True:
        try:
            return await operation()
        except Exception as error:
            if retries <= 0 or not is_rate_limit_error(error):
                raise
            logger.warning(f"Rate limited ({error}). Retrying in {delay:.2f}s, {retries} retries left")

        await sleep(delay)
        retries -= 1
        delay *= 2


@dataclass
class GenerationRequest:
    """Request object for content generation"""
    prompt: str
    model: str
    schema: Optional[Dict[str, Any]] = None
    max_tokens: int = 8192
    temperature: float = 0.7

    @property
    def structured(self) -> bool:
        return self.schema is not None


class GeminiService:
    """Generation client for the hosted Gemini models"""

    def __init__(self, api_key: str, config: Dict[str, Any]):
        """Initialize the Gemini service from the ``api`` config section"""
        self.config = config
        self._api_config = config.get("api", {})

        self._max_retries = self._api_config.get("max_retries", 3)
        self._retry_delay = self._api_config.get("retry_delay", 2.0)
        self._timeout = self._api_config.get("timeout", 300)

        self._models: Dict[str, Any] = {}

        self._stats = {
            "total_requests": 0,
            "attempts": 0,
            "errors": 0,
            "parse_errors": 0,
            "total_generation_time": 0.0
        }

        try:
            genai.configure(api_key=api_key)
            logger.info(
                f"Initialized Gemini API with models: {self.default_model}, {self.fast_model}"
            )
        except Exception as e:
            raise GeminiServiceError(f"Failed to initialize Gemini API: {e}") from e

    @property
    def default_model(self) -> str:
        return self._api_config.get("model", "gemini-2.5-pro")

    @property
    def fast_model(self) -> str:
        return self._api_config.get("fast_model", "gemini-2.5-flash")

    def _get_model(self, name: str):
        if name not in self._models:
            self._models[name] = genai.GenerativeModel(name)
        return self._models[name]

    def _classify_error(self, error: Exception) -> Exception:
        """Classify and convert generic errors to specific types"""
        if isinstance(error, GeminiServiceError) and type(error) is not GeminiServiceError:
            return error

        error_msg = str(error).lower()

        if is_rate_limit_error(error):
            return RateLimitError(str(error))
        elif "quota" in error_msg:
            return QuotaExceededError(str(error))
        elif any(marker in error_msg for marker in ("invalid", "bad request", "permission", "api key")):
            return InvalidRequestError(str(error))
        else:
            return GeminiServiceError(str(error))

    async def generate_text(self, prompt: str, model: Optional[str] = None) -> str:
        """Generate free text"""
        request = self._build_request(prompt, model, None)
        return await self._generate(request)

    async def generate_json(self, prompt: str, schema: Optional[Dict[str, Any]] = None,
                            model: Optional[str] = None) -> Any:
        """Generate a reply constrained to ``schema`` and parse it as JSON"""
        request = self._build_request(prompt, model, schema)
        text = await self._generate(request)

        try:
            return json.loads(text)
        except json.JSONDecodeError as e:
            self._stats["parse_errors"] += 1
            logger.error(f"Unparseable JSON from {request.model}: {text[:200]!r}")
            raise ResponseParseError(f"Model returned invalid JSON: {e}") from e

    def _build_request(self, prompt: str, model: Optional[str],
                       schema: Optional[Dict[str, Any]]) -> GenerationRequest:
        return GenerationRequest(
            prompt=prompt,
            model=model or self.default_model,
            schema=schema,
            max_tokens=self._api_config.get("max_tokens", 8192),
            temperature=self._api_config.get("temperature", 0.7)
        )

    async def _generate(self, request: GenerationRequest) -> str:
        self._stats["total_requests"] += 1

        async def attempt() -> str:
            self._stats["attempts"] += 1
            start_time = time.time()
            try:
                content = await self._make_api_request(request)
            except GeminiServiceError:
                self._stats["errors"] += 1
                raise
            generation_time = time.time() - start_time
            self._stats["total_generation_time"] += generation_time
            logger.debug(
                f"Generated {len(content)} characters with {request.model} in {generation_time:.2f}s"
            )
            return content

        return await retry_with_backoff(attempt, self._max_retries, self._retry_delay)

    async def _make_api_request(self, request: GenerationRequest) -> str:
        """Make the actual API request with timeout handling"""
        loop = asyncio.get_running_loop()
        try:
            return await asyncio.wait_for(
                loop.run_in_executor(None, self._sync_generate_content, request),
                timeout=self._timeout
            )
        except asyncio.TimeoutError:
            raise GeminiServiceError(f"Request timed out after {self._timeout} seconds")
        except Exception as e:
            raise self._classify_error(e) from e

    def _sync_generate_content(self, request: GenerationRequest) -> str:
        """Synchronous content generation"""
        generation_config = genai.types.GenerationConfig(
            max_output_tokens=request.max_tokens,
            temperature=request.temperature,
            response_mime_type="application/json" if request.structured else None,
            response_schema=request.schema
        )

        response = self._get_model(request.model).generate_content(
            request.prompt,
            generation_config=generation_config
        )

        if not response or not response.parts:
            raise GeminiServiceError("API returned empty response")

        return response.text

    def get_statistics(self) -> Dict[str, Any]:
        """Get service statistics"""
        total = self._stats["total_requests"]
        return {
            **self._stats,
            "retries": self._stats["attempts"] - total,
            "average_generation_time": (
                self._stats["total_generation_time"] / total if total > 0 else 0
            ),
            "config": {
                "model": self.default_model,
                "fast_model": self.fast_model,
                "max_retries": self._max_retries,
                "retry_delay": self._retry_delay
            }
        }
