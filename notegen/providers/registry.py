"""
Provider Registry

Catalogue of backend metadata plus lazily created, shared ProviderClient
instances. Concurrent first access to a provider creates exactly one client.
"""
import asyncio
import logging
import re
import time
from pathlib import Path
from typing import Dict, List, Optional, Union

import aiofiles
import httpx
import yaml
from pydantic import ValidationError

from ..config import settings
from ..errors import GenerationError, ProviderConfigError, UnknownProviderError
from ..services.key_store import CredentialProvider
from ..utils.llm_logger import LLMLogger, get_llm_logger
from .adapters import ADAPTERS, AdapterPair, normalize_endpoint
from .builtin import BUILTIN_PROVIDERS
from .client import ProviderClient
from .types import (
    CustomProviderConfig,
    GenerationRequest,
    ProviderMetadata,
    ProviderTestResult,
    ProviderType,
    ValidationResult,
)

logger = logging.getLogger(__name__)

TEMPERATURE_RANGE = (0.0, 2.0)
MAX_TOKENS_RANGE = (1, 32000)

# Connection test request
PROVIDER_TEST_PROMPT = "Hello"
PROVIDER_TEST_MAX_TOKENS = 10


class _InlineKeyCredentials:
    """Prefers a key stored on the custom provider config, then the shared store."""

    def __init__(self, api_key: Optional[str], fallback: Optional[CredentialProvider]):
        self._api_key = api_key
        self._fallback = fallback

    async def get_key(self, provider_id: str) -> Optional[str]:
        if self._api_key:
            return self._api_key
        if self._fallback is None:
            return None
        return await self._fallback.get_key(provider_id)


class ProviderRegistry:
    """
    Provider metadata catalogue and client cache.

    Usage:
        registry = ProviderRegistry(credentials=KeyStore(settings.keys_config_path))
        client = await registry.load_provider("deepseek")
        result = await client.generate_content(request)
    """

    # Mapping of sdk_class names to builder/parser pairs
    _adapters: Dict[str, AdapterPair] = ADAPTERS

    def __init__(
        self,
        credentials: Optional[CredentialProvider] = None,
        *,
        http_client: Optional[httpx.AsyncClient] = None,
        llm_logger: Optional[LLMLogger] = None,
        timeout: Optional[float] = None,
    ):
        self.credentials = credentials
        self.http_client = http_client
        if llm_logger is None and settings.log_interactions:
            llm_logger = get_llm_logger()
        self.llm_logger = llm_logger
        self.timeout = timeout

        self._metadata: Dict[str, ProviderMetadata] = dict(BUILTIN_PROVIDERS)
        self._custom_configs: Dict[str, CustomProviderConfig] = {}
        self._instances: Dict[str, "asyncio.Future[ProviderClient]"] = {}
        self._lock = asyncio.Lock()

    # ==================== Metadata queries ====================

    def get_metadata(self, provider_id: str) -> ProviderMetadata:
        """
        Get provider metadata.

        Raises:
            UnknownProviderError: if the id is neither built-in nor registered
        """
        metadata = self._metadata.get(provider_id)
        if metadata is None:
            raise UnknownProviderError(f"unknown provider '{provider_id}'", provider_id=provider_id)
        return metadata

    def get_all_provider_ids(self) -> List[str]:
        return list(self._metadata)

    def get_all_metadata(self) -> List[ProviderMetadata]:
        return list(self._metadata.values())

    def is_valid_provider_id(self, provider_id: str) -> bool:
        return provider_id in self._metadata

    def get_default_model(self, provider_id: str) -> str:
        return self.get_metadata(provider_id).default_model

    def get_supported_models(self, provider_id: str) -> List[str]:
        return list(self.get_metadata(provider_id).supported_models)

    def supports_thinking(self, provider_id: str) -> bool:
        return self.get_metadata(provider_id).supports_thinking

    def supports_streaming(self, provider_id: str) -> bool:
        return self.get_metadata(provider_id).supports_streaming

    # ==================== Validation ====================

    def validate_api_key(self, provider_id: str, api_key: Optional[str]) -> bool:
        """
        Check a key against the provider's format.

        Custom providers accept anything; built-ins without a pattern accept
        any non-empty key.
        """
        metadata = self.get_metadata(provider_id)
        if metadata.type == ProviderType.CUSTOM:
            return True
        if not api_key:
            return False
        if not metadata.api_key_pattern:
            return True
        return re.fullmatch(metadata.api_key_pattern, api_key.strip()) is not None

    def validate_active_config(
        self,
        provider_id: str,
        model: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
    ) -> ValidationResult:
        """Check a provider/model/sampling combination before use."""
        result = ValidationResult()
        metadata = self._metadata.get(provider_id)
        if metadata is None:
            result.errors.append(f"unknown provider '{provider_id}'")
            return result

        if model and metadata.supported_models and model not in metadata.supported_models:
            message = f"model '{model}' is not listed for {metadata.name}"
            if metadata.strict_models:
                result.errors.append(message)
            else:
                result.warnings.append(message)

        if temperature is not None:
            low, high = TEMPERATURE_RANGE
            if not low <= temperature <= high:
                result.warnings.append(f"temperature {temperature} outside [{low}, {high}]")

        if max_tokens is not None:
            low, high = MAX_TOKENS_RANGE
            if not low <= max_tokens <= high:
                result.warnings.append(f"max_tokens {max_tokens} outside [{low}, {high}]")

        return result

    # ==================== Custom providers ====================

    def register_custom_provider(
        self, config: Union[CustomProviderConfig, dict]
    ) -> ProviderMetadata:
        """
        Register (or replace) an OpenAI-compatible endpoint.

        Args:
            config: CustomProviderConfig or a dict with the same fields

        Returns:
            The stored metadata

        Raises:
            ProviderConfigError: on invalid id, URL or model list
        """
        if isinstance(config, dict):
            try:
                config = CustomProviderConfig(**config)
            except ValidationError as e:
                raise ProviderConfigError(
                    f"invalid custom provider: {_first_validation_message(e)}",
                    provider_id=config.get("id"),
                ) from e

        metadata = ProviderMetadata(
            id=config.id,
            name=config.name,
            description=config.description,
            type=ProviderType.CUSTOM,
            endpoint=normalize_endpoint(config.base_url),
            sdk_class="custom",
            api_key_pattern=None,
            requires_api_key=config.requires_api_key,
            default_model=config.default_model,
            supported_models=list(config.models),
            supports_thinking=True,
        )

        self._metadata[config.id] = metadata
        self._custom_configs[config.id] = config
        if self._instances.pop(config.id, None) is not None:
            logger.info(f"Dropped cached client for re-registered provider {config.id}")
        logger.info(f"Registered custom provider {config.id} -> {metadata.endpoint}")
        return metadata

    def unregister_custom_provider(self, provider_id: str) -> bool:
        """Remove a custom provider and its cached client. Built-ins cannot be removed."""
        metadata = self._metadata.get(provider_id)
        if metadata is None or metadata.type != ProviderType.CUSTOM:
            return False
        del self._metadata[provider_id]
        self._custom_configs.pop(provider_id, None)
        self._instances.pop(provider_id, None)
        logger.info(f"Unregistered custom provider {provider_id}")
        return True

    async def load_custom_providers(
        self, path: Optional[Union[str, Path]] = None
    ) -> List[ProviderMetadata]:
        """
        Register every entry of a YAML file:

            providers:
              - id: custom_local
                name: Local LM Studio
                base_url: http://localhost:1234
                models: [qwen2.5-7b-instruct]

        Defaults to settings.custom_providers_path. Invalid entries are
        logged and skipped.
        """
        path = Path(path) if path is not None else settings.custom_providers_path
        if not path.exists():
            logger.debug(f"No custom provider file at {path}")
            return []

        async with aiofiles.open(path, 'r', encoding='utf-8') as f:
            content = await f.read()
            data = yaml.safe_load(content) or {}

        entries = data.get("providers") if isinstance(data, dict) else None
        registered: List[ProviderMetadata] = []
        for entry in entries or []:
            if not isinstance(entry, dict):
                logger.warning(f"Skipping malformed custom provider entry in {path}")
                continue
            try:
                registered.append(self.register_custom_provider(entry))
            except ProviderConfigError as e:
                logger.warning(f"Skipping custom provider from {path}: {e}")
        return registered

    # ==================== Client instances ====================

    async def load_provider(self, provider_id: str) -> ProviderClient:
        """
        Get the shared client for a provider, creating it on first use.

        Concurrent callers for the same id await one creation. A failed
        creation is not cached.

        Raises:
            UnknownProviderError: if the id is not known
        """
        async with self._lock:
            future = self._instances.get(provider_id)
            owner = future is None
            if owner:
                future = asyncio.get_running_loop().create_future()
                self._instances[provider_id] = future

        if not owner:
            return await asyncio.shield(future)

        try:
            client = self._create_client(provider_id)
        except Exception as e:
            async with self._lock:
                if self._instances.get(provider_id) is future:
                    del self._instances[provider_id]
            future.set_exception(e)
            # Nobody else may be waiting; mark the exception as retrieved.
            future.exception()
            raise

        future.set_result(client)
        logger.info(f"Loaded provider {provider_id}")
        return client

    def _create_client(self, provider_id: str) -> ProviderClient:
        metadata = self.get_metadata(provider_id)
        pair = self._adapters.get(metadata.sdk_class)
        if pair is None:
            raise ProviderConfigError(
                f"no adapter for sdk_class '{metadata.sdk_class}'",
                provider_id=provider_id,
            )
        builder_class, parser_class = pair

        credentials = self.credentials
        custom = self._custom_configs.get(provider_id)
        if custom is not None and custom.api_key:
            credentials = _InlineKeyCredentials(custom.api_key, self.credentials)

        return ProviderClient(
            metadata,
            builder_class(),
            parser_class,
            credentials,
            http_client=self.http_client,
            timeout=self.timeout,
            llm_logger=self.llm_logger,
        )

    def clear_cache(self) -> None:
        self._instances.clear()

    # ==================== Provider setup ====================

    async def configure_provider(self, provider_id: str, api_key: str) -> None:
        """
        Store a key for a provider after checking its format.

        Raises:
            UnknownProviderError: if the id is not known
            ProviderConfigError: on an empty or malformed key, or when the
                credential store cannot save keys
        """
        metadata = self.get_metadata(provider_id)
        api_key = (api_key or "").strip()
        if not api_key or not self.validate_api_key(provider_id, api_key):
            raise ProviderConfigError(
                f"API key does not match the expected format for {metadata.name}",
                provider_id=provider_id,
            )

        set_key = getattr(self.credentials, "set_key", None)
        if set_key is None:
            raise ProviderConfigError(
                "credential store does not accept new keys",
                provider_id=provider_id,
            )
        await set_key(provider_id, api_key)
        logger.info(f"Configured API key for provider {provider_id}")

    async def is_provider_configured(self, provider_id: str) -> bool:
        """True when a request to this provider would have the credential it needs."""
        metadata = self._metadata.get(provider_id)
        if metadata is None:
            return False
        if not metadata.requires_api_key:
            return True
        custom = self._custom_configs.get(provider_id)
        if custom is not None and custom.api_key:
            return True
        if self.credentials is None:
            return False
        return bool(await self.credentials.get_key(provider_id))

    async def test_provider(self, provider_id: str, model: Optional[str] = None) -> ProviderTestResult:
        """
        Send a minimal request and report whether it completed.

        Generation failures are returned in the result, not raised.

        Raises:
            UnknownProviderError: if the id is not known
        """
        client = await self.load_provider(provider_id)
        request = GenerationRequest(
            note_id=f"provider-test-{provider_id}",
            prompt=PROVIDER_TEST_PROMPT,
            model=model,
            max_tokens=PROVIDER_TEST_MAX_TOKENS,
        )

        start_time = time.perf_counter()
        try:
            result = await client.generate_content(request)
        except GenerationError as e:
            latency_ms = int((time.perf_counter() - start_time) * 1000)
            logger.warning(f"Provider test failed for {provider_id}: {e}")
            return ProviderTestResult(
                provider_id=provider_id,
                model=e.model or model,
                success=False,
                latency_ms=latency_ms,
                message=str(e),
                error_category=e.category.value,
                http_status=getattr(e, "status_code", None),
            )
        latency_ms = int((time.perf_counter() - start_time) * 1000)

        logger.info(f"Provider test passed for {provider_id} in {latency_ms}ms")
        return ProviderTestResult(
            provider_id=provider_id,
            model=result.model,
            success=True,
            latency_ms=latency_ms,
            message="Connection OK",
        )


def _first_validation_message(error: ValidationError) -> str:
    errors = error.errors()
    if not errors:
        return str(error)
    first = errors[0]
    location = ".".join(str(part) for part in first.get("loc", ()))
    message = first.get("msg", "invalid value")
    return f"{location}: {message}" if location else message
