"""
Credential stores.

Both stores implement `async get_key(provider_id) -> Optional[str]`, the
only thing ProviderClient needs. Keys are never logged.
"""
import logging
import os
from pathlib import Path
from typing import Optional, Protocol, Union

import aiofiles
import yaml

logger = logging.getLogger(__name__)


class CredentialProvider(Protocol):
    async def get_key(self, provider_id: str) -> Optional[str]:
        ...


class KeyStore:
    """
    YAML-backed key store.

    File layout:
        providers:
          deepseek:
            api_key: sk-...
    """

    def __init__(self, keys_path: Union[str, Path]):
        self.keys_path = Path(keys_path)

    async def load_keys_config(self) -> dict:
        """Load the keys file (empty layout when missing)."""
        if not self.keys_path.exists():
            return {"providers": {}}

        async with aiofiles.open(self.keys_path, 'r', encoding='utf-8') as f:
            content = await f.read()
            data = yaml.safe_load(content)
            if not isinstance(data, dict):
                return {"providers": {}}
            data.setdefault("providers", {})
            return data

    async def save_keys_config(self, keys_data: dict):
        """
        Save the keys file atomically.

        Writes a temporary file next to the target, then replaces it.
        """
        self.keys_path.parent.mkdir(parents=True, exist_ok=True)
        temp_path = self.keys_path.with_suffix('.yaml.tmp')
        async with aiofiles.open(temp_path, 'w', encoding='utf-8') as f:
            content = yaml.safe_dump(
                keys_data,
                allow_unicode=True,
                sort_keys=False
            )
            await f.write(content)

        temp_path.replace(self.keys_path)

    async def get_key(self, provider_id: str) -> Optional[str]:
        keys_data = await self.load_keys_config()
        entry = (keys_data.get("providers") or {}).get(provider_id) or {}
        api_key = entry.get("api_key") if isinstance(entry, dict) else None
        if isinstance(api_key, str) and api_key.strip():
            return api_key.strip()
        return None

    async def set_key(self, provider_id: str, api_key: str):
        keys_data = await self.load_keys_config()
        keys_data["providers"].setdefault(provider_id, {})["api_key"] = api_key
        await self.save_keys_config(keys_data)
        logger.info(f"Stored API key for provider {provider_id}")

    async def delete_key(self, provider_id: str):
        keys_data = await self.load_keys_config()
        if provider_id in keys_data["providers"]:
            del keys_data["providers"][provider_id]
            await self.save_keys_config(keys_data)
            logger.info(f"Deleted API key for provider {provider_id}")

    async def has_key(self, provider_id: str) -> bool:
        return await self.get_key(provider_id) is not None


class EnvKeyStore:
    """Reads NOTEGEN_<PROVIDER_ID>_API_KEY, e.g. NOTEGEN_DEEPSEEK_API_KEY."""

    def __init__(self, prefix: str = "NOTEGEN_"):
        self.prefix = prefix

    def variable_name(self, provider_id: str) -> str:
        return f"{self.prefix}{provider_id.upper().replace('-', '_')}_API_KEY"

    async def get_key(self, provider_id: str) -> Optional[str]:
        value = os.environ.get(self.variable_name(provider_id), "").strip()
        return value or None


class StaticKeyStore:
    """In-memory keys, for callers that manage credentials themselves."""

    def __init__(self, keys: Optional[dict] = None):
        self._keys = dict(keys or {})

    async def get_key(self, provider_id: str) -> Optional[str]:
        return self._keys.get(provider_id) or None
