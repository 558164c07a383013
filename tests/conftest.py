"""Shared pytest fixtures for all tests."""

import json
import shutil
import uuid
from pathlib import Path
from typing import Any, Callable, Dict, List

import httpx
import pytest

from notegen.providers import ProviderRegistry
from notegen.services.key_store import StaticKeyStore

TEST_KEYS = {
    "openai": "sk-" + "a" * 48,
    "deepseek": "sk-" + "b" * 32,
    "zhipu": "c" * 32,
    "alibaba": "sk-" + "d" * 24,
    "siliconflow": "sk-" + "e" * 32,
    "anthropic": "sk-ant-api03-" + "f" * 93,
}


def _create_workspace_temp_dir(kind: str) -> Path:
    """Create a temporary directory under repository-local .pytest_work."""
    repo_root = Path(__file__).resolve().parents[1]
    root_dir = repo_root / ".pytest_work" / kind
    root_dir.mkdir(parents=True, exist_ok=True)
    temp_dir = root_dir / f"{kind}_{uuid.uuid4().hex[:8]}"
    temp_dir.mkdir(parents=True, exist_ok=True)
    return temp_dir


def sse(*payloads: Any, done: bool = True) -> bytes:
    """Encode payloads as an OpenAI-style SSE body."""
    parts = []
    for payload in payloads:
        data = payload if isinstance(payload, str) else json.dumps(payload, ensure_ascii=False)
        parts.append(f"data: {data}\n\n")
    if done:
        parts.append("data: [DONE]\n\n")
    return "".join(parts).encode("utf-8")


def delta(content: str = None, **fields) -> Dict[str, Any]:
    """Build one OpenAI chat.completion.chunk payload."""
    body = dict(fields)
    if content is not None:
        body["content"] = content
    return {"choices": [{"index": 0, "delta": body}]}


class CallbackRecorder:
    """Collects on_partial / on_complete / on_error invocations."""

    def __init__(self):
        self.partials: List[tuple] = []
        self.completes: List[tuple] = []
        self.errors: List[Exception] = []

    def on_partial(self, rendered, metadata):
        self.partials.append((rendered, metadata))

    def on_complete(self, rendered, result):
        self.completes.append((rendered, result))

    def on_error(self, error):
        self.errors.append(error)

    def callbacks(self) -> Dict[str, Callable]:
        return {
            "on_partial": self.on_partial,
            "on_complete": self.on_complete,
            "on_error": self.on_error,
        }


@pytest.fixture
def temp_config_dir():
    """Create temporary directory for config files."""
    temp_dir = _create_workspace_temp_dir("config")
    yield temp_dir
    shutil.rmtree(temp_dir, ignore_errors=True)


@pytest.fixture
def key_store():
    """Credentials for every built-in provider."""
    return StaticKeyStore(TEST_KEYS)


@pytest.fixture
def recorder():
    return CallbackRecorder()


@pytest.fixture
def mock_http():
    """Factory: wrap a request handler in an AsyncClient with MockTransport.

    The handler also records every request it sees in `.requests`.
    """
    clients: List[httpx.AsyncClient] = []

    def factory(handler):
        seen: List[httpx.Request] = []

        async def recording_handler(request: httpx.Request):
            seen.append(request)
            outcome = handler(request)
            if hasattr(outcome, "__await__"):
                outcome = await outcome
            return outcome

        client = httpx.AsyncClient(transport=httpx.MockTransport(recording_handler))
        client.requests = seen
        clients.append(client)
        return client

    return factory


@pytest.fixture
def registry_factory(key_store):
    """Factory: ProviderRegistry bound to a mock HTTP client and test keys."""

    def factory(http_client, **kwargs):
        kwargs.setdefault("credentials", key_store)
        return ProviderRegistry(http_client=http_client, **kwargs)

    return factory
