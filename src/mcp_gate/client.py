"""
Completion clients with unified chat() and stream() methods.
"""

from __future__ import annotations

import logging
from abc import ABC, abstractmethod
from typing import (
    Any,
    AsyncGenerator,
    ClassVar,
    Optional,
    Protocol,
    Self,
    Sequence,
    Union,
)

from anthropic import AsyncAnthropic
from anthropic.types import Message
from openai import AsyncOpenAI, AsyncStream
from openai.types.chat import ChatCompletion, ChatCompletionChunk

from mcp_gate.adapters import AnthropicRequestAdapter, OpenAIRequestAdapter
from mcp_gate.errors import classify_error
from mcp_gate.params import normalize_params
from mcp_gate.providers import Provider, get_api_key
from mcp_gate.response import ChatResponse
from mcp_gate.types import ChatMessage, ToolCallResult, ToolCatalogEntry


class RequestAdapter(Protocol):
    """Protocol for adapting between the canonical history and a provider format."""

    def to_provider(
        self, messages: Sequence[ChatMessage], params: dict[str, Any]
    ) -> dict[str, Any]:
        """Convert canonical messages and normalized params to provider-specific request format."""
        ...

    def from_provider(self, raw: Any) -> ChatResponse:
        """Convert provider response to unified ChatResponse."""
        ...

    def stream_text(self, raw_chunk: Any) -> ChatResponse:
        """Extract content from a streaming chunk and return as ChatResponse."""
        ...

    def assistant_message_from(self, raw: Any) -> ChatMessage:
        """Convert a provider response to a canonical assistant ChatMessage."""
        ...

    def tool_result_message(self, result: ToolCallResult) -> ChatMessage:
        """Convert a ToolCallResult to a canonical ChatMessage."""
        ...

    def tool_declarations(self, catalog: Sequence[ToolCatalogEntry]) -> list[dict[str, Any]]:
        """Declare the tool catalog in the provider's tool format."""
        ...


class BaseAsyncLLM(ABC):
    """
    Abstract base class for async-first completion clients.

    ``chat`` and ``stream`` never raise for provider failures: errors come
    back as a ``ChatResponse`` with ``error`` set.
    """

    def __init__(
        self,
        model: str,
        *,
        api_key: str | None = None,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        **kwargs: Any,
    ) -> None:
        self.model = model
        self.logger = logger or logging.getLogger(__name__)
        self.name = name or self.__class__.__name__

    @abstractmethod
    async def _chat_impl(
        self,
        messages: Sequence[ChatMessage],
        params: dict[str, Any],
    ) -> Union[Any, AsyncGenerator[Any, None]]:
        """
        Core asynchronous implementation for sending chat messages to the LLM.
        This method must be implemented by subclasses.

        Args:
            messages: A sequence of chat messages forming the conversation history.
            params: Normalized parameters for the completion request.

        Returns:
            A raw provider response for non-streaming requests, or
            AsyncGenerator yielding raw provider responses for streaming requests.
        """
        ...

    @property
    @abstractmethod
    def adapter(self) -> RequestAdapter:
        """Request adapter for this provider."""
        ...

    async def chat(
        self,
        messages: Sequence[ChatMessage],
        *,
        params: dict[str, Any] | None = None,
    ) -> ChatResponse:
        """
        Send chat request and return a single response.

        Returns a ChatResponse object.
        """
        normalized_params = normalize_params(params)
        normalized_params["stream"] = False

        try:
            raw = await self._chat_impl(messages, normalized_params)
            return self.adapter.from_provider(raw)
        except Exception as exc:
            return self._wrap_error(exc)

    async def stream(
        self,
        messages: Sequence[ChatMessage],
        *,
        params: dict[str, Any] | None = None,
    ) -> AsyncGenerator[ChatResponse, None]:
        """
        Send chat request and return a stream of response chunks.

        Yields ChatResponse objects for each chunk. A failure yields one
        error response and ends the stream.
        """
        normalized_params = normalize_params(params)
        normalized_params["stream"] = True

        raw_result: Any = None
        try:
            raw_result = await self._chat_impl(messages, normalized_params)
            if hasattr(raw_result, "__anext__"):
                async for chunk in raw_result:
                    yield self.adapter.stream_text(chunk)
            else:
                response = self.adapter.from_provider(raw_result)
                response.done = True
                yield response
        except Exception as exc:
            yield self._wrap_error(exc)
        finally:
            close = getattr(raw_result, "aclose", None) or getattr(raw_result, "close", None)
            if close is not None:
                await close()

    def _wrap_error(self, exc: Exception) -> ChatResponse:
        """Wrap exception into an error response."""
        msg = classify_error(exc, self.logger)
        return ChatResponse(content="", error=str(msg))

    def _log(self, message: str, level: int = logging.INFO) -> None:
        self.logger.log(level, f"[{self.name}] {message}")

    # --- lifecycle ---------------------------------------------------------
    async def aclose(self) -> None:
        """
        Close underlying async HTTP clients to avoid cleanup after the loop closes.
        Safe to call multiple times.
        """
        client = getattr(self, "_client", None)
        close = getattr(client, "close", None)
        if close:
            await close()

    async def __aenter__(self) -> "BaseAsyncLLM":
        return self

    async def __aexit__(self, exc_type, exc, tb) -> None:
        await self.aclose()


class SDKBackedLLM(BaseAsyncLLM):
    """
    Completion client backed by one of the vendor SDK async clients.

    Subclasses name the SDK client class and the request adapter; construction
    from credentials and wrapping of a caller's client are shared.
    """

    client_cls: ClassVar[type]
    adapter_cls: ClassVar[type]

    def __init__(
        self,
        model: str,
        *,
        api_key: str,
        timeout: float = 60.0,
        max_retries: int = 0,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
        base_url: Optional[str] = None,
    ) -> None:
        client = self.client_cls(
            api_key=api_key,
            timeout=timeout,
            max_retries=max_retries,
            base_url=base_url,
        )
        self._bind(model, client, logger=logger, name=name)

    def _bind(
        self,
        model: str,
        client: Any,
        *,
        logger: Optional[logging.Logger],
        name: Optional[str],
    ) -> None:
        BaseAsyncLLM.__init__(self, model=model, logger=logger, name=name)
        self.api_key = client.api_key or ""
        self._client = client
        self._adapter = self.adapter_cls()

    @classmethod
    def from_client(
        cls,
        model: str,
        client: Any,
        *,
        logger: Optional[logging.Logger] = None,
        name: Optional[str] = None,
    ) -> Self:
        """Wrap an already configured SDK client; its retry and timeout settings are kept."""
        if not isinstance(client, cls.client_cls):
            raise TypeError(
                f"{cls.__name__}.from_client expects {cls.client_cls.__name__}; "
                f"got {type(client).__name__}"
            )
        self = cls.__new__(cls)
        self._bind(model, client, logger=logger, name=name)
        return self

    @property
    def adapter(self) -> RequestAdapter:
        return self._adapter


class AnthropicLLM(SDKBackedLLM):
    """Messages API client; streaming goes through ``messages.stream``."""

    client_cls = AsyncAnthropic
    adapter_cls = AnthropicRequestAdapter

    async def _chat_impl(
        self,
        messages: Sequence[ChatMessage],
        params: dict[str, Any],
    ) -> Union[Message, AsyncGenerator[Any, None]]:
        args = {"model": self.model, **self._adapter.to_provider(messages, params)}

        self._log(
            f"Sending request to Anthropic model {self.model} "
            f"(Stream: {params['stream']}, messages: {len(args['messages'])}, "
            f"tools: {len(args.get('tools', []))})"
        )

        if params["stream"]:
            return self._events(args)
        return await self._client.messages.create(**args)

    async def _events(self, args: dict[str, Any]) -> AsyncGenerator[Any, None]:
        # the SDK stream must be entered and exited by the consuming task
        async with self._client.messages.stream(**args) as stream:
            async for event in stream:
                yield event


class OpenAILLM(SDKBackedLLM):
    """Chat completions client for OpenAI-compatible endpoints."""

    client_cls = AsyncOpenAI
    adapter_cls = OpenAIRequestAdapter

    async def _chat_impl(
        self,
        messages: Sequence[ChatMessage],
        params: dict[str, Any],
    ) -> Union[ChatCompletion, AsyncStream[ChatCompletionChunk]]:
        args = {
            "model": self.model,
            "stream": params["stream"],
            **self._adapter.to_provider(messages, params),
        }
        self._log(f"Sending request to OpenAI model {self.model} (Stream: {params['stream']})")
        return await self._client.chat.completions.create(**args)


_BACKENDS: dict[Provider, type[SDKBackedLLM]] = {
    Provider.ANTHROPIC: AnthropicLLM,
    Provider.OPENAI: OpenAILLM,
}


def create_llm(
    provider: Provider,
    model: str,
    *,
    api_key: str | None = None,
    client: AsyncOpenAI | AsyncAnthropic | None = None,
    logger: logging.Logger | None = None,
    **client_options: Any,
) -> BaseAsyncLLM:
    """
    Build the completion client for ``provider``.

    A caller-supplied ``client`` is wrapped as is. Otherwise one is created
    from ``api_key`` (looked up in the environment when omitted) and
    ``client_options`` (``timeout``, ``max_retries``, ``base_url``).
    """
    try:
        backend = _BACKENDS[provider]
    except KeyError as exc:
        raise ValueError(f"Unsupported provider: {provider}") from exc

    if client is not None:
        return backend.from_client(model, client, logger=logger)
    return backend(model, api_key=api_key or get_api_key(provider), logger=logger, **client_options)
