"""Chat-model factory for archdoc-refine.

Registry-based factory that creates LangChain chat models by provider name.
Provider packages (``langchain-anthropic``, ``langchain-openai``,
``langchain-google-genai``) are optional extras, so each built-in
constructor imports its package lazily.  The ``xai`` provider reuses
``ChatOpenAI`` against xAI's OpenAI-compatible endpoint.

Usage::

    factory = ChatModelFactory()
    model = factory.create(LLMSettings(provider="anthropic"))
    client = create_completion_client(LLMSettings.from_env())
"""

from __future__ import annotations

import logging
from typing import TYPE_CHECKING, Any, Callable

from archdoc_refine.domain.exceptions import ConfigurationError
from archdoc_refine.infrastructure.llm.chat_model import ChatModelCompletionClient

if TYPE_CHECKING:
    from langchain_core.language_models import BaseChatModel

    from archdoc_refine.infrastructure.config import LLMSettings

logger = logging.getLogger(__name__)

XAI_BASE_URL = "https://api.x.ai/v1"


ModelConstructor = Callable[["LLMSettings"], "BaseChatModel"]


def _missing_package(package: str, provider: str) -> ImportError:
    return ImportError(
        f"The '{package}' package is required for the {provider!r} provider. "
        f"Install it with: pip install {package}"
    )


class ChatModelFactory:
    """Registry-based factory for LangChain chat models.

    Parameters
    ----------
    auto_discover:
        If ``True`` (default), pre-register the built-in providers.
    """

    def __init__(self, auto_discover: bool = True) -> None:
        self._registry: dict[str, ModelConstructor] = {}
        if auto_discover:
            self._registry["anthropic"] = self._create_anthropic
            self._registry["openai"] = self._create_openai
            self._registry["google"] = self._create_google
            self._registry["xai"] = self._create_xai

    def register(
        self,
        name: str,
        constructor: ModelConstructor,
        overwrite: bool = False,
    ) -> None:
        """Register a model constructor under *name*.

        Raises
        ------
        ValueError
            If the name is already registered and ``overwrite`` is ``False``.
        """
        if name in self._registry and not overwrite:
            raise ValueError(
                f"Provider {name!r} is already registered. "
                f"Use overwrite=True to replace it."
            )
        self._registry[name] = constructor
        logger.debug("ChatModelFactory: registered provider %r", name)

    @property
    def registered_providers(self) -> list[str]:
        return sorted(self._registry)

    def create(self, settings: LLMSettings) -> BaseChatModel:
        """Create a chat model for ``settings.provider``.

        Raises
        ------
        ConfigurationError
            If the provider is not registered.
        ImportError
            If the provider's integration package is not installed.
        """
        constructor = self._registry.get(settings.provider)
        if constructor is None:
            available = ", ".join(self.registered_providers)
            raise ConfigurationError(
                f"Unknown provider {settings.provider!r}. "
                f"Available providers: {available}",
                {"provider": settings.provider},
            )
        logger.info(
            "ChatModelFactory: creating %s model %r", settings.provider, settings.model
        )
        return constructor(settings)

    # -- built-in providers ---------------------------------------------------

    @staticmethod
    def _common_kwargs(settings: LLMSettings) -> dict[str, Any]:
        kwargs: dict[str, Any] = {
            "model": settings.model,
            "temperature": settings.temperature,
            "max_tokens": settings.max_tokens,
        }
        if settings.api_key:
            kwargs["api_key"] = settings.api_key
        return kwargs

    @staticmethod
    def _create_anthropic(settings: LLMSettings) -> BaseChatModel:
        try:
            from langchain_anthropic import ChatAnthropic
        except ImportError as exc:
            raise _missing_package("langchain-anthropic", "anthropic") from exc
        return ChatAnthropic(**ChatModelFactory._common_kwargs(settings))

    @staticmethod
    def _create_openai(settings: LLMSettings) -> BaseChatModel:
        try:
            from langchain_openai import ChatOpenAI
        except ImportError as exc:
            raise _missing_package("langchain-openai", "openai") from exc
        kwargs = ChatModelFactory._common_kwargs(settings)
        if settings.base_url:
            kwargs["base_url"] = settings.base_url
        return ChatOpenAI(**kwargs)

    @staticmethod
    def _create_google(settings: LLMSettings) -> BaseChatModel:
        try:
            from langchain_google_genai import ChatGoogleGenerativeAI
        except ImportError as exc:
            raise _missing_package("langchain-google-genai", "google") from exc
        kwargs = ChatModelFactory._common_kwargs(settings)
        kwargs["max_output_tokens"] = kwargs.pop("max_tokens")
        if "api_key" in kwargs:
            kwargs["google_api_key"] = kwargs.pop("api_key")
        return ChatGoogleGenerativeAI(**kwargs)

    @staticmethod
    def _create_xai(settings: LLMSettings) -> BaseChatModel:
        try:
            from langchain_openai import ChatOpenAI
        except ImportError as exc:
            raise _missing_package("langchain-openai", "xai") from exc
        # xAI serves an OpenAI-compatible API.
        kwargs = ChatModelFactory._common_kwargs(settings)
        kwargs["base_url"] = settings.base_url or XAI_BASE_URL
        return ChatOpenAI(**kwargs)


def create_completion_client(
    settings: LLMSettings,
    factory: ChatModelFactory | None = None,
) -> ChatModelCompletionClient:
    """Build a :class:`ChatModelCompletionClient` from *settings*."""
    settings.validate()
    model = (factory or ChatModelFactory()).create(settings)
    return ChatModelCompletionClient(
        model,
        provider=settings.provider,
        model_name=settings.model,
    )
