"""
LLM Engine - Model factory for the analysis pipeline.
Supports Gemini (with Google Search grounding) and OpenAI-compatible APIs.
For OpenAI-compatible backends, web grounding is emulated with DuckDuckGo news.
"""

import json
from dataclasses import dataclass, field
from typing import Any, Dict, List, Literal, Optional, Type
from duckduckgo_search import DDGS
from langchain_core.language_models import BaseChatModel
from langchain_core.messages import HumanMessage, SystemMessage
from langchain_google_genai import ChatGoogleGenerativeAI
from langchain_openai import ChatOpenAI
from pydantic import BaseModel
import logging

from config import get_settings
from prompts import DEFAULT_SYSTEM_PROMPT

logger = logging.getLogger(__name__)

LLMMode = Literal["gemini", "cloud", "local"]

GOOGLE_SEARCH_TOOL = {"google_search": {}}


@dataclass
class LLMResponse:
    """Text answer plus the source URLs the model grounded it on."""
    text: str
    grounding_urls: List[str] = field(default_factory=list)
    data: Optional[Dict[str, Any]] = None  # parsed fields of a schema request


def message_text(message: Any) -> str:
    """Flatten a chat message's content (plain string or list of parts) to text."""
    content = getattr(message, "content", message)
    if isinstance(content, str):
        return content
    if isinstance(content, list):
        parts = []
        for part in content:
            if isinstance(part, str):
                parts.append(part)
            elif isinstance(part, dict) and part.get("type", "text") == "text":
                parts.append(part.get("text", ""))
        return "".join(parts)
    return str(content or "")


def extract_grounding_urls(message: Any) -> List[str]:
    """
    Collect unique web source URLs from a search-grounded Gemini response.
    Order of first appearance is preserved.
    """
    metadata = getattr(message, "response_metadata", None) or {}
    grounding = metadata.get("grounding_metadata") or metadata.get("groundingMetadata") or {}
    chunks = grounding.get("grounding_chunks") or grounding.get("groundingChunks") or []

    urls: List[str] = []
    for chunk in chunks:
        web = (chunk or {}).get("web") or {}
        uri = web.get("uri")
        if isinstance(uri, str) and uri not in urls:
            urls.append(uri)
    return urls


def search_news(query: str, max_results: int = 5) -> List[dict]:
    """
    Search recent news with DuckDuckGo.

    Returns:
        List of {'title', 'url', 'source', 'date', 'body'} dicts (empty on failure)
    """
    try:
        results = DDGS().news(query, max_results=max_results) or []
    except Exception as e:
        logger.warning(f"News search failed for '{query}': {e}")
        return []

    return [
        {
            'title': r.get('title', 'No title'),
            'url': r.get('url', ''),
            'source': r.get('source', 'Unknown'),
            'date': r.get('date', 'Recent'),
            'body': r.get('body', ''),
        }
        for r in results
    ]


def format_news(results: List[dict]) -> str:
    """Render news results as a prompt section."""
    if not results:
        return ""
    output = "近期新聞搜尋結果：\n"
    for i, item in enumerate(results, 1):
        output += f"{i}. {item['title']} ({item['source']} | {item['date']})\n"
        if item.get('body'):
            output += f"   {item['body']}\n"
        output += f"   URL: {item['url']}\n"
    return output


class LLMClient:
    """
    Factory class for creating LLM clients with different backends.
    Uses centralized configuration from config.py.
    """

    def __init__(
        self,
        mode: Optional[LLMMode] = None,
        model_name: Optional[str] = None,
        base_url: Optional[str] = None,
        api_key: Optional[str] = None,
        temperature: Optional[float] = None,
        max_tokens: Optional[int] = None,
        llm: Optional[BaseChatModel] = None
    ):
        """
        Initialize the LLM client.

        Args:
            mode: "gemini", "cloud" for OpenAI-compatible APIs, or "local" for Ollama
                (default: settings.llm_mode)
            model_name: Model name (e.g., "gemini-3-flash-preview", "gpt-4o")
            base_url: Base URL for OpenAI-compatible APIs
            api_key: API key
            temperature: Sampling temperature (default: settings.llm_temperature)
            max_tokens: Maximum tokens in response
            llm: Pre-built chat model, bypasses the factory
        """
        settings = get_settings()
        self.mode = mode or settings.llm_mode
        self.model_name = model_name
        self.temperature = settings.llm_temperature if temperature is None else temperature
        self.max_tokens = max_tokens
        self.news_results = settings.news_results

        self.llm = llm if llm is not None else self._create_llm(base_url, api_key)

    def _create_llm(self, base_url: Optional[str], api_key: Optional[str]) -> BaseChatModel:
        """Create the chat model instance based on the mode."""
        settings = get_settings()

        if self.mode == "gemini":
            model = self.model_name or settings.gemini_model
            key = api_key or settings.gemini_api_key

            if not key:
                raise ValueError("API key not found. Set GEMINI_API_KEY environment variable.")

            logger.info(f"Initializing Gemini LLM: {model}")
            return ChatGoogleGenerativeAI(
                model=model,
                google_api_key=key,
                temperature=self.temperature,
                max_output_tokens=self.max_tokens
            )

        if self.mode == "cloud":
            model = self.model_name or settings.openai_model
            key = api_key or settings.openai_api_key
            if not key:
                raise ValueError("API key not found. Set OPENAI_API_KEY environment variable.")
            if not model:
                raise ValueError("Model name not found. Set OPENAI_MODEL environment variable.")
            return self._openai_compatible(model, base_url or settings.openai_base_url, key)

        if self.mode == "local":
            # Ollama ignores the key but the client requires one
            return self._openai_compatible(
                self.model_name or settings.local_model,
                base_url or settings.local_llm_url,
                api_key or "ollama",
            )

        raise ValueError(f"Invalid mode: {self.mode}. Must be 'gemini', 'cloud' or 'local'.")

    def _openai_compatible(self, model: str, url: Optional[str], key: str) -> BaseChatModel:
        logger.info(f"Initializing {self.mode} LLM: {model} at {url or 'OpenAI official'}")
        return ChatOpenAI(
            model=model,
            api_key=key,
            base_url=url,
            temperature=self.temperature,
            max_tokens=self.max_tokens,
        )

    def generate(
        self,
        message: str,
        search_query: Optional[str] = None,
        system_message: Optional[str] = None,
        schema: Optional[Type[BaseModel]] = None
    ) -> LLMResponse:
        """
        Send one prompt and return the answer with its grounding URLs.

        Args:
            message: User message
            search_query: When set, ground the answer on a web search. Gemini
                runs its own Google Search; other backends get DuckDuckGo news
                for this query prepended to the message.
            system_message: Optional custom system message (overrides default)
            schema: Pydantic model the answer must conform to. Ignored when
                search_query is set, since search tools and constrained JSON
                output cannot be combined in one Gemini request.

        Returns:
            LLMResponse with text, de-duplicated grounding URLs and, for a
            schema request that validated, the parsed fields in data
        """
        messages = [SystemMessage(content=system_message or DEFAULT_SYSTEM_PROMPT)]
        model = self.llm
        news_urls: List[str] = []

        if search_query and self.mode == "gemini":
            model = self.llm.bind_tools([GOOGLE_SEARCH_TOOL])
        elif search_query:
            news = search_news(search_query, max_results=self.news_results)
            news_urls = [n['url'] for n in news if n['url']]
            if news:
                message = f"{format_news(news)}\n{message}"

        messages.append(HumanMessage(content=message))

        if schema is not None and not search_query:
            return self._generate_structured(messages, schema)

        response = model.invoke(messages)

        urls = extract_grounding_urls(response)
        for url in news_urls:
            if url not in urls:
                urls.append(url)

        return LLMResponse(text=message_text(response), grounding_urls=urls)

    def _generate_structured(self, messages: List[Any], schema: Type[BaseModel]) -> LLMResponse:
        """Request schema-constrained JSON, keeping the raw text when it does not validate."""
        result = self.llm.with_structured_output(schema, include_raw=True).invoke(messages)
        raw = result.get("raw")
        parsed = result.get("parsed")
        urls = extract_grounding_urls(raw) if raw is not None else []

        if isinstance(parsed, BaseModel):
            parsed = parsed.model_dump()
        if isinstance(parsed, dict):
            return LLMResponse(text=json.dumps(parsed, ensure_ascii=False), grounding_urls=urls, data=parsed)

        logger.warning(f"Structured output did not validate against {schema.__name__}: "
                       f"{result.get('parsing_error')}")
        return LLMResponse(text=message_text(raw) if raw is not None else "", grounding_urls=urls)


if __name__ == "__main__":
    from dotenv import load_dotenv
    load_dotenv()

    logging.basicConfig(level=logging.INFO)
    print("Testing LLM Engine...")
    print("=" * 60)

    try:
        client = LLMClient()
        result = client.generate("台積電 (2330) 近期有哪些重要新聞？", search_query="2330 台積電 新聞")
        print(f"Response: {result.text}")
        print(f"Sources: {result.grounding_urls}")
    except Exception as e:
        print(f"{get_settings().llm_mode} mode error: {e}")
