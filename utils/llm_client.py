# utils/llm_client.py
"""
Single LangChain/OpenAI entry point for every model-backed judgement.

Calls are bounded by an explicit timeout and never retried; a missing key,
a timeout or an API error surfaces as ClassificationUnavailable so callers
can switch to their heuristic path.
"""

import asyncio
import logging
from typing import Any, Dict, Optional

from langchain_openai import ChatOpenAI
from langchain_core.prompts import ChatPromptTemplate

from utils.errors import ClassificationUnavailable, ParseFailure
from utils.lenient_json import try_parse_lenient

logger = logging.getLogger(__name__)


class LLMClient:
    """Thin wrapper around a chat model that returns decoded JSON"""

    def __init__(self, config, model=None, timeout: Optional[float] = None):
        self.config = config
        self.timeout = timeout or getattr(config, 'CLASSIFIER_TIMEOUT', 30.0)
        self.model = model
        self.stats = {"calls": 0, "timeouts": 0, "errors": 0, "parse_failures": 0}

        if self.model is None:
            api_key = getattr(config, 'OPENAI_API_KEY', None)
            if api_key:
                try:
                    self.model = ChatOpenAI(
                        model=getattr(config, 'OPENAI_MODEL', 'gpt-4o-mini'),
                        temperature=getattr(config, 'OPENAI_TEMPERATURE', 0.1),
                        api_key=api_key,
                        max_retries=0,
                        timeout=self.timeout,
                    )
                    logger.info("✅ OpenAI model initialized for menu classification")
                except Exception as e:
                    logger.error(f"❌ Failed to initialize OpenAI: {e}")
                    self.model = None
            else:
                logger.warning("⚠️ OPENAI_API_KEY not set - model-backed classification disabled")

    @property
    def available(self) -> bool:
        return self.model is not None

    async def invoke_text(self, prompt: ChatPromptTemplate, variables: Dict[str, Any],
                          timeout: Optional[float] = None) -> str:
        """Run *prompt* through the model and return the raw reply text"""
        if self.model is None:
            raise ClassificationUnavailable("No chat model configured (missing OPENAI_API_KEY)")

        chain = prompt | self.model
        self.stats["calls"] += 1
        try:
            response = await asyncio.wait_for(chain.ainvoke(variables), timeout=timeout or self.timeout)
        except asyncio.TimeoutError:
            self.stats["timeouts"] += 1
            raise ClassificationUnavailable(f"Model call timed out after {timeout or self.timeout}s")
        except Exception as e:
            self.stats["errors"] += 1
            raise ClassificationUnavailable(f"Model call failed: {e}") from e

        content = getattr(response, 'content', response)
        if isinstance(content, list):
            content = "".join(
                part.get("text", "") if isinstance(part, dict) else str(part) for part in content
            )
        return content if isinstance(content, str) else str(content)

    async def invoke_json(self, prompt: ChatPromptTemplate, variables: Dict[str, Any],
                          timeout: Optional[float] = None) -> Any:
        """Like invoke_text(), decoded leniently; ParseFailure when the reply is not JSON"""
        content = await self.invoke_text(prompt, variables, timeout=timeout)
        parsed = try_parse_lenient(content)
        if parsed is None:
            self.stats["parse_failures"] += 1
            raise ParseFailure(f"Unparseable model reply ({len(content)} chars): {content[:200]!r}")
        return parsed

    def get_stats(self) -> Dict[str, int]:
        return dict(self.stats)
