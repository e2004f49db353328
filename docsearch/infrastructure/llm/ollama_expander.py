import logging
import re

from openai import AsyncOpenAI

logger = logging.getLogger(__name__)

EXPANSION_SYSTEM_PROMPT = """Du formulierst Suchanfragen für eine Dokumentensuche um.

Regeln:
- Gib genau {count} alternative Formulierungen der Anfrage zurück, eine pro Zeile.
- Verwende Synonyme und eng verwandte Fachbegriffe, keine neuen Themen.
- Die wichtigste Alternative zuerst.
- Keine Nummerierung, keine Erklärungen, keine Anführungszeichen.
- Gleiche Sprache wie die Anfrage."""

_LIST_PREFIX_RE = re.compile(r"^\s*(?:[-*•]|\d+[.)])\s*")


class OllamaVariantGenerator:
    """Query variant generator backed by Ollama (OpenAI-compatible API)."""

    def __init__(
        self,
        base_url: str = "http://localhost:11434/v1",
        model: str = "qwen2.5:7b",
        max_tokens: int = 256,
        temperature: float = 0.2,
        timeout: float = 8.0,
        client: AsyncOpenAI | None = None,
    ):
        """Initialize Ollama variant generator.

        Args:
            base_url: Ollama API URL.
            model: Model name.
            max_tokens: Max response tokens.
            temperature: Sampling temperature.
            timeout: Request timeout in seconds.
            client: Preconfigured client (tests).
        """
        self._client = client or AsyncOpenAI(
            base_url=base_url, api_key="ollama", timeout=timeout, max_retries=0
        )
        self._model = model
        self._max_tokens = max_tokens
        self._temperature = temperature

    async def generate(self, query: str, max_variants: int) -> list[str]:
        """Ask the LLM for alternative phrasings.

        Args:
            query: Original query.
            max_variants: Maximum number of variants.

        Returns:
            Variants ordered as returned by the model.
        """
        if max_variants <= 0 or not query.strip():
            return []

        response = await self._client.chat.completions.create(
            model=self._model,
            messages=[
                {
                    "role": "system",
                    "content": EXPANSION_SYSTEM_PROMPT.format(count=max_variants),
                },
                {"role": "user", "content": query},
            ],
            max_tokens=self._max_tokens,
            temperature=self._temperature,
        )

        content = response.choices[0].message.content or ""
        variants = self.parse_variants(content, query)[:max_variants]

        logger.info(f"[expand] LLM produced {len(variants)} variant(s) for '{query[:60]}'")
        return variants

    @staticmethod
    def parse_variants(content: str, query: str) -> list[str]:
        """Split model output into distinct variant lines."""
        seen = {query.strip().lower()}
        variants = []
        for line in content.splitlines():
            text = _LIST_PREFIX_RE.sub("", line).strip().strip("\"'")
            if not text or text.lower() in seen:
                continue
            seen.add(text.lower())
            variants.append(text)
        return variants
