"""
Keyword Extractor - turns a natural-language utterance into search terms.

A dedicated low-temperature session is asked for a small JSON object:

    {"keywords": [...], "phrases": [...], "must_include": [...], "must_exclude": [...]}

Every list is lowercased, trimmed and stripped of empties. Output wrapped in
prose or code fences is recovered with the shared JSON repair helpers.
"""

import asyncio
import json
import logging
from dataclasses import dataclass, field, asdict
from typing import Any, Dict, List, Optional

from errors import IntentExtractionError
from services.json_repair import parse_json_response

logger = logging.getLogger(__name__)

EXTRACTION_SYSTEM_PROMPT = (
    "You are a keyword extraction system. You only output valid JSON matching the provided schema."
)

EXTRACTION_INSTRUCTION = """Extract search keywords from the user's natural language query.

Rules:
- Return JSON only
- Keep 1-5 concise keywords or phrases
- Prefer nouns and noun-phrases; drop politeness words
- Preserve quoted phrases exactly
- Lowercase; lemmatize (cats -> cat)
- Remove stopwords and filler (please, info, give me)
- If nothing useful, return empty arrays

User query: "{query}"

Response must be valid JSON with this exact format:
{{
  "keywords": ["array", "of", "strings"],
  "phrases": ["exact phrases"],
  "must_include": ["required", "terms"],
  "must_exclude": ["forbidden", "terms"]
}}"""

TERM_FIELDS = ("keywords", "phrases", "must_include", "must_exclude")


@dataclass
class ExtractedKeywords:
    keywords: List[str] = field(default_factory=list)
    phrases: List[str] = field(default_factory=list)
    must_include: List[str] = field(default_factory=list)
    must_exclude: List[str] = field(default_factory=list)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "ExtractedKeywords":
        cleaned = {}
        for key in TERM_FIELDS:
            values = data.get(key) or []
            if isinstance(values, str):
                values = [values]
            cleaned[key] = [str(v).lower().strip() for v in values if str(v).strip()]
        return cls(**cleaned)

    def search_terms(self) -> List[str]:
        """Phrases, keywords and required terms in order, without repeats."""
        seen = set()
        terms = []
        for term in self.phrases + self.keywords + self.must_include:
            if term not in seen:
                seen.add(term)
                terms.append(term)
        return terms

    def to_dict(self) -> Dict[str, List[str]]:
        return asdict(self)


class KeywordExtractor:
    """Extracts search terms with a dedicated deterministic session."""

    def __init__(self, llm_client=None, temperature: float = 0.1, top_k: int = 1, timeout: float = 60.0):
        self._llm_client = llm_client
        self.temperature = temperature
        self.top_k = top_k
        self.timeout = timeout
        self._session = None

    def _get_session(self):
        if self._session is None:
            if self._llm_client is None:
                from utils.llm import get_llm_client
                self._llm_client = get_llm_client()
            self._session = self._llm_client.create_session(
                EXTRACTION_SYSTEM_PROMPT,
                temperature=self.temperature,
                top_k=self.top_k,
            )
            logger.info("Keyword extraction session created")
        return self._session

    async def extract(self, query: str) -> ExtractedKeywords:
        """
        Extract keywords from a user query.

        Raises:
            IntentExtractionError: backend failure or unparseable output
        """
        session = self._get_session()
        instruction = EXTRACTION_INSTRUCTION.format(query=query)
        loop = asyncio.get_running_loop()

        try:
            raw = await asyncio.wait_for(
                loop.run_in_executor(None, lambda: session.prompt(instruction, format="json")),
                timeout=self.timeout,
            )
        except asyncio.TimeoutError as e:
            raise IntentExtractionError(
                "Keyword extraction timed out", details=f"No response after {self.timeout}s"
            ) from e
        except Exception as e:
            raise IntentExtractionError("Keyword extraction failed", details=str(e)) from e
        finally:
            # Each extraction is independent
            session.reset()

        parsed = self._parse(raw)
        if not isinstance(parsed, dict):
            raise IntentExtractionError(
                "Keyword extraction returned invalid JSON", details=(raw or "")[:200], error_type="parse"
            )

        extracted = ExtractedKeywords.from_dict(parsed)
        logger.debug(f"Extracted keywords: {extracted.to_dict()}")
        return extracted

    @staticmethod
    def _parse(raw: str) -> Optional[Any]:
        try:
            return json.loads(raw)
        except (TypeError, json.JSONDecodeError):
            return parse_json_response(raw or "")
