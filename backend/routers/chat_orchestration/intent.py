"""
Intent classification - search over browsing history, or open chat?

An utterance counts as a history search when keyword extraction yields at
least one usable term. The terms (phrases first, then keywords and required
terms) become the search query; the raw utterance is never sent to search.
"""

import logging
from dataclasses import dataclass, field
from typing import List

from errors import IntentExtractionError

logger = logging.getLogger(__name__)


@dataclass
class IntentResult:
    is_search_query: bool = False
    keywords: List[str] = field(default_factory=list)
    must_exclude: List[str] = field(default_factory=list)

    @property
    def search_query(self) -> str:
        return " ".join(self.keywords)


class IntentClassifier:
    """
    Classifies a message using a KeywordExtractor.

    Usage:
        classifier = IntentClassifier(KeywordExtractor())
        intent = await classifier.classify("find my github pull request")
        if intent.is_search_query:
            records = await history.search(intent.search_query)
    """

    def __init__(self, extractor, search_enabled: bool = True):
        self._extractor = extractor
        self.search_enabled = search_enabled

    async def classify(self, message: str) -> IntentResult:
        """
        Raises:
            IntentExtractionError: extraction failed
        """
        if not self.search_enabled:
            return IntentResult()

        try:
            extracted = await self._extractor.extract(message)
        except IntentExtractionError:
            raise
        except Exception as e:
            raise IntentExtractionError("Intent classification failed", details=str(e)) from e

        keywords = extracted.search_terms()
        result = IntentResult(
            is_search_query=bool(keywords),
            keywords=keywords,
            must_exclude=list(extracted.must_exclude),
        )
        logger.info(f"Intent: {'search' if result.is_search_query else 'chat'} keywords={keywords}")
        return result
