"""Document language detection for ingestion metadata."""
from __future__ import annotations

import logging
from typing import Optional

from langdetect import DetectorFactory, LangDetectException, detect

LOGGER = logging.getLogger(__name__)
DetectorFactory.seed = 0

SAMPLE_CHARS = 5000
MIN_CHARS = 20


class LanguageDetector:
    """Detect the language of a document from a bounded text sample."""

    def __init__(self, sample_chars: int = SAMPLE_CHARS) -> None:
        self.sample_chars = sample_chars

    def detect(self, text: str) -> Optional[str]:
        sample = text.strip()[: self.sample_chars]
        if len(sample) < MIN_CHARS:
            return None
        try:
            return detect(sample)
        except LangDetectException:
            LOGGER.info("Unable to determine language for sample of length %s", len(sample))
            return None
