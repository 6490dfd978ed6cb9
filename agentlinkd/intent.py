"""Intent classification.

A keyword heuristic, not a language model. Swap it out by passing any
object with a classify(text) method to LoopGuard.
"""

import re
from typing import Protocol

from .conversation import normalize_text
from .models import Intent


class IntentClassifier(Protocol):
    def classify(self, text: str) -> Intent: ...


# "Can you ...?" is a request even though it is phrased as a question.
POLITE_REQUEST = re.compile(
    r"^(please|can you|could you|would you|will you|peux[- ]tu|pourrais[- ]tu)\b", re.I
)
INTERROGATIVE = re.compile(
    r"^(what|who|where|when|why|how|is|are|do|does|can|could|would|should"
    r"|qu'est|qui|où|quand|pourquoi|comment|est-ce)\b",
    re.I,
)
IMPERATIVE = re.compile(
    r"^(please|peux-tu|peux tu|fais|fait|envoie|cherche|trouve|analyse|explique"
    r"|dis-moi|tell me|send|find|search|do|make)\b",
    re.I,
)
POLITENESS = re.compile(r"\b(s'il te pla[iî]t|please)\b", re.I)
GREETING = re.compile(r"^(hi|hello|hey|salut|bonjour|coucou|yo)\b", re.I)
CONFIRMATION = re.compile(
    r"^(ok|okay|oui|yes|non|no|d'accord|parfait|super|cool|merci|thanks|thank you"
    r"|got it|compris|understood)\b",
    re.I,
)


class KeywordIntentClassifier:
    """polite request > question > action_request > greeting > confirmation > information."""

    def classify(self, text: str) -> Intent:
        lower = text.lower().strip()
        if not normalize_text(text):
            return Intent.NOISE

        if POLITE_REQUEST.search(lower):
            return Intent.ACTION_REQUEST
        if "?" in lower or INTERROGATIVE.search(lower):
            return Intent.QUESTION
        if IMPERATIVE.search(lower) or POLITENESS.search(lower):
            return Intent.ACTION_REQUEST
        if GREETING.search(lower):
            return Intent.GREETING
        if CONFIRMATION.search(lower):
            return Intent.CONFIRMATION
        return Intent.INFORMATION
