"""Lexical disagreement detection across provider responses.

A topic is any word of at least ``min_word_length`` letters found in a
response. For each provider the text around the first occurrence of the topic
is scored against a positive and a negative lexicon; a topic is reported when
at least one provider leans positive and another leans negative.

This is a heuristic. It will report false positives and miss real
contradictions; it is not meant to understand the text.
"""

import re

from config.config_loader import StanceConfig
from llm_synth.models import Disagreement, ResultSet, Stance

DEFAULT_STANCE_CONFIG = StanceConfig()


def _qualifying(result_set: ResultSet) -> list[tuple[str, str]]:
    """(provider_key, lowercased content) for successful, non-empty results."""
    return [
        (key, result.content.lower())
        for key, result in result_set.items()
        if result.success and result.content
    ]


def _vocabulary(texts: list[str], min_word_length: int) -> list[str]:
    """Candidate topics in first-seen order, duplicates collapsed."""
    pattern = re.compile(rf"\b[a-z]{{{min_word_length},}}\b")
    seen: dict[str, None] = {}
    for text in texts:
        for word in pattern.findall(text):
            seen.setdefault(word, None)
    return list(seen)


def stance_for(content: str, topic: str, config: StanceConfig = DEFAULT_STANCE_CONFIG) -> Stance | None:
    """Stance of lowercased content around the first occurrence of topic.

    Returns None when the topic is absent or the scores tie (neutral).
    Each lexicon term counts once if it appears anywhere in the window.
    """
    idx = content.find(topic)
    if idx == -1:
        return None
    window = content[max(0, idx - config.window): min(len(content), idx + config.window)]
    positive = sum(1 for term in config.positive_terms if term in window)
    negative = sum(1 for term in config.negative_terms if term in window)
    if positive > negative:
        return Stance.POSITIVE
    if negative > positive:
        return Stance.NEGATIVE
    return None


def find_disagreements(
    result_set: ResultSet,
    config: StanceConfig = DEFAULT_STANCE_CONFIG,
) -> list[Disagreement]:
    qualifying = _qualifying(result_set)
    if len(qualifying) < 2:
        return []

    disagreements: list[Disagreement] = []
    for topic in _vocabulary([text for _, text in qualifying], config.min_word_length):
        stances: dict[str, Stance] = {}
        for key, text in qualifying:
            stance = stance_for(text, topic, config)
            if stance is not None:
                stances[key] = stance

        if Stance.POSITIVE in stances.values() and Stance.NEGATIVE in stances.values():
            disagreements.append(Disagreement(topic=topic, stances=stances))
            if len(disagreements) >= config.max_results:
                break

    return disagreements
