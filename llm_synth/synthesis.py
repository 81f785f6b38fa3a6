"""Pick the primary answer for a round and attach detected disagreements."""

import logging

from config.config_loader import StanceConfig
from llm_synth.disagreement import DEFAULT_STANCE_CONFIG, find_disagreements
from llm_synth.models import ResultSet, SynthesizedResult

logger = logging.getLogger(__name__)

FALLBACK_MESSAGE = "All models failed to respond. Please check your API keys and try again."


def synthesize(
    result_set: ResultSet,
    detector_config: StanceConfig = DEFAULT_STANCE_CONFIG,
) -> SynthesizedResult:
    """Reduce a ResultSet to one SynthesizedResult.

    The fastest successful, non-empty response becomes the primary answer
    (ties keep ResultSet order). Disagreements are computed over the full
    ResultSet. Pure function of its inputs.
    """
    successful = sorted(
        (r for r in result_set.values() if r.success and r.content),
        key=lambda r: r.latency_ms,
    )

    if not successful:
        logger.warning("No provider returned content; using fallback message")
        return SynthesizedResult(
            content=FALLBACK_MESSAGE,
            primary_provider_key=None,
            model_count=0,
            disagreements=[],
            all_results=dict(result_set),
        )

    primary = successful[0]
    disagreements = find_disagreements(result_set, detector_config)

    logger.info(
        "Primary answer from %s (%d ms); %d model(s), %d disagreement(s)",
        primary.provider_key,
        primary.latency_ms,
        len(successful),
        len(disagreements),
    )

    return SynthesizedResult(
        content=primary.content,
        primary_provider_key=primary.provider_key,
        model_count=len(successful),
        disagreements=disagreements,
        all_results=dict(result_set),
    )
