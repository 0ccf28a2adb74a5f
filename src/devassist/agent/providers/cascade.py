"""
Model fallback cascade.

Tries model tiers in preference order (highest quality first). A tier
that raises, returns empty text, or is skipped by its circuit breaker
counts as unavailable and the next tier gets the same prompt. When all
structured attempts fail, the prompt is flattened into one instruction
and the lowest-cost tier is tried once more before giving up.
"""

from __future__ import annotations

import logging
from typing import Optional

from ..domain.entities import ModelResponse, Prompt
from ..domain.errors import ModelUnavailable, TierUnavailable
from ..domain.ports import IModelTier
from .circuit import TierCircuit

logger = logging.getLogger(__name__)


class ModelCascade:
    """Ordered list of model tiers with a degraded last resort.

    Usage:
        cascade = ModelCascade([anthropic_tier, openai_tier, ollama_tier])
        response = await cascade.generate(prompt, max_tokens=1024)
        print(response.model_id, response.text)
    """

    def __init__(
        self,
        tiers: list[IModelTier],
        failure_threshold: int = 3,
        circuit_timeout: float = 30.0,
    ):
        """Initialize the cascade.

        Args:
            tiers: Tiers ordered by preference, lowest-cost last
            failure_threshold: Consecutive failures before a tier is skipped
            circuit_timeout: Seconds a failing tier stays skipped
        """
        if not tiers:
            raise ValueError("ModelCascade requires at least one tier")

        self.tiers = list(tiers)
        self._circuits = {
            tier.tier_id: TierCircuit(
                failure_threshold=failure_threshold,
                timeout=circuit_timeout,
                name=tier.tier_id,
            )
            for tier in self.tiers
        }

    @property
    def tier_ids(self) -> list[str]:
        return [tier.tier_id for tier in self.tiers]

    @property
    def lowest_cost_tier(self) -> IModelTier:
        return self.tiers[-1]

    def circuit(self, tier_id: str) -> TierCircuit:
        return self._circuits[tier_id]

    def ordered_tiers(self, tier_preference: Optional[str] = None) -> list[IModelTier]:
        """Tiers in attempt order, with the preferred tier moved first."""
        if not tier_preference:
            return list(self.tiers)

        preferred = [t for t in self.tiers if t.tier_id == tier_preference]
        if not preferred:
            logger.warning(f"Unknown tier preference '{tier_preference}', using default order")
            return list(self.tiers)
        return preferred + [t for t in self.tiers if t.tier_id != tier_preference]

    async def generate(
        self,
        prompt: Prompt,
        max_tokens: int,
        tier_preference: Optional[str] = None,
    ) -> ModelResponse:
        """Generate text through the fallback cascade.

        Args:
            prompt: Structured prompt
            max_tokens: Token budget for this call type
            tier_preference: Tier id to try first

        Returns:
            ModelResponse naming the tier that produced the text

        Raises:
            ModelUnavailable: If every tier and the degraded attempt failed
        """
        failures: list[TierUnavailable] = []

        for tier in self.ordered_tiers(tier_preference):
            circuit = self._circuits[tier.tier_id]
            if not circuit.allow():
                failure = TierUnavailable(tier.tier_id, "circuit open, skipped")
                logger.warning(str(failure))
                failures.append(failure)
                continue

            try:
                text = await self._attempt(tier, prompt, max_tokens)
            except TierUnavailable as failure:
                circuit.record_failure(failure.cause)
                logger.warning(str(failure))
                failures.append(failure)
                continue

            circuit.record_success()
            return ModelResponse(
                text=text,
                model_id=tier.tier_id,
                token_budget_used=max_tokens,
            )

        # Last resort: one flattened instruction on the cheapest tier.
        # Bypasses the circuit breaker.
        fallback = self.lowest_cost_tier
        logger.warning(
            f"All {len(failures)} tier attempts failed, retrying {fallback.tier_id} "
            "with a flattened prompt"
        )
        try:
            text = await self._attempt(fallback, Prompt.flat(prompt.flatten()), max_tokens)
        except TierUnavailable as failure:
            failures.append(failure)
            logger.error(f"Degraded attempt failed: {failure}")
            raise ModelUnavailable(
                f"All {len(self.tiers)} tiers and the degraded attempt failed",
                attempts=failures,
                cause=failure,
            )

        return ModelResponse(
            text=text,
            model_id=fallback.tier_id,
            token_budget_used=max_tokens,
            degraded=True,
        )

    async def _attempt(self, tier: IModelTier, prompt: Prompt, max_tokens: int) -> str:
        """Call one tier, normalising every failure to TierUnavailable."""
        try:
            text = await tier.infer(prompt, max_tokens)
        except TierUnavailable:
            raise
        except Exception as e:
            raise TierUnavailable(tier.tier_id, f"invocation failed: {e}", cause=e)

        if not isinstance(text, str) or not text.strip():
            raise TierUnavailable(tier.tier_id, "empty or malformed completion")
        return text
