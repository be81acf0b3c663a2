"""
GameAssistant: gameplay advice from an LLM, with a deterministic fallback.

When an LLM provider and model are configured, each request is a single
structured call through ``call_llm_with_retries``. Without configuration, or
when the call fails for any reason, the local rule-based answer is returned
so callers always get advice.
"""

from __future__ import annotations

import json
from typing import List, Optional

from pydantic import BaseModel, Field

from .llm_utils import call_llm_with_retries
from .logging_utils import log_error, log_provider
from .schemas import GameAnalysis, GameStateSnapshot, Recommendation, RecommendationList

SYSTEM_PROMPT = (
    "You are the assistant for CleanSpace, a game about improving real-world air "
    "quality. Answer with JSON only, matching the requested schema."
)

FALLBACK_TIPS = [
    "Plant trees strategically to create wind barriers and filter pollutants",
    "Remove vehicles from high-traffic areas during peak hours",
    "Install rooftop gardens to increase green space in urban areas",
    "Coordinate with other players for maximum impact",
    "Monitor weather conditions as wind helps disperse pollutants",
]


class TipList(BaseModel):
    tips: List[str] = Field(default_factory=list, min_length=1)


def fallback_recommendations(snapshot: GameStateSnapshot) -> List[Recommendation]:
    recommendations: List[Recommendation] = []

    if snapshot.air_quality is not None and snapshot.air_quality.aqi > 100:
        recommendations.append(
            Recommendation(
                type="warning",
                priority="high",
                title="High Air Pollution Detected",
                message=(
                    "The air quality is unhealthy. Consider relocating to a safer area "
                    "or taking immediate action to reduce pollution."
                ),
                suggested_actions=["plant_tree", "remove_vehicle"],
                reasoning="High AQI levels pose health risks to sensitive individuals.",
            )
        )

    if snapshot.player is not None and snapshot.player.health < 50:
        recommendations.append(
            Recommendation(
                type="warning",
                priority="critical",
                title="Low Health Warning",
                message="Your health is critically low. Seek clean air immediately to recover.",
                suggested_actions=["relocate"],
                reasoning="Health below 50% requires immediate attention.",
            )
        )

    recommendations.append(
        Recommendation(
            type="strategy",
            priority="medium",
            title="Focus on High-Impact Actions",
            message="Plant trees and remove vehicles for maximum air quality improvement.",
            suggested_actions=["plant_tree", "remove_vehicle"],
            reasoning="These actions provide the best cost-benefit ratio.",
        )
    )
    return recommendations


def fallback_analysis() -> GameAnalysis:
    return GameAnalysis(
        current_situation=(
            "You are working to improve air quality in your selected location. "
            "The current air quality index indicates moderate pollution levels."
        ),
        risk_assessment=(
            "The pollution levels pose moderate health risks, especially for "
            "sensitive individuals like asthma patients."
        ),
        recommended_strategy="Focus on planting trees and reducing vehicle emissions for maximum impact.",
        next_steps=[
            "Plant trees in available empty lots",
            "Remove polluting vehicles from the area",
            "Monitor your health and relocate if needed",
        ],
        motivational_message=(
            "Every action you take makes a real difference in improving air quality for everyone!"
        ),
        environmental_impact=(
            "Your actions help reduce PM2.5 and NO2 levels, creating a healthier "
            "environment for the community."
        ),
    )


def _describe(snapshot: GameStateSnapshot) -> str:
    data = snapshot.model_dump(mode="json", exclude_none=True)
    # The hourly projection is noise for the model
    (data.get("simulation") or {}).pop("predicted_trajectory", None)
    return json.dumps(data, indent=2)


class GameAssistant:
    """Recommendations, analysis and tips for the current game state."""

    def __init__(
        self,
        llm_provider: Optional[str] = None,
        llm_model: Optional[str] = None,
        *,
        max_attempts: int = 3,
    ):
        self.llm_provider = llm_provider
        self.llm_model = llm_model
        self.max_attempts = max_attempts

    @property
    def configured(self) -> bool:
        return bool(self.llm_provider and self.llm_model)

    async def _ask(self, user_prompt: str, response_model):
        log_provider(f"Assistant request via {self.llm_provider}/{self.llm_model}")
        return await call_llm_with_retries(
            system_prompt=SYSTEM_PROMPT,
            user_prompt=user_prompt,
            llm_provider=self.llm_provider,
            llm_model=self.llm_model,
            response_model=response_model,
            max_attempts=self.max_attempts,
        )

    async def recommend(self, snapshot: GameStateSnapshot) -> List[Recommendation]:
        if not self.configured:
            return fallback_recommendations(snapshot)
        prompt = (
            f"Current game state:\n{_describe(snapshot)}\n\n"
            "Give 3-5 specific, actionable recommendations for the player."
        )
        try:
            result = await self._ask(prompt, RecommendationList)
        except Exception as exc:
            log_error(f"Assistant recommendations failed, using fallback: {exc}")
            return fallback_recommendations(snapshot)
        return result.recommendations or fallback_recommendations(snapshot)

    async def analyze(self, snapshot: GameStateSnapshot) -> GameAnalysis:
        if not self.configured:
            return fallback_analysis()
        prompt = (
            f"Current game state:\n{_describe(snapshot)}\n\n"
            "Assess the situation and the player's risk, then give a strategy and next steps."
        )
        try:
            return await self._ask(prompt, GameAnalysis)
        except Exception as exc:
            log_error(f"Assistant analysis failed, using fallback: {exc}")
            return fallback_analysis()

    async def tips(self, snapshot: Optional[GameStateSnapshot] = None) -> List[str]:
        if not self.configured:
            return list(FALLBACK_TIPS)
        context = _describe(snapshot) if snapshot is not None else "{}"
        prompt = f"Current conditions:\n{context}\n\nGive 5 practical tips for improving air quality here."
        try:
            result = await self._ask(prompt, TipList)
        except Exception as exc:
            log_error(f"Assistant tips failed, using fallback: {exc}")
            return list(FALLBACK_TIPS)
        return result.tips
