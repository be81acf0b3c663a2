"""Tests for the gameplay assistant and its local fallback."""

import pytest

from cleanspace.assistant import FALLBACK_TIPS, GameAssistant, TipList, _describe
from cleanspace.schemas import (
    AirQualityReading,
    GameAnalysis,
    GameStateSnapshot,
    PlayerState,
    Recommendation,
    RecommendationList,
    SimulationState,
)


def make_snapshot(aqi=112, health=100.0) -> GameStateSnapshot:
    return GameStateSnapshot(
        air_quality=AirQualityReading(aqi=aqi, pm25=40.0),
        player=PlayerState(health=health),
        simulation=SimulationState(
            current_aqi=aqi,
            predicted_trajectory=[AirQualityReading(aqi=aqi, pm25=40.0)],
        ),
    )


def install_fake_llm(monkeypatch, response):
    requested = []

    def fake_decorator(*, provider, model, response_model):
        requested.append(response_model)

        def wrapper(fn):
            async def inner(prompt: str):
                if isinstance(response, Exception):
                    raise response
                return response

            return inner

        return wrapper

    monkeypatch.setattr("cleanspace.llm_utils.llm.call", fake_decorator)
    return requested


@pytest.mark.asyncio
async def test_unconfigured_assistant_uses_rule_based_advice():
    assistant = GameAssistant()
    assert not assistant.configured

    recommendations = await assistant.recommend(make_snapshot(aqi=160, health=40))

    titles = [rec.title for rec in recommendations]
    assert titles == ["High Air Pollution Detected", "Low Health Warning", "Focus on High-Impact Actions"]
    assert recommendations[1].priority == "critical"

    assert (await assistant.analyze(make_snapshot())).next_steps
    assert await assistant.tips() == FALLBACK_TIPS


@pytest.mark.asyncio
async def test_clean_air_fallback_only_gives_strategy():
    recommendations = await GameAssistant().recommend(make_snapshot(aqi=40))
    assert [rec.type for rec in recommendations] == ["strategy"]


@pytest.mark.asyncio
async def test_configured_assistant_uses_llm(monkeypatch):
    answer = RecommendationList(
        recommendations=[Recommendation(type="action", priority="high", title="Plant now", message="Go")]
    )
    requested = install_fake_llm(monkeypatch, answer)

    recommendations = await GameAssistant("openai", "gpt-4o-mini").recommend(make_snapshot())

    assert [rec.title for rec in recommendations] == ["Plant now"]
    assert requested == [RecommendationList]


@pytest.mark.asyncio
async def test_llm_failure_falls_back(monkeypatch):
    install_fake_llm(monkeypatch, RuntimeError("rate limited"))
    assistant = GameAssistant("openai", "gpt-4o-mini")

    recommendations = await assistant.recommend(make_snapshot())
    analysis = await assistant.analyze(make_snapshot())
    tips = await assistant.tips(make_snapshot())

    assert recommendations[0].title == "High Air Pollution Detected"
    assert isinstance(analysis, GameAnalysis)
    assert tips == FALLBACK_TIPS


@pytest.mark.asyncio
async def test_empty_llm_answer_falls_back(monkeypatch):
    install_fake_llm(monkeypatch, RecommendationList())
    recommendations = await GameAssistant("openai", "gpt-4o-mini").recommend(make_snapshot())
    assert recommendations[-1].title == "Focus on High-Impact Actions"


@pytest.mark.asyncio
async def test_tips_from_llm(monkeypatch):
    install_fake_llm(monkeypatch, TipList(tips=["Close windows at rush hour"]))
    assert await GameAssistant("openai", "gpt-4o-mini").tips() == ["Close windows at rush hour"]


def test_prompt_context_omits_trajectory():
    text = _describe(make_snapshot())
    assert "predicted_trajectory" not in text
    assert '"current_aqi": 112' in text
