import pytest

from conftest import FakeCompletion, unreachable
from travelguide.models.guide_models import TripFacts
from travelguide.services.guide_content_generator import GuideContentGenerator, find_known_city
from travelguide.services.vertex_ai_service import CompletionServiceError


def generator(**responses):
    return GuideContentGenerator(FakeCompletion(responses))


def test_find_known_city():
    assert find_known_city("五一去成都吃火锅") == "成都"
    assert find_known_city("去海边度假") is None


@pytest.mark.asyncio
async def test_trip_facts_are_completed_from_prompt():
    content = generator(facts={"destination": "", "start_date": "2026-11-01"})

    facts = await content.extract_trip_facts("11月1日去西安玩4天")

    assert facts.destination == "西安"
    assert facts.duration_days == 4
    assert facts.start_date.isoformat() == "2026-11-01"


@pytest.mark.asyncio
async def test_trip_facts_fall_back_on_invalid_output():
    content = generator(facts={"destination": "西安", "duration_days": 400})

    facts = await content.extract_trip_facts("去西安")

    assert facts == TripFacts(destination="西安")


@pytest.mark.asyncio
async def test_transport_mode_defaults_when_unrecognized():
    assert await generator(transport="坐船").identify_transport("x") == "综合交通"
    assert await generator(transport="自驾游").identify_transport("x") == "自驾游"
    assert await generator(transport=unreachable()).identify_transport("x") == "综合交通"


@pytest.mark.asyncio
async def test_keyword_and_budget_extraction():
    assert await generator(keyword='"成都美食"').extract_keyword("x") == "成都美食"
    assert await generator(keyword="").extract_keyword("x") == "旅行攻略"
    assert await generator(budget="5000元").extract_budget("x") == "5000元"
    assert await generator(budget="未指定预算").extract_budget("x") is None
    assert await generator(budget=unreachable()).extract_budget("x") is None


@pytest.mark.asyncio
async def test_skeleton_fields_are_truncated():
    content = generator(skeleton={
        "destination": "北京",
        "duration": 3,
        "overview": "长" * 150,
        "highlights": ["亮点" * 20, ""],
        "tips": ["注意"],
    })

    skeleton = await content.generate_skeleton("x", TripFacts(), "综合交通", None, "", "")

    assert skeleton.duration == "3"
    assert len(skeleton.overview) == 100
    assert skeleton.overview.endswith("…")
    assert len(skeleton.highlights) == 1
    assert len(skeleton.highlights[0]) == 30
    assert skeleton.budget == "待确认预算范围"


@pytest.mark.asyncio
async def test_skeleton_propagates_unreachable_completion():
    content = generator(skeleton=unreachable())

    with pytest.raises(CompletionServiceError):
        await content.generate_skeleton("x", TripFacts(), "综合交通", None, "", "")


def test_default_skeleton_without_facts():
    skeleton = generator().default_skeleton()

    assert skeleton.destination == "待确认"
    assert skeleton.duration == "5天4夜"
    assert len(skeleton.highlights) == 3


@pytest.mark.asyncio
async def test_locations_and_budget_fall_back_on_empty_output():
    content = generator(locations={"locations": []}, budget_breakdown={"breakdown": []})

    locations = await content.generate_locations("大理", "x")
    budget = await content.generate_budget("5000元", "大理", "3天2夜", "x")

    assert [loc.type for loc in locations] == ["attraction", "restaurant", "hotel"]
    assert locations[0].name == "大理核心景区"
    assert sum(item.percentage for item in budget) == 100


@pytest.mark.asyncio
async def test_itinerary_is_empty_on_invalid_output():
    content = generator(itinerary={"days": [{"title": "缺少天数"}]})

    plan = await content.generate_itinerary("x", 3, "综合交通", "")

    assert plan.days == []
