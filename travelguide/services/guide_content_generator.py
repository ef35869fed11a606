import logging
import re
from typing import List, Optional

from pydantic import ValidationError

from travelguide.models.guide_models import (
    BudgetItem,
    BudgetPlan,
    GuideSkeleton,
    ItineraryPlan,
    MapLocation,
    MapLocationList,
    TripFacts,
)
from travelguide.prompts import guide_prompts
from travelguide.services.vertex_ai_service import CompletionServiceError, VertexAIService
from travelguide.utils.formatters import GuideFormatter

DEFAULT_KEYWORD = "旅行攻略"
UNKNOWN_DESTINATION = "待确认"

KNOWN_CITIES = [
    '北京', '上海', '广州', '深圳', '杭州', '南京', '苏州', '成都', '重庆', '西安',
    '武汉', '长沙', '青岛', '大连', '厦门', '三亚', '丽江', '大理', '桂林', '张家界',
    '黄山', '九寨沟', '敦煌', '拉萨', '乌鲁木齐', '哈尔滨', '长春', '沈阳', '天津',
    '济南', '郑州', '合肥', '南昌', '福州', '南宁', '海口', '贵阳', '昆明', '兰州',
    '西宁', '银川', '呼和浩特', '太原', '石家庄', '秦皇岛', '承德', '香港', '澳门', '台北',
    '东京', '大阪', '京都', '横滨', '名古屋', '神户', '福冈', '札幌',
    '纽约', '洛杉矶', '芝加哥', '伦敦', '巴黎', '柏林', '罗马', '马德里', '阿姆斯特丹',
    '维也纳', '苏黎世', '斯德哥尔摩', '哥本哈根',
]

_DAYS_IN_PROMPT_RE = re.compile(r"(\d+)\s*天")


def find_known_city(prompt: str) -> Optional[str]:
    """First known city name mentioned in the prompt."""
    for city in KNOWN_CITIES:
        if city in prompt:
            return city
    return None


class GuideContentGenerator:
    """Turns a free-text request into validated guide structures.

    Every structured call is parsed strictly against its pydantic model. Output
    that does not validate is never patched; the caller gets a fixed fallback
    value instead. Only ``generate_skeleton`` lets an unreachable completion
    service propagate.
    """

    def __init__(self, vertex_ai_service: VertexAIService):
        self.vertex_ai_service = vertex_ai_service
        self.logger = logging.getLogger(__name__)

    # --- Prompt analysis -------------------------------------------------

    async def extract_trip_facts(self, prompt: str) -> TripFacts:
        try:
            raw = await self.vertex_ai_service.generate_json(guide_prompts.get_trip_facts_prompt(prompt), temperature=0.2)
            facts = TripFacts.model_validate_json(raw)
        except (CompletionServiceError, ValidationError) as e:
            self.logger.warning(f"[content] Trip facts extraction failed, scanning prompt instead: {e}")
            facts = TripFacts()

        updates = {}
        if not facts.destination.strip():
            updates["destination"] = find_known_city(prompt) or ""
        if facts.duration_days is None:
            match = _DAYS_IN_PROMPT_RE.search(prompt)
            if match and 1 <= int(match.group(1)) <= 60:
                updates["duration_days"] = int(match.group(1))
        return facts.model_copy(update=updates) if updates else facts

    async def identify_transport(self, prompt: str) -> str:
        try:
            text = await self.vertex_ai_service.generate_text(guide_prompts.get_transport_prompt(prompt), temperature=0.2)
        except CompletionServiceError as e:
            self.logger.warning(f"[content] Transport identification failed: {e}")
            return guide_prompts.DEFAULT_TRANSPORT_MODE

        for mode in guide_prompts.TRANSPORT_MODES:
            if mode in text:
                return mode
        self.logger.debug(f"[content] Unrecognized transport mode '{text.strip()}'")
        return guide_prompts.DEFAULT_TRANSPORT_MODE

    async def extract_keyword(self, prompt: str) -> str:
        try:
            text = await self.vertex_ai_service.generate_text(guide_prompts.get_keyword_prompt(prompt), temperature=0.2)
        except CompletionServiceError as e:
            self.logger.warning(f"[content] Keyword extraction failed: {e}")
            return DEFAULT_KEYWORD
        keyword = text.strip().strip('"“”')
        return keyword or DEFAULT_KEYWORD

    async def extract_budget(self, prompt: str) -> Optional[str]:
        try:
            text = await self.vertex_ai_service.generate_text(guide_prompts.get_budget_extraction_prompt(prompt), temperature=0.2)
        except CompletionServiceError as e:
            self.logger.warning(f"[content] Budget extraction failed: {e}")
            return None
        budget = text.strip().strip('"“”')
        if not budget or budget == guide_prompts.NO_BUDGET_MARKER:
            return None
        return budget

    async def summarize_notes(self, notes: List[str]) -> str:
        """Summary of social notes. Raises ``CompletionServiceError``."""
        notes_content = "\n\n---\n\n".join(notes)
        return await self.vertex_ai_service.generate_text(guide_prompts.get_notes_summary_prompt(notes_content))

    # --- Guide content ---------------------------------------------------

    async def generate_skeleton(
        self,
        prompt: str,
        facts: TripFacts,
        transport_mode: str,
        user_budget: Optional[str],
        social_insights: str,
        weather_advice: str,
    ) -> GuideSkeleton:
        """Guide skeleton, or the default skeleton when the output does not validate.

        ``CompletionServiceError`` propagates.
        """
        raw = await self.vertex_ai_service.generate_json(
            guide_prompts.get_skeleton_prompt(prompt, transport_mode, user_budget, social_insights, weather_advice)
        )
        try:
            skeleton = GuideSkeleton.model_validate_json(raw)
        except ValidationError as e:
            self.logger.warning(f"[content] Invalid skeleton output, using default guide structure: {e.error_count()} errors")
            return self.default_skeleton(facts)

        return GuideSkeleton(
            destination=GuideFormatter.truncate_text(skeleton.destination, 20),
            duration=skeleton.duration,
            budget=GuideFormatter.truncate_text(skeleton.budget or "待确认预算范围", 20),
            overview=GuideFormatter.truncate_text(skeleton.overview, 100),
            highlights=GuideFormatter.truncate_all(skeleton.highlights, 30),
            tips=GuideFormatter.truncate_all(skeleton.tips, 30),
        )

    def default_skeleton(self, facts: Optional[TripFacts] = None) -> GuideSkeleton:
        destination = (facts.destination if facts else "") or UNKNOWN_DESTINATION
        duration = GuideFormatter.format_duration(facts.duration_days) if facts and facts.duration_days else "5天4夜"
        return GuideSkeleton(
            destination=destination,
            duration=duration,
            budget="待确认预算",
            overview="请提供更详细需求，生成精准旅行指南",
            highlights=['AI个性化智能推荐', '专业智能行程规划', '实用旅行建议指导'],
            tips=['出行前请仔细检查签证要求', '建议购买合适的旅行保险', '密切关注当地天气变化'],
        )

    async def generate_itinerary(self, prompt: str, days: int, transport_mode: str, social_insights: str) -> ItineraryPlan:
        try:
            raw = await self.vertex_ai_service.generate_json(
                guide_prompts.get_itinerary_prompt(prompt, days, transport_mode, social_insights)
            )
            plan = ItineraryPlan.model_validate_json(raw)
        except (CompletionServiceError, ValidationError) as e:
            self.logger.warning(f"[content] Itinerary generation failed, returning empty itinerary: {e}")
            return ItineraryPlan()

        self.logger.info(f"[content] Itinerary generated with {len(plan.days)} days (requested {days})")
        return plan

    async def generate_locations(self, destination: str, prompt: str) -> List[MapLocation]:
        try:
            raw = await self.vertex_ai_service.generate_json(guide_prompts.get_locations_prompt(destination, prompt))
            locations = MapLocationList.model_validate_json(raw).locations
        except (CompletionServiceError, ValidationError) as e:
            self.logger.warning(f"[content] Location generation failed, using basic locations: {e}")
            return self.basic_locations(destination)

        if not locations:
            return self.basic_locations(destination)
        return locations

    def basic_locations(self, destination: str) -> List[MapLocation]:
        return [
            MapLocation(name=f"{destination}核心景区", type="attraction", description="AI推荐的必游核心景点", day=1),
            MapLocation(name=f"{destination}特色餐厅", type="restaurant", description="AI推荐的当地特色美食", day=1),
            MapLocation(name=f"{destination}精选酒店", type="hotel", description="AI推荐的优质住宿", day=1),
        ]

    async def generate_budget(self, budget: str, destination: str, duration: str, prompt: str) -> List[BudgetItem]:
        try:
            raw = await self.vertex_ai_service.generate_json(
                guide_prompts.get_budget_breakdown_prompt(budget, destination, duration, prompt)
            )
            breakdown = BudgetPlan.model_validate_json(raw).breakdown
        except (CompletionServiceError, ValidationError) as e:
            self.logger.warning(f"[content] Budget breakdown failed, using default breakdown: {e}")
            return self.default_budget()

        if not breakdown:
            return self.default_budget()
        return breakdown

    def default_budget(self) -> List[BudgetItem]:
        return [
            BudgetItem(category="交通费用", amount=4500, percentage=30, color="#3b82f6"),
            BudgetItem(category="住宿费用", amount=4200, percentage=28, color="#8b5cf6"),
            BudgetItem(category="餐饮费用", amount=3600, percentage=24, color="#10b981"),
            BudgetItem(category="门票娱乐", amount=1800, percentage=12, color="#f59e0b"),
            BudgetItem(category="购物其他", amount=900, percentage=6, color="#ef4444"),
        ]
