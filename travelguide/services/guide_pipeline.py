"""
Travel guide generation pipeline

Runs a fixed sequence of stages over a free-text travel request:
1. Prompt analysis (destination, dates, transport, keyword, budget)
2. External insights (social notes summary and weather, fetched concurrently)
3. Guide skeleton, day-by-day itinerary, map locations and budget
4. Coordinate enrichment of every itinerary entry through the geocoder
5. Persistence and final assembly

Every stage transition goes through a ProgressTracker whose single listener
is usually a ProgressStream feeding the SSE endpoint. Collaborator failures
degrade to fallback values inside the stage; anything that escapes a stage
marks it errored and aborts the run.
"""

import asyncio
import logging
import time
from datetime import datetime
from typing import Any, Awaitable, Callable, List, NamedTuple, Optional, Tuple, TypeVar

from travelguide.models.guide_models import (
    EnrichableEntry,
    GuideSkeleton,
    ItineraryPlan,
    TravelGuide,
    TripFacts,
    WeatherInfo,
)
from travelguide.models.progress_models import PipelineState, StageDefinition, StageStatus
from travelguide.prompts.guide_prompts import UNCONFIRMED_BUDGET
from travelguide.services.amap_geocoding_service import AmapGeocodingService
from travelguide.services.guide_content_generator import UNKNOWN_DESTINATION, GuideContentGenerator
from travelguide.services.progress_tracker import ProgressListener, ProgressTracker
from travelguide.services.social_insights_service import SOCIAL_FALLBACK_INSIGHTS, SocialInsightsService
from travelguide.services.stream_transport import ProgressStream
from travelguide.services.weather_service import WEATHER_FALLBACK_ADVICE, AmapWeatherService
from travelguide.utils.firestore_manager import GuideStore
from travelguide.utils.formatters import GuideFormatter

T = TypeVar("T")

GENERIC_FAILURE_MESSAGE = "生成旅行指南时出现错误，请稍后重试。"

GUIDE_STAGES: List[StageDefinition] = [
    StageDefinition(id="analyze-prompt", display_name="分析旅行需求"),
    StageDefinition(id="identify-transport", display_name="识别交通方式"),
    StageDefinition(id="extract-keywords", display_name="提取关键词与预算"),
    StageDefinition(id="fetch-external-insights", display_name="联网搜索与天气查询"),
    StageDefinition(id="generate-guide-skeleton", display_name="生成基础旅行信息"),
    StageDefinition(id="generate-itinerary", display_name="生成详细行程"),
    StageDefinition(id="enrich-coordinates", display_name="获取地点坐标"),
    StageDefinition(id="generate-locations", display_name="生成重要地点"),
    StageDefinition(id="generate-budget", display_name="生成预算明细"),
    StageDefinition(id="persist", display_name="保存旅行指南"),
    StageDefinition(id="finalize", display_name="整合旅行指南"),
]


class PipelineAbortedError(RuntimeError):
    """A stage failed; ``state`` is the tracker snapshot right after the failure."""

    def __init__(self, stage_id: str, message: str, state: PipelineState):
        super().__init__(f"stage '{stage_id}' failed: {message}")
        self.stage_id = stage_id
        self.message = message
        self.state = state


class StageOutcome(NamedTuple):
    value: Any
    result: Any = None
    message: Optional[str] = None


class GuidePipeline:
    def __init__(
        self,
        content_generator: GuideContentGenerator,
        geocoder: AmapGeocodingService,
        weather_service: Optional[AmapWeatherService] = None,
        social_service: Optional[SocialInsightsService] = None,
        guide_store: Optional[GuideStore] = None,
        listener: Optional[ProgressListener] = None,
    ):
        self.content_generator = content_generator
        self.geocoder = geocoder
        self.weather_service = weather_service
        self.social_service = social_service
        self.guide_store = guide_store
        self.tracker = ProgressTracker(GUIDE_STAGES, listener)
        self.logger = logging.getLogger(__name__)

    async def _run_stage(self, stage_id: str, start_message: str, work: Callable[[], Awaitable[StageOutcome]]) -> Any:
        self.tracker.start_stage(stage_id, start_message)
        try:
            outcome = await work()
        except Exception as e:
            message = str(e) or e.__class__.__name__
            self.logger.error(f"[pipeline] Stage {stage_id} failed: {message}", exc_info=True)
            self.tracker.error_stage(stage_id, message)
            raise PipelineAbortedError(stage_id, message, self.tracker.snapshot()) from e

        self.tracker.complete_stage(stage_id, outcome.result, outcome.message)
        return outcome.value

    async def run(self, prompt: str) -> TravelGuide:
        """Generate a complete guide. Raises ``PipelineAbortedError`` when a stage fails."""
        if any(stage.status != StageStatus.PENDING for stage in self.tracker.snapshot().stages):
            # a finished or failed run leaves stages terminal
            self.tracker.reset()

        started = time.monotonic()
        self.logger.info("[pipeline] Start generation", extra={"prompt_length": len(prompt)})

        # 1. Prompt analysis
        facts: TripFacts = await self._run_stage(
            "analyze-prompt", "正在分析您的旅行需求...", lambda: self._analyze_prompt(prompt)
        )
        transport_mode: str = await self._run_stage(
            "identify-transport", "正在识别您的交通偏好...", lambda: self._identify_transport(prompt)
        )
        keyword, user_budget = await self._run_stage(
            "extract-keywords", "正在提取搜索关键词和预算信息...", lambda: self._extract_keywords(prompt)
        )

        # 2. External insights
        social_insights, weather = await self._run_stage(
            "fetch-external-insights", "正在联网搜索...", lambda: self._fetch_insights(keyword, facts)
        )

        # 3. Guide content
        skeleton: GuideSkeleton = await self._run_stage(
            "generate-guide-skeleton",
            "正在生成基础旅行信息...",
            lambda: self._generate_skeleton(prompt, facts, transport_mode, user_budget, social_insights, weather),
        )
        destination_city = self._destination_city(facts, skeleton)
        days = facts.duration_days or GuideFormatter.parse_day_count(skeleton.duration)

        itinerary: ItineraryPlan = await self._run_stage(
            "generate-itinerary",
            "正在生成详细行程...",
            lambda: self._generate_itinerary(prompt, days, transport_mode, social_insights),
        )

        # 4. Coordinates
        await self._run_stage(
            "enrich-coordinates", "正在获取地点坐标...", lambda: self._enrich_itinerary(itinerary, destination_city)
        )
        map_locations = await self._run_stage(
            "generate-locations", "正在生成重要地点...", lambda: self._generate_locations(destination_city, skeleton, prompt)
        )
        budget_breakdown = await self._run_stage(
            "generate-budget", "正在生成预算明细...", lambda: self._generate_budget(user_budget, skeleton, prompt)
        )

        guide = TravelGuide(
            prompt=prompt,
            title=GuideFormatter.build_title(skeleton.destination, skeleton.duration),
            destination=skeleton.destination,
            duration=skeleton.duration,
            budget=skeleton.budget,
            overview=skeleton.overview,
            highlights=skeleton.highlights,
            tips=skeleton.tips,
            transportation=transport_mode,
            itinerary=itinerary.days,
            map_locations=map_locations,
            budget_breakdown=budget_breakdown,
            weather_info=weather,
            social_insights=social_insights,
        )

        # 5. Persistence and assembly
        await self._run_stage("persist", "正在保存旅行指南...", lambda: self._persist(guide))
        await self._run_stage("finalize", "正在整合旅行指南...", lambda: self._finalize(guide, started))

        self.logger.info(
            "[pipeline] Generation complete",
            extra={"guide_id": guide.id, "destination": guide.destination, "seconds": guide.generation_time_seconds},
        )
        return guide

    async def run_streaming(self, prompt: str, stream: ProgressStream) -> Optional[TravelGuide]:
        """Run with every tracker transition published on ``stream``, ending with one terminal event."""
        self.tracker.set_listener(stream.publish_progress)
        try:
            guide = await self.run(prompt)
        except PipelineAbortedError as e:
            stream.publish_error(e.state, e.message)
            return None
        except Exception as e:
            self.logger.error(f"[pipeline] Unexpected failure outside a stage: {e}", exc_info=True)
            stream.publish_error(self.tracker.snapshot(), GENERIC_FAILURE_MESSAGE)
            return None

        stream.publish_complete(self.tracker.snapshot(), guide.model_dump(mode="json"))
        return guide

    # --- Stage bodies ----------------------------------------------------

    async def _analyze_prompt(self, prompt: str) -> StageOutcome:
        facts = await self.content_generator.extract_trip_facts(prompt)
        return StageOutcome(
            facts,
            facts.model_dump(mode="json"),
            f"需求分析完成：{facts.destination or '目的地待确认'}",
        )

    async def _identify_transport(self, prompt: str) -> StageOutcome:
        mode = await self.content_generator.identify_transport(prompt)
        return StageOutcome(mode, mode, f"识别到交通方式：{mode}")

    async def _extract_keywords(self, prompt: str) -> StageOutcome:
        keyword, budget = await asyncio.gather(
            self.content_generator.extract_keyword(prompt),
            self.content_generator.extract_budget(prompt),
        )
        return StageOutcome(
            (keyword, budget),
            {"keyword": keyword, "budget": budget},
            f"提取关键词：{keyword}，预算信息：{budget or '未指定'}",
        )

    async def _fetch_insights(self, keyword: str, facts: TripFacts) -> StageOutcome:
        stage_id = "fetch-external-insights"
        finished = 0

        async def isolated(coro: Awaitable[T], fallback: T, label: str) -> T:
            nonlocal finished
            try:
                return await coro
            except Exception as e:
                self.logger.warning(f"[pipeline] {label} lookup failed, using fallback: {e}")
                return fallback
            finally:
                finished += 1
                if finished == 1:
                    self.tracker.update_stage_progress(stage_id, 50, f"{label}已完成，等待其余结果...")

        weather_fallback = WeatherInfo(
            destination=facts.destination,
            start_date=facts.start_date,
            duration_days=facts.duration_days,
            available=False,
            advice=WEATHER_FALLBACK_ADVICE,
        )

        if self.social_service is not None:
            social_coro = self.social_service.get_insights(keyword, self.content_generator.summarize_notes)
        else:
            social_coro = _constant(SOCIAL_FALLBACK_INSIGHTS)
        if self.weather_service is not None:
            weather_coro = self.weather_service.get_weather(facts.destination, facts.start_date, facts.duration_days)
        else:
            weather_coro = _constant(weather_fallback)

        social_insights, weather = await asyncio.gather(
            isolated(social_coro, SOCIAL_FALLBACK_INSIGHTS, "社交内容"),
            isolated(weather_coro, weather_fallback, "天气"),
        )
        return StageOutcome(
            (social_insights, weather),
            {"social_insights": social_insights, "weather_advice": weather.advice},
            "联网搜索完成",
        )

    async def _generate_skeleton(
        self,
        prompt: str,
        facts: TripFacts,
        transport_mode: str,
        user_budget: Optional[str],
        social_insights: str,
        weather: WeatherInfo,
    ) -> StageOutcome:
        skeleton = await self.content_generator.generate_skeleton(
            prompt, facts, transport_mode, user_budget, social_insights, weather.advice
        )
        return StageOutcome(skeleton, skeleton.model_dump(mode="json"), "基础信息生成完成")

    def _destination_city(self, facts: TripFacts, skeleton: GuideSkeleton) -> str:
        if facts.destination:
            return facts.destination
        if skeleton.destination and skeleton.destination != UNKNOWN_DESTINATION:
            return skeleton.destination
        return ""

    async def _generate_itinerary(self, prompt: str, days: int, transport_mode: str, social_insights: str) -> StageOutcome:
        plan = await self.content_generator.generate_itinerary(prompt, days, transport_mode, social_insights)
        return StageOutcome(plan, {"days": len(plan.days)}, f"详细行程生成完成，共{len(plan.days)}天")

    async def _resolve_entries(
        self,
        entries: List[Tuple[EnrichableEntry, str]],
        city: str,
        stage_id: Optional[str] = None,
    ) -> int:
        """Resolve entries concurrently and write coordinates back in place. Returns the hit count."""
        if not entries:
            return 0

        total = len(entries)
        done = 0

        def on_resolved(index: int, _result: Any) -> None:
            nonlocal done
            done += 1
            if stage_id is not None:
                self.tracker.update_stage_progress(stage_id, done * 100 / total, f"已处理 {done}/{total} 个地点")

        results = await self.geocoder.batch_resolve([(text, city) for _, text in entries], on_resolved=on_resolved)
        hits = 0
        for (entry, _), resolved in zip(entries, results):
            if entry.apply_resolution(resolved):
                hits += 1
        return hits

    async def _enrich_itinerary(self, plan: ItineraryPlan, city: str) -> StageOutcome:
        entries: List[Tuple[EnrichableEntry, str]] = []
        for day in plan.days:
            for entry in [*day.activities, *day.meals]:
                if entry.location.strip() and entry.coordinates is None:
                    entries.append((entry, entry.location))

        if not entries:
            return StageOutcome(0, {"resolved": 0, "total": 0}, "没有需要定位的地点")

        hits = await self._resolve_entries(entries, city, "enrich-coordinates")
        self.logger.info(f"[pipeline] Itinerary coordinates resolved for {hits}/{len(entries)} entries")
        return StageOutcome(
            hits,
            {"resolved": hits, "total": len(entries)},
            f"坐标获取完成：{hits}/{len(entries)} 个地点已定位",
        )

    async def _generate_locations(self, city: str, skeleton: GuideSkeleton, prompt: str) -> StageOutcome:
        destination = city or skeleton.destination
        locations = await self.content_generator.generate_locations(destination, prompt)

        pending: List[Tuple[EnrichableEntry, str]] = [
            (loc, loc.location or loc.name)
            for loc in locations
            if loc.coordinates is None and (loc.location or loc.name).strip()
        ]
        try:
            hits = await self._resolve_entries(pending, city)
        except Exception as e:
            self.logger.warning(f"[pipeline] Map location enrichment skipped: {e}")
            hits = 0
        return StageOutcome(
            locations,
            {"count": len(locations), "resolved": hits},
            f"重要地点生成完成，共{len(locations)}个",
        )

    async def _generate_budget(self, user_budget: Optional[str], skeleton: GuideSkeleton, prompt: str) -> StageOutcome:
        final_budget = user_budget or skeleton.budget or UNCONFIRMED_BUDGET
        breakdown = await self.content_generator.generate_budget(final_budget, skeleton.destination, skeleton.duration, prompt)
        return StageOutcome(breakdown, [item.model_dump() for item in breakdown], "预算明细生成完成")

    async def _persist(self, guide: TravelGuide) -> StageOutcome:
        if self.guide_store is None:
            return StageOutcome(None, None, "未启用持久化，跳过保存")

        try:
            guide_id = await self.guide_store.save_travel_guide(guide)
        except Exception as e:
            self.logger.warning(f"[pipeline] Persisting guide failed: {e}")
            guide_id = None

        if not guide_id:
            return StageOutcome(None, None, "保存失败，但旅行指南已生成")
        guide.id = guide_id
        return StageOutcome(guide_id, {"id": guide_id}, "保存成功")

    async def _finalize(self, guide: TravelGuide, started: float) -> StageOutcome:
        guide.generated_at = datetime.utcnow().isoformat()
        guide.generation_time_seconds = round(time.monotonic() - started, 2)
        result = {"id": guide.id, "generation_time_seconds": guide.generation_time_seconds}
        return StageOutcome(guide, result, "旅行指南生成完成！")


async def _constant(value: T) -> T:
    return value
