import asyncio
import logging
from typing import Any, Awaitable, Callable, Dict, List, Optional

import httpx
from tenacity import retry, retry_if_exception_type, stop_after_attempt, wait_exponential

SOCIAL_FALLBACK_INSIGHTS = "暂未获取到小红书用户分享，以下攻略基于通用旅行经验生成。"
SOCIAL_DISABLED_INSIGHTS = "未配置社交内容服务，以下攻略基于通用旅行经验生成。"


class SocialInsightsService:
    """Xiaohongshu travel notes via TikHub, summarized into a short insights text."""

    def __init__(
        self,
        api_url: str = "https://api.tikhub.io",
        api_key: Optional[str] = None,
        notes_limit: int = 5,
        http_client: Optional[httpx.AsyncClient] = None,
        timeout: float = 15.0,
    ):
        self.api_url = api_url.rstrip("/")
        self.api_key = api_key
        self.notes_limit = notes_limit
        self.http_client = http_client or httpx.AsyncClient(timeout=timeout)
        self.logger = logging.getLogger(__name__)

    @property
    def enabled(self) -> bool:
        return bool(self.api_key)

    async def close(self) -> None:
        await self.http_client.aclose()

    @retry(
        stop=stop_after_attempt(3),
        wait=wait_exponential(multiplier=1, min=1, max=5),
        retry=retry_if_exception_type((httpx.HTTPError, httpx.TimeoutException)),
        reraise=True
    )
    async def _get(self, path: str, params: Dict[str, Any]) -> Dict[str, Any]:
        response = await self.http_client.get(
            f"{self.api_url}{path}",
            params=params,
            headers={"Authorization": f"Bearer {self.api_key}"},
        )
        response.raise_for_status()
        return response.json()

    async def _note_content(self, note_id: str) -> str:
        data = await self._get("/api/v1/xiaohongshu/app/get_note_info_v2", {"note_id": note_id})
        detail = (data.get("data") or {}).get("data") or {}
        if isinstance(detail, list):
            detail = detail[0] if detail else {}
        title = detail.get("title") or ""
        content = detail.get("content") or detail.get("desc") or ""
        return f"{title}\n{content}".strip()

    async def search_notes(self, keyword: str) -> List[str]:
        """Text of up to ``notes_limit`` notes matching the keyword."""
        if not self.enabled or not keyword:
            return []

        data = await self._get(
            "/api/v1/xiaohongshu/app/search_notes",
            {"keyword": keyword, "page": 1, "filter_note_type": "普通笔记"},
        )
        items = (((data.get("data") or {}).get("data") or {}).get("items")) or []
        note_ids = [
            str(item["note"]["id"])
            for item in items
            if isinstance(item, dict) and isinstance(item.get("note"), dict) and item["note"].get("id")
        ][: self.notes_limit]
        self.logger.info(f"[social] Found {len(items)} notes for '{keyword}', reading {len(note_ids)}")

        results = await asyncio.gather(*(self._note_content(nid) for nid in note_ids), return_exceptions=True)
        notes = []
        for note_id, result in zip(note_ids, results):
            if isinstance(result, BaseException):
                self.logger.warning(f"[social] Note {note_id} unavailable: {result}")
            elif result:
                notes.append(result)
        return notes

    async def get_insights(self, keyword: str, summarize: Callable[[List[str]], Awaitable[str]]) -> str:
        """Summarized notes for a keyword. Never raises; failures yield a fallback text."""
        if not self.enabled:
            return SOCIAL_DISABLED_INSIGHTS
        try:
            notes = await self.search_notes(keyword)
            if not notes:
                return SOCIAL_FALLBACK_INSIGHTS
            summary = await summarize(notes)
        except Exception as e:
            self.logger.warning(f"[social] Insights unavailable for '{keyword}': {e}")
            return SOCIAL_FALLBACK_INSIGHTS
        return summary.strip() or SOCIAL_FALLBACK_INSIGHTS
