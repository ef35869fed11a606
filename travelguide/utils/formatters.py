import re
from typing import List, Optional

DEFAULT_DAY_COUNT = 5
_DAY_COUNT_RE = re.compile(r"(\d+)\s*天")

class GuideFormatter:
    """Text helpers used when assembling a travel guide"""

    @staticmethod
    def truncate_text(text: Optional[str], max_length: int) -> str:
        """Cut text to max_length characters, marking the cut with an ellipsis"""
        if not text:
            return ""
        if len(text) <= max_length:
            return text
        return text[:max_length - 1] + "…"

    @staticmethod
    def parse_day_count(duration: Optional[str], default: int = DEFAULT_DAY_COUNT) -> int:
        """'3天2夜' -> 3"""
        if not duration:
            return default
        match = _DAY_COUNT_RE.search(duration)
        if not match:
            return default
        days = int(match.group(1))
        return days if days > 0 else default

    @staticmethod
    def build_title(destination: str, duration: str) -> str:
        return f"{GuideFormatter.truncate_text(destination, 20)}{duration}攻略"

    @staticmethod
    def truncate_all(items: List[str], max_length: int) -> List[str]:
        return [GuideFormatter.truncate_text(item, max_length) for item in items if item]

    @staticmethod
    def format_duration(days: int) -> str:
        """5 -> '5天4夜'"""
        if days <= 1:
            return "1天"
        return f"{days}天{days - 1}夜"
