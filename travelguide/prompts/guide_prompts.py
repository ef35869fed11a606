"""
Completion prompts for the travel guide pipeline (Gemini on Vertex AI)
"""

from typing import Optional

TRANSPORT_MODES = ["自驾游", "公共交通", "飞行", "骑行", "步行", "综合交通"]
DEFAULT_TRANSPORT_MODE = "综合交通"
NO_BUDGET_MARKER = "未指定预算"
UNCONFIRMED_BUDGET = "待确认预算范围"


def _budget_line(user_budget: Optional[str]) -> str:
    return f"用户预算：{user_budget}" if user_budget else "用户预算：未指定"


def get_trip_facts_prompt(prompt: str) -> str:
    """Destination, start date and trip length"""
    return f"""请从以下用户旅行需求中提取出行信息：

用户需求："{prompt}"

以JSON格式返回：
{{
  "destination": "目的地城市名称（如：北京、成都、东京），无法判断时返回空字符串",
  "start_date": "出发日期，YYYY-MM-DD 格式，未提及时为 null",
  "duration_days": 旅行天数（整数），未提及时为 null
}}

只返回JSON，不要其他文字。"""


def get_transport_prompt(prompt: str) -> str:
    return f"""分析以下用户旅行需求，识别用户偏好的交通方式：

用户需求："{prompt}"

请分析用户可能的交通偏好，从以下选项中选择最合适的：
- 自驾游：用户提到开车、自驾、租车等
- 公共交通：用户提到地铁、公交、火车、高铁等
- 飞行：用户提到飞机、航班等
- 骑行：用户提到骑车、单车、自行车等
- 步行：用户提到徒步、走路、步行等
- 综合交通：用户没有明确偏好或需要多种交通方式

只返回一个交通方式，如："自驾游"、"公共交通"、"飞行"、"骑行"、"步行"或"综合交通\""""


def get_keyword_prompt(prompt: str) -> str:
    return f"""从以下用户旅行需求中提取最核心的搜索关键词：

用户需求："{prompt}"

请分析用户需求，提取1-2个最重要的关键词，用于搜索小红书旅行笔记。
关键词应该包含：目的地名称、旅行类型或兴趣点。

只返回关键词，不要其他文字。例如："京都樱花"、"成都美食"、"三亚海滩\""""


def get_budget_extraction_prompt(prompt: str) -> str:
    return f"""从以下用户旅行需求中提取预算相关信息：

用户需求："{prompt}"

请分析用户是否提到了预算、费用、价格等相关信息。如果提到了，请提取具体的预算金额或预算范围。
如果没有提到预算信息，请返回"{NO_BUDGET_MARKER}"。

只返回预算信息，不要其他文字。例如："5000元"、"1-2万"、"经济型"、"高端奢华"等。"""


def get_notes_summary_prompt(notes_content: str) -> str:
    return f"""作为专业旅行分析师，请分析以下小红书旅行笔记：

{notes_content}

请从这些真实用户分享中提取专业总结：
1. 热门景点和推荐地点
2. 实用的美食推荐
3. 交通和住宿建议
4. 实际旅行经验和注意事项
5. 预算参考信息

请用简洁专业的中文总结，重点突出实用性和真实性。"""


def get_skeleton_prompt(
    prompt: str,
    transport_mode: str,
    user_budget: Optional[str],
    social_insights: str,
    weather_advice: str,
) -> str:
    """Destination, duration, overview, highlights and tips"""
    budget_hint = (
        f"基于用户预算{user_budget}的优化建议（不超过20个字）" if user_budget
        else "基于真实经验的预算建议（不超过20个字）"
    )
    return f"""作为专业AI旅行专家，请结合用户需求、交通偏好、预算信息、天气和小红书真实分享生成专业指南：

用户需求："{prompt}"
识别的交通方式：{transport_mode}
{_budget_line(user_budget)}
天气参考：{weather_advice or '无'}

小红书真实用户经验分析：
{social_insights or '无'}

请以JSON格式返回专业分析：
{{
  "destination": "目的地城市名称（不超过20个字）",
  "duration": "X天Y夜",
  "budget": "{budget_hint}",
  "overview": "结合真实用户经验和预算考虑的专业概述（不超过100字）",
  "highlights": ["亮点1（不超过30字）", "亮点2", "亮点3", "亮点4", "亮点5", "亮点6"],
  "tips": ["专业建议1（不超过30字）", "建议2", "建议3", "建议4", "建议5", "建议6"]
}}

专业交通建议（请结合预算考虑）：
- 自驾游：推荐自驾友好景点、停车便利地点、最佳自驾路线
- 公共交通：优选地铁/公交便利景点、交通枢纽住宿、换乘优化
- 骑行：推荐骑行友好路线、自行车租赁点、骑行安全提示
- 步行：控制步行距离、推荐步行街区、徒步路线规划
- 飞行：机场交通衔接、航班时间优化、行李寄存建议
- 综合交通：多模式交通组合、最优换乘方案、灵活出行选择

只返回JSON，不要添加任何解释文字或markdown代码块。"""


def get_itinerary_prompt(prompt: str, days: int, transport_mode: str, social_insights: str) -> str:
    return f"""生成{days}天旅行行程JSON：

需求：{prompt}
交通：{transport_mode}
参考：{social_insights or '无'}

返回JSON格式：
{{
  "days": [
    {{
      "day": 1,
      "title": "第1天标题",
      "activities": [
        {{
          "time": "时间",
          "name": "活动名称",
          "location": "地点",
          "description": "描述",
          "duration": "时长",
          "cost": "费用",
          "transportation": {{"from": "起点", "to": "终点", "method": "交通方式", "duration": "时间", "cost": "费用", "route": "路线", "tips": "提示"}}
        }}
      ],
      "meals": [
        {{"type": "breakfast/lunch/dinner", "name": "餐厅名", "location": "位置", "cost": "费用", "description": "特色"}}
      ]
    }}
  ]
}}

要求：
- 每天3-4个活动，3餐
- 根据{transport_mode}规划交通
- 名称<12字，描述<25字
- location 填写可在地图上搜索到的具体地点名称
- 只返回JSON，无其他文字"""


def get_locations_prompt(destination: str, prompt: str) -> str:
    return f"""作为专业旅行AI专家，请为{destination}推荐重要地点：

用户需求：{prompt}

请以JSON格式返回智能地点推荐：
{{
  "locations": [
    {{
      "name": "地点名称（不超过15字）",
      "type": "attraction|restaurant|hotel",
      "description": "专业推荐理由（不超过40字）",
      "day": 1
    }}
  ]
}}

请推荐5-8个精选重要地点，包括：
- 必去景点(attraction)：3-4个
- 推荐餐厅(restaurant)：2-3个
- 住宿推荐(hotel)：1-2个

注意：只需要提供地点名称，坐标将自动获取。只返回JSON。"""


def get_budget_breakdown_prompt(budget: str, destination: str, duration: str, prompt: str) -> str:
    if budget != UNCONFIRMED_BUDGET:
        allocation = f"请严格按照用户预算{budget}来分配各项费用，确保总费用不超过预算范围。"
    else:
        allocation = "请基于目的地消费水平提供合理的预算分配建议。"
    return f"""为{destination}{duration}旅行生成预算明细JSON：

用户需求：{prompt}
总预算：{budget}

{allocation}

返回JSON格式：
{{
  "breakdown": [
    {{"category": "交通费用", "amount": 数字, "percentage": 百分比数字, "color": "#3b82f6", "description": "往返交通、当地交通等费用"}},
    {{"category": "住宿费用", "amount": 数字, "percentage": 百分比数字, "color": "#8b5cf6", "description": "根据预算选择合适的住宿档次"}},
    {{"category": "餐饮费用", "amount": 数字, "percentage": 百分比数字, "color": "#10b981", "description": "当地特色美食和日常餐饮"}},
    {{"category": "门票娱乐", "amount": 数字, "percentage": 百分比数字, "color": "#f59e0b", "description": "景点门票、娱乐活动等"}},
    {{"category": "购物其他", "amount": 数字, "percentage": 百分比数字, "color": "#ef4444", "description": "纪念品、意外支出等"}}
  ]
}}

要求：
- 5个分类的百分比总和必须等于100
- 考虑目的地消费水平和旅行天数
- 只返回JSON，无其他文字"""
