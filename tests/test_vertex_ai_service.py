from types import SimpleNamespace

import pytest

from travelguide.services.vertex_ai_service import CompletionServiceError, VertexAIService


class FakeModels:
    def __init__(self, outcomes):
        self.outcomes = list(outcomes)
        self.calls = []

    async def generate_content(self, model, contents, config):
        self.calls.append({"model": model, "contents": contents, "config": config})
        outcome = self.outcomes.pop(0) if self.outcomes else SimpleNamespace(text="")
        if isinstance(outcome, BaseException):
            raise outcome
        return outcome


def make_service(outcomes, max_attempts=2):
    models = FakeModels(outcomes)
    client = SimpleNamespace(aio=SimpleNamespace(models=models))
    service = VertexAIService(
        project_id="test-project",
        model_name="gemini-test",
        max_attempts=max_attempts,
        retry_wait_max=0,
        client=client,
    )
    return service, models


@pytest.mark.asyncio
async def test_generate_text_passes_model_and_temperature():
    service, models = make_service([SimpleNamespace(text="公共交通")])

    text = await service.generate_text("识别交通方式", temperature=0.2)

    assert text == "公共交通"
    call = models.calls[0]
    assert call["model"] == "gemini-test"
    assert call["contents"] == "识别交通方式"
    assert call["config"].temperature == 0.2


@pytest.mark.asyncio
async def test_generate_json_requests_json_mode():
    service, models = make_service([SimpleNamespace(text='{"destination": "北京"}')])

    raw = await service.generate_json("提取出行信息")

    assert raw == '{"destination": "北京"}'
    assert models.calls[0]["config"].response_mime_type == "application/json"
    assert models.calls[0]["config"].temperature == 0.7


@pytest.mark.asyncio
async def test_generate_json_returns_empty_object_for_empty_output():
    service, _ = make_service([SimpleNamespace(text="   ", candidates=[])])

    assert await service.generate_json("x") == "{}"


@pytest.mark.asyncio
async def test_text_is_joined_from_candidate_parts():
    part = SimpleNamespace(text="第一段")
    other = SimpleNamespace(text="第二段")
    response = SimpleNamespace(text=None, candidates=[SimpleNamespace(content=SimpleNamespace(parts=[part, other]))])
    service, _ = make_service([response])

    assert await service.generate_text("x") == "第一段\n第二段"


@pytest.mark.asyncio
async def test_transient_failure_is_retried():
    service, models = make_service([ConnectionError("reset"), SimpleNamespace(text="ok")])

    assert await service.generate_text("x") == "ok"
    assert len(models.calls) == 2


@pytest.mark.asyncio
async def test_exhausted_retries_raise_completion_error():
    service, models = make_service([ConnectionError("reset")] * 3, max_attempts=3)

    with pytest.raises(CompletionServiceError) as exc_info:
        await service.generate_json("x")

    assert "reset" in str(exc_info.value)
    assert len(models.calls) == 3
