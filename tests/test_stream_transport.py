import httpx
import pytest

from conftest import frame_to_dict
from travelguide.models.progress_models import (
    CompleteEvent,
    CompletePayload,
    PipelineState,
    ProgressEvent,
    StageDefinition,
)
from travelguide.services.progress_tracker import ProgressTracker
from travelguide.services.stream_transport import (
    GuideStreamClient,
    ProgressStream,
    encode_sse,
    parse_sse_line,
)


def sample_state() -> PipelineState:
    tracker = ProgressTracker([StageDefinition(id="only", display_name="唯一阶段")])
    tracker.start_stage("only")
    return tracker.snapshot()


async def collect(stream: ProgressStream):
    return [event async for event in stream.events()]


def test_encode_sse_frame_format():
    frame = encode_sse(ProgressEvent(data=sample_state()))

    assert frame.startswith("data: ")
    assert frame.endswith("\n\n")
    payload = frame_to_dict(frame)
    assert payload["type"] == "progress"
    assert payload["data"]["current_stage_id"] == "only"
    assert payload["data"]["stages"][0]["status"] == "in_progress"


def test_parse_sse_line_round_trips_events():
    frame = encode_sse(CompleteEvent(data=CompletePayload(progress=sample_state(), result={"title": "北京3天攻略"})))

    event = parse_sse_line(frame.strip())

    assert isinstance(event, CompleteEvent)
    assert event.data.result == {"title": "北京3天攻略"}


@pytest.mark.parametrize("line", [
    "",
    ": keep-alive",
    "event: progress",
    "data: {not json",
    'data: {"type": "heartbeat", "data": {}}',
    'data: {"type": "progress"}',
])
def test_parse_sse_line_skips_unusable_lines(line):
    assert parse_sse_line(line) is None


@pytest.mark.asyncio
async def test_stream_closes_after_terminal_event():
    stream = ProgressStream()
    state = sample_state()

    assert stream.publish_progress(state)
    assert stream.publish_complete(state, {"title": "ok"})
    assert stream.closed
    assert not stream.publish_progress(state)
    assert not stream.publish_error(state, "too late")

    events = await collect(stream)
    assert [e.type for e in events] == ["progress", "complete"]


@pytest.mark.asyncio
async def test_stream_is_usable_as_tracker_listener():
    stream = ProgressStream()
    tracker = ProgressTracker([StageDefinition(id="a", display_name="A")], listener=stream)

    tracker.start_stage("a")
    tracker.complete_stage("a")
    stream.publish_complete(tracker.snapshot())

    events = await collect(stream)
    assert [e.type for e in events] == ["progress", "progress", "complete"]
    assert events[1].data.is_complete


@pytest.mark.asyncio
async def test_sse_frames_end_with_error_event():
    stream = ProgressStream()
    state = sample_state()
    stream.publish_progress(state)
    stream.publish_error(state, "生成失败")

    frames = [frame async for frame in stream.sse_frames()]

    assert len(frames) == 2
    assert frame_to_dict(frames[-1])["data"]["error"] == "生成失败"


def stream_client(body: str, status_code: int = 200) -> GuideStreamClient:
    def handler(request: httpx.Request) -> httpx.Response:
        assert request.url.path == "/api/v1/generate/stream"
        return httpx.Response(status_code, content=body.encode("utf-8"),
                              headers={"content-type": "text/event-stream"})

    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return GuideStreamClient("http://testserver", http_client=client)


@pytest.mark.asyncio
async def test_client_skips_junk_and_stops_at_terminal_event():
    state = sample_state()
    body = "".join([
        ": comment\n\n",
        encode_sse(ProgressEvent(data=state)),
        "data: {broken\n\n",
        encode_sse(CompleteEvent(data=CompletePayload(progress=state, result={"title": "成都3天攻略"}))),
        encode_sse(ProgressEvent(data=state)),
    ])
    client = stream_client(body)

    events = [event async for event in client.stream_guide("成都3天")]

    assert [e.type for e in events] == ["progress", "complete"]
    await client.close()


@pytest.mark.asyncio
async def test_client_generate_returns_terminal_event():
    state = sample_state()
    body = encode_sse(ProgressEvent(data=state)) + encode_sse(
        CompleteEvent(data=CompletePayload(progress=state, result={"id": "g1"}))
    )
    client = stream_client(body)

    event = await client.generate("成都3天")

    assert event.type == "complete"
    assert event.data.result == {"id": "g1"}


@pytest.mark.asyncio
async def test_client_generate_raises_when_stream_is_cut_short():
    client = stream_client(encode_sse(ProgressEvent(data=sample_state())))

    with pytest.raises(ConnectionError):
        await client.generate("成都3天")


@pytest.mark.asyncio
async def test_client_raises_on_http_error():
    client = stream_client("", status_code=400)

    with pytest.raises(httpx.HTTPStatusError):
        await client.generate("")
