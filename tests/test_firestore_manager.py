from types import SimpleNamespace

import pytest

from travelguide.models.guide_models import Activity, DayPlan, TravelGuide
from travelguide.utils.firestore_manager import GuideStore


class FakeDocument:
    def __init__(self, storage, doc_id, fail=False):
        self.storage = storage
        self.doc_id = doc_id
        self.fail = fail

    async def set(self, payload):
        if self.fail:
            raise RuntimeError("permission denied")
        self.storage[self.doc_id] = payload

    async def get(self):
        data = self.storage.get(self.doc_id)
        return SimpleNamespace(exists=data is not None, to_dict=lambda: dict(data))


class FakeFirestore:
    def __init__(self, fail=False):
        self.storage = {}
        self.fail = fail
        self.collections = []

    def collection(self, name):
        self.collections.append(name)
        return SimpleNamespace(document=lambda doc_id: FakeDocument(self.storage, doc_id, self.fail))


def sample_guide():
    return TravelGuide(
        prompt="杭州2天",
        title="杭州2天1夜攻略",
        destination="杭州",
        duration="2天1夜",
        budget="3000元",
        overview="西湖漫步",
        itinerary=[DayPlan(day=1, activities=[Activity(name="断桥", location="断桥残雪", coordinates=(120.15, 30.26))])],
    )


@pytest.mark.asyncio
async def test_save_and_load_guide():
    client = FakeFirestore()
    store = GuideStore(client=client, collection_name="guides")

    guide_id = await store.save_travel_guide(sample_guide())

    assert guide_id
    assert client.collections == ["guides"]
    stored = client.storage[guide_id]
    assert "id" not in stored
    assert stored["schema_version"] == 1
    assert stored["itinerary"][0]["activities"][0]["coordinates"] == [120.15, 30.26]

    loaded = await store.get_travel_guide(guide_id)
    assert loaded["id"] == guide_id
    assert loaded["title"] == "杭州2天1夜攻略"
    assert await store.get_travel_guide("missing") is None


@pytest.mark.asyncio
async def test_save_failure_returns_none():
    store = GuideStore(client=FakeFirestore(fail=True))

    assert await store.save_travel_guide(sample_guide()) is None
