import logging
import uuid
from typing import Any, Dict, Optional
from datetime import datetime, date
from decimal import Decimal

from google.cloud import firestore
from google.oauth2 import service_account

from travelguide.models.guide_models import TravelGuide
from travelguide.utils.config import get_settings


class GuideStore:
    """Firestore-backed persistence for generated travel guides."""

    def __init__(self, client: Optional[Any] = None, collection_name: Optional[str] = None):
        self.settings = get_settings()
        self.logger = logging.getLogger(__name__)
        self.collection_name = collection_name or self.settings.FIRESTORE_GUIDES_COLLECTION or "travel_guides"

        if client is not None:
            self.client = client
            return

        project_id = self.settings.FIRESTORE_PROJECT_ID or self.settings.GOOGLE_CLOUD_PROJECT
        try:
            # Prefer explicit Firestore credentials if provided (split-project support)
            credentials = None
            if self.settings.FIRESTORE_CREDENTIALS:
                credentials = service_account.Credentials.from_service_account_file(
                    self.settings.FIRESTORE_CREDENTIALS
                )
            database = self.settings.FIRESTORE_DATABASE_ID or None  # default DB if None
            self.client = firestore.AsyncClient(project=project_id, credentials=credentials, database=database)
            self.logger.info("Initialized Firestore client", extra={"project": project_id, "collection": self.collection_name, "database": database or "(default)"})
        except Exception:
            self.logger.exception("Failed to initialize Firestore client")
            raise

    def _collection(self):
        return self.client.collection(self.collection_name)

    def _sanitize_for_firestore(self, value: Any) -> Any:
        """Recursively convert values into Firestore-friendly types.
        - datetime/date -> ISO string
        - Decimal -> float
        - set/tuple -> list (coordinates are stored as [lng, lat])
        """
        if isinstance(value, dict):
            return {k: self._sanitize_for_firestore(v) for k, v in value.items()}
        if isinstance(value, (list, tuple, set)):
            return [self._sanitize_for_firestore(v) for v in value]
        if isinstance(value, (datetime, date)):
            return value.isoformat()
        if isinstance(value, Decimal):
            return float(value)
        return value

    async def save_travel_guide(self, guide: TravelGuide) -> Optional[str]:
        """Store a guide and return its document id, or None when the write fails."""
        guide_id = guide.id or uuid.uuid4().hex
        try:
            payload = self._sanitize_for_firestore(guide.model_dump(mode="json", exclude={"id"}))
            now = datetime.utcnow().isoformat()
            payload.update({"created_at": now, "updated_at": now, "schema_version": 1})
            await self._collection().document(guide_id).set(payload)
            self.logger.info(f"Saved travel guide {guide_id} to Firestore")
            return guide_id
        except Exception as e:
            self.logger.error(f"Firestore save failed for {guide_id}: {e}")
            return None

    async def get_travel_guide(self, guide_id: str) -> Optional[Dict[str, Any]]:
        try:
            doc = await self._collection().document(guide_id).get()
            if doc.exists:
                data = doc.to_dict()
                data["id"] = guide_id
                return data
            return None
        except Exception as e:
            self.logger.error(f"Firestore get failed for {guide_id}: {e}")
            return None
