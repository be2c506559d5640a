"""Identity Repository - Users and their role names"""
from typing import Optional
from pymongo.collection import Collection

from .mongo_client import IDENTITIES, get_collection
from ..domain.models import Identity
from ..utils.logger import get_logger

logger = get_logger(__name__)


class IdentityRepository:
    """Repository for identities"""

    def __init__(self, collection: Optional[Collection] = None):
        self._identities: Collection = collection if collection is not None else get_collection(IDENTITIES)

    def find_identity(self, username: str) -> Optional[Identity]:
        """Get identity by exact username"""
        if not username:
            return None
        doc = self._identities.find_one({"username": username})
        if doc:
            doc.pop("_id", None)
            return Identity.model_validate(doc)
        return None

    def save_identity(self, identity: Identity) -> Identity:
        """Insert or replace an identity"""
        doc = identity.model_dump()
        doc["_id"] = identity.username
        self._identities.replace_one({"_id": identity.username}, doc, upsert=True)
        logger.info(f"Saved identity: {identity.username}", extra={"actor": identity.username})
        return identity
