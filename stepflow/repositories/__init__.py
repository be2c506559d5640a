"""Repository modules - Data access layer"""
from .base import TemplateStore, InstanceStore, IdentityStore
from .mongo_client import get_database, get_collection, create_indexes, close_connection
from .template_repo import TemplateRepository
from .instance_repo import InstanceRepository
from .identity_repo import IdentityRepository
from .memory import InMemoryTemplateStore, InMemoryInstanceStore, InMemoryIdentityStore
from .cached import CachedTemplateStore, CachedIdentityStore

__all__ = [
    "TemplateStore",
    "InstanceStore",
    "IdentityStore",
    "get_database",
    "get_collection",
    "create_indexes",
    "close_connection",
    "TemplateRepository",
    "InstanceRepository",
    "IdentityRepository",
    "InMemoryTemplateStore",
    "InMemoryInstanceStore",
    "InMemoryIdentityStore",
    "CachedTemplateStore",
    "CachedIdentityStore",
]
