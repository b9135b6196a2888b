"""
Customer Store implementations behind the CrmStore interface.
"""
from crm_platform.stores.base import CrmStore, IntegrityViolation
from crm_platform.stores.memory import InMemoryStore
from crm_platform.stores.sql import SqlAlchemyStore

__all__ = ["CrmStore", "IntegrityViolation", "InMemoryStore", "SqlAlchemyStore"]
