"""Music School Service.

Transactional manager layer of the music school administration backend:
per-entity managers enforcing validation and uniqueness rules, the
transaction coordinator, and the schedule conflict checker and recurrence
generator.
"""

from services.music_school_service.config import Settings, settings
from services.music_school_service.filters import Condition, QueryFilter
from services.music_school_service.models_db import Base, Schedule
from services.music_school_service.protocols import (
    EntityProtocol,
    EntityRuleProtocol,
    RepositoryProtocol,
    TransactionHandleProtocol,
    TransactionProviderProtocol,
)

from . import implementations

# Define public API
__all__ = [
    "Settings",
    "settings",
    # Filter model
    "Condition",
    "QueryFilter",
    # Models
    "Base",
    "Schedule",
    # Protocols
    "EntityProtocol",
    "EntityRuleProtocol",
    "RepositoryProtocol",
    "TransactionHandleProtocol",
    "TransactionProviderProtocol",
    # Subpackages
    "implementations",
]
