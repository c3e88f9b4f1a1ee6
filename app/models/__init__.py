# Models package for ScopeGuard (registers all SQLAlchemy models on Base)

from .tenant import Contractor
from .user import ContractorUser, UserRole
from .lead import Document, DocumentType, Lead, LeadStatus, Photo
from .takeoff import Takeoff, TakeoffSource
from .estimate import Confidence, Estimate, EstimateStatus, ProjectOutcome
from .payment import Payment, PaymentStatus, PaymentType
from .ai_usage import AIUsage

__all__ = [
    "Contractor",
    "ContractorUser",
    "UserRole",
    "Lead",
    "LeadStatus",
    "Photo",
    "Document",
    "DocumentType",
    "Takeoff",
    "TakeoffSource",
    "Estimate",
    "EstimateStatus",
    "Confidence",
    "ProjectOutcome",
    "Payment",
    "PaymentStatus",
    "PaymentType",
    "AIUsage",
]
