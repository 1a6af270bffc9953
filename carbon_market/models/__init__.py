"""
SQLAlchemy ORM models package.

All models are imported here so that:
  1. Base.metadata knows every table when create_all() runs at startup
  2. Other modules can import from carbon_market.models directly
"""

from carbon_market.models.user import User, UserType  # noqa: F401
from carbon_market.models.user_profile import UserProfile  # noqa: F401
from carbon_market.models.project import (  # noqa: F401
    CarbonProject,
    CarbonStandard,
    ProjectStatus,
    ProjectType,
    ProjectVerification,
    VerificationDecision,
)
from carbon_market.models.transaction import Transaction, TransactionStatus  # noqa: F401
from carbon_market.models.credit import CarbonCredit, CreditStatus  # noqa: F401
from carbon_market.models.impact import ImpactType, UserImpact  # noqa: F401
from carbon_market.models.retirement import RetirementCertificate  # noqa: F401
from carbon_market.models.webhook_event import ProcessedWebhookEvent  # noqa: F401
from carbon_market.models.review import ProjectReview  # noqa: F401
