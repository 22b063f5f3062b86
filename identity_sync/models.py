from identity_sync.database import Base

# Import all models to register them with SQLAlchemy Base
from identity_sync.users.models import User
from identity_sync.organizations.models import Organization, OrganizationMembership
from identity_sync.webhooks.models import FailedWebhookEvent
