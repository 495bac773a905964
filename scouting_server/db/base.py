"""Import every model so ``Base.metadata`` is complete (used by Alembic and tests)."""

from scouting_server.db.base_class import Base  # noqa: F401
from scouting_server.models.audit_log import AuditLog  # noqa: F401
from scouting_server.models.invoice import Invoice  # noqa: F401
from scouting_server.models.payment import Payment  # noqa: F401
from scouting_server.models.subscription import Subscription  # noqa: F401
from scouting_server.models.user import User, UserRoleAssignment  # noqa: F401
