"""ORM models. Importing this package registers every table on `Base.metadata`."""
from .authz import Base, Permission, Role, RolePermission, User, UserRole  # noqa: F401
from .mda import Mda  # noqa: F401
from .budget import Budget, BudgetLineItem  # noqa: F401
from .expenditure import Expenditure, Attachment  # noqa: F401
from .retirement import ExpenditureRetirement, RetirementAttachment  # noqa: F401
from .approval import ApprovalHistory, ApprovalWorkflow, ApprovalStep  # noqa: F401
from .notification import Notification  # noqa: F401
from .snapshot import BudgetSnapshot  # noqa: F401
from .audit import AuditLog  # noqa: F401
