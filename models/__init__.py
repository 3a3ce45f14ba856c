from .organization import Organization  # noqa: F401
from .workspace import (  # noqa: F401
    ApiKey,
    EnterpriseOrgLinkRequest,
    Workspace,
    WorkspaceInvite,
    WorkspaceMember,
    WorkspaceOrganization,
)
from .billing import BillingAccount, Subscription, TrialSession  # noqa: F401
