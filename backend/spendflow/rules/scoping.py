"""Company-scoping guard.

Runs before every resource-level read, update or delete:

  1. no company reference            → Forbidden (fail closed)
  2. other company's resource        → CrossTenantAccess, whatever the role
  3. someone else's owned resource   → allowed for manager/admin only
"""
from spendflow.core.errors import CrossTenantAccess, Forbidden
from spendflow.core.identity import Identity
from spendflow.core.permissions import APPROVER_ROLES


def scope_check(identity: Identity, resource) -> None:
    company_id = getattr(resource, "company_id", None)
    if company_id is None:
        raise Forbidden("Resource does not declare a company.")

    if str(company_id) != str(identity.company_id):
        raise CrossTenantAccess("Not authorized to access this resource.")

    owner_id = getattr(resource, "owner_id", None)
    if owner_id is not None and str(owner_id) != str(identity.user_id):
        if identity.role not in APPROVER_ROLES:
            raise Forbidden("Not authorized to access this resource.")


def is_in_scope(identity: Identity, resource) -> bool:
    try:
        scope_check(identity, resource)
    except Forbidden:
        return False
    return True
