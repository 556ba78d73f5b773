"""
auth/guard.py -- Role allow-lists and the authorization check.

Every protected route names one of the allow-lists below. The check runs
once per request, after the token has been validated:

  system role         -> allowed (trusted internal caller)
  role in allow-list  -> allowed
  anything else       -> Forbidden (403)

SYSTEM_ONLY is empty on purpose: only the system role gets through, and it
gets through every list anyway.

Layer rule: no imports from api/ or accounts/. Import from core/ is allowed.
"""

from __future__ import annotations

import logging

from auth.models import Role
from core.errors import Forbidden

logger = logging.getLogger("dogrun.auth")

ALL: frozenset[Role] = frozenset(Role)
SYSTEM_ONLY: frozenset[Role] = frozenset()

# Browse dog runs (public listing data).
DOGRUN_REFER: frozenset[Role] = frozenset({Role.DOGRUNMG, Role.DOGRUNMG_ADMIN, Role.DOGOWNER, Role.GENERAL})
# Search dog runs by area.
DOGRUN_SEARCH: frozenset[Role] = frozenset({Role.DOGOWNER, Role.GENERAL})
# Dog owner's own dogs and session.
DOG_MANAGE: frozenset[Role] = frozenset({Role.DOGOWNER})
# Dog run manager features, admin included.
DOGRUN_MANAGE: frozenset[Role] = frozenset({Role.DOGRUNMG, Role.DOGRUNMG_ADMIN})
# Organization admin only.
DOGRUN_SUPER_MANAGE: frozenset[Role] = frozenset({Role.DOGRUNMG_ADMIN})


def authorize(role: Role, allowed: frozenset[Role]) -> None:
    """Raise Forbidden unless role may call a route guarded by allowed."""
    if role is Role.SYSTEM:
        return
    if role in allowed:
        return
    logger.info("Forbidden: role %s not in %s", role.name, sorted(r.name for r in allowed))
    raise Forbidden()
