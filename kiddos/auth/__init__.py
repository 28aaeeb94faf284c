"""Authentication module for the Kiddos catalog."""

from kiddos.auth.security import require_admin, require_user, verify_access_token

__all__ = ["require_admin", "require_user", "verify_access_token"]
