"""
OncoSafe RBAC -- Authorization Core
===================================

Role-based access control for the OncoSafe clinical platform.  Holds the
static catalog of permissions and roles, and resolves allow/deny decisions
for subjects (user-profile records carrying role ids and directly granted
permission ids).

Every decision fails closed: unknown ids, missing subjects, and malformed
profile fields resolve to "deny", never to an exception.

DISCLAIMER: This package is an access-control layer only.  Production
deployments should integrate with an enterprise identity provider
(e.g., OAuth2/OIDC, SAML) for authentication and session management.
"""

__version__ = "0.1.0"
