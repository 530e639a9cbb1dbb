"""
Roles, permissions and authorization.

Roles own sets of permissions, users hold roles. Decisions go through the
AuthorizationContext, which reads cached grants per guard.
"""
