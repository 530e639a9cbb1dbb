"""
Back office API: users, roles, permissions, activity logs and system settings.
"""
