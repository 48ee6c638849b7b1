# accounts/__init__.py
"""
Accounts app - Users, roles and permissions for Hive.

This app provides:
- User: Custom user model (email login) belonging to a workspace
- Role / Permission: Guard-scoped access control
- ActorContext: Authorization context utilities
- Table schemas for the users, roles and permissions listings and exports
"""
