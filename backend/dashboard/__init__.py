"""
Dashboard client for the Hive admin API.

Drives the users/roles/permissions list endpoints as data tables
(TableController) and their export endpoints (ExportTrigger).
"""
