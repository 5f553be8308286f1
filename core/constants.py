# core/constants.py

# --- Activity Verbs (Standard Registry) ---
# Free-text action tags written to the activity log. Kept identical to the
# tags the SPA already renders.

# Projects
ACTIVITY_PROJECT_CREATED = "project_created"
ACTIVITY_PROJECT_UPDATED = "project_updated"
ACTIVITY_PROJECT_DELETED = "project_deleted"

# Tasks
ACTIVITY_TASK_CREATED = "task_created"
ACTIVITY_TASK_UPDATED = "task_updated"
ACTIVITY_TASK_DELETED = "task_deleted"
ACTIVITY_TASKS_IMPORTED = "tasks_imported"

# Custom fields
ACTIVITY_CUSTOM_FIELD_CREATED = "custom_field_created"
ACTIVITY_CUSTOM_FIELD_UPDATED = "custom_field_updated"
ACTIVITY_CUSTOM_FIELD_DELETED = "custom_field_deleted"


# --- Storage backends ---
BACKEND_LOCAL = "local"
BACKEND_SUPABASE = "supabase"
BACKEND_SQL = "sql"

BACKEND_CHOICES = [BACKEND_LOCAL, BACKEND_SUPABASE, BACKEND_SQL]
