# projects/policies.py
"""
Centralized Project Policy Layer

The single authorization predicate for projects and everything under them.
The local and SQL storage adapters call these methods before every read and
write; ``sql/supabase_schema.sql`` mirrors the same rules as row-level
security for the managed backend. Adapters must not re-derive the rule.
"""
from typing import Optional, Tuple

from .entities import ActivityEntry, Project


class ProjectPolicy:
    """
    All methods are pure and return bool or (bool, str) with reason.
    """

    @staticmethod
    def is_owner(principal_id: Optional[str], project: Optional[Project]) -> bool:
        if not principal_id or project is None:
            return False
        return project.created_by is not None and str(project.created_by) == str(principal_id)

    @staticmethod
    def is_team_member(principal_id: Optional[str], project: Optional[Project]) -> bool:
        if not principal_id or project is None:
            return False
        return str(principal_id) in {str(member) for member in project.team_members}

    @staticmethod
    def can_access_project(principal_id: Optional[str], project: Optional[Project]) -> bool:
        """Owner or team member: full read/write/delete on the project and its children."""
        return ProjectPolicy.is_owner(principal_id, project) or ProjectPolicy.is_team_member(
            principal_id, project
        )

    # ─────────────────────────────────────────────────────────────
    # Writes
    # ─────────────────────────────────────────────────────────────

    @staticmethod
    def can_create_project(principal_id: Optional[str], project: Project) -> Tuple[bool, str]:
        """Insert check: the new row must be owned by the caller."""
        if not principal_id:
            return False, "Authentication required"
        if str(project.created_by) != str(principal_id):
            return False, "Projects can only be created with yourself as owner"
        return True, ""

    @staticmethod
    def can_update_project(principal_id: Optional[str], before: Project, after: Project) -> Tuple[bool, str]:
        """
        Update check against both images: the caller must have access to the
        row as stored and to the row as it would be written.
        """
        if not ProjectPolicy.can_access_project(principal_id, before):
            return False, "No access to this project"
        if str(after.created_by) != str(before.created_by):
            return False, "The project owner cannot be changed"
        if not ProjectPolicy.can_access_project(principal_id, after):
            return False, "The update would remove your own access to this project"
        return True, ""

    @staticmethod
    def can_log_activity(principal_id: Optional[str], project: Optional[Project], entry: ActivityEntry) -> Tuple[bool, str]:
        """Activity can only be written as yourself, on a project you can access."""
        if not ProjectPolicy.can_access_project(principal_id, project):
            return False, "No access to this project"
        if entry.user_id is None or str(entry.user_id) != str(principal_id):
            return False, "Activity can only be recorded as yourself"
        return True, ""
