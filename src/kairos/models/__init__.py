"""Kairos data models."""

from kairos.models.contract import Mode, ReplanTrigger, RiskLevel
from kairos.models.dependency import Dependency, EntityType
from kairos.models.profile import UserProfile
from kairos.models.project import NodeKind, PlanNode, Project, ProjectStatus
from kairos.models.session import WorkSessionLog
from kairos.models.work_item import WorkItem, WorkItemStatus

__all__ = [
    "Dependency",
    "EntityType",
    "Mode",
    "NodeKind",
    "PlanNode",
    "Project",
    "ProjectStatus",
    "ReplanTrigger",
    "RiskLevel",
    "UserProfile",
    "WorkItem",
    "WorkItemStatus",
    "WorkSessionLog",
]
