"""
Capability catalogue and the per-role allow-lists.

Capabilities are ``feature:resource:action`` strings; ``*`` in any segment
matches every value for that segment.
"""

from __future__ import annotations

from siteaccess.schemas.roles import ProjectRole


ALL = "*:*:*"

# Documents
DRAWING_CREATE = "documents:drawing:create"
DRAWING_READ = "documents:drawing:read"
DRAWING_UPDATE = "documents:drawing:update"
DRAWING_APPROVE = "documents:drawing:approve"
DRAWING_EXPORT = "documents:drawing:export"
DRAWING_VERSION = "documents:drawing:version"
SPECIFICATION_CREATE = "documents:specification:create"
SPECIFICATION_READ = "documents:specification:read"
SPECIFICATION_UPDATE = "documents:specification:update"
SPECIFICATION_APPROVE = "documents:specification:approve"
SPECIFICATION_EXPORT = "documents:specification:export"
SPECIFICATION_VERSION = "documents:specification:version"
PHOTO_CREATE = "documents:photo:create"
PHOTO_READ = "documents:photo:read"
PHOTO_UPDATE = "documents:photo:update"
PHOTO_EXPORT = "documents:photo:export"
MODEL_CREATE = "documents:model:create"
MODEL_READ = "documents:model:read"
MODEL_UPDATE = "documents:model:update"
MODEL_EXPORT = "documents:model:export"
MODEL_VERSION = "documents:model:version"
REPORT_CREATE = "documents:report:create"
REPORT_READ = "documents:report:read"
REPORT_UPDATE = "documents:report:update"
REPORT_APPROVE = "documents:report:approve"
REPORT_EXPORT = "documents:report:export"
ALL_DOCUMENTS = "documents:*:*"
ALL_DOCUMENT_READ = "documents:*:read"

# RFIs
RFI_CREATE = "rfis:rfi:create"
RFI_READ = "rfis:rfi:read"
RFI_UPDATE = "rfis:rfi:update"
RFI_RESPOND = "rfis:rfi:respond"
ALL_RFIS = "rfis:*:*"

# Submittals
SUBMITTAL_CREATE = "submittals:submittal:create"
SUBMITTAL_READ = "submittals:submittal:read"
SUBMITTAL_UPDATE = "submittals:submittal:update"
SUBMITTAL_REVIEW = "submittals:submittal:review"
SUBMITTAL_APPROVE = "submittals:submittal:approve"
SUBMITTAL_REJECT = "submittals:submittal:reject"
SUBMITTAL_REQUIRE_RESUBMIT = "submittals:submittal:require_resubmit"
ALL_SUBMITTALS = "submittals:*:*"

# Schedule
TASK_CREATE = "schedule:task:create"
TASK_READ = "schedule:task:read"
TASK_UPDATE = "schedule:task:update"
TASK_ASSIGN = "schedule:task:assign"
TASK_COMPLETE = "schedule:task:complete"
MILESTONE_READ = "schedule:milestone:read"
MILESTONE_APPROVE = "schedule:milestone:approve"
ALL_SCHEDULE = "schedule:*:*"
ALL_SCHEDULE_READ = "schedule:*:read"

# Daily reports
DAILY_REPORT_CREATE = "daily_reports:daily_report:create"
DAILY_REPORT_READ = "daily_reports:daily_report:read"
DAILY_REPORT_UPDATE = "daily_reports:daily_report:update"
DAILY_REPORT_APPROVE = "daily_reports:daily_report:approve"
DAILY_REPORT_EXPORT = "daily_reports:daily_report:export"
WEATHER_CREATE = "daily_reports:weather:create"
WEATHER_READ = "daily_reports:weather:read"
LABOR_CREATE = "daily_reports:labor:create"
LABOR_READ = "daily_reports:labor:read"
EQUIPMENT_CREATE = "daily_reports:equipment:create"
EQUIPMENT_READ = "daily_reports:equipment:read"
ALL_DAILY_REPORTS = "daily_reports:*:*"

# Safety
INCIDENT_CREATE = "safety:incident:create"
INCIDENT_READ = "safety:incident:read"
SAFETY_INSPECTION_CREATE = "safety:inspection:create"
SAFETY_INSPECTION_READ = "safety:inspection:read"
SAFETY_MEETING_READ = "safety:meeting:read"
TOOLBOX_TALK_READ = "safety:toolbox_talk:read"
ALL_SAFETY = "safety:*:*"

# Budget
BUDGET_ITEM_READ = "budget:budget_item:read"
BUDGET_ITEM_CREATE = "budget:budget_item:create"
BUDGET_ITEM_UPDATE = "budget:budget_item:update"
BUDGET_ITEM_EXPORT = "budget:budget_item:export"
CHANGE_ORDER_READ = "budget:change_order:read"
CHANGE_ORDER_CREATE = "budget:change_order:create"
CHANGE_ORDER_UPDATE = "budget:change_order:update"
CHANGE_ORDER_APPROVE = "budget:change_order:approve"
INVOICE_READ = "budget:invoice:read"
INVOICE_CREATE = "budget:invoice:create"
INVOICE_UPDATE = "budget:invoice:update"
INVOICE_APPROVE = "budget:invoice:approve"
PAYMENT_READ = "budget:payment:read"
PAYMENT_APPROVE = "budget:payment:approve"
ALL_BUDGET_READ = "budget:*:read"

# Quality
INSPECTION_CREATE = "quality:inspection:create"
INSPECTION_READ = "quality:inspection:read"
INSPECTION_UPDATE = "quality:inspection:update"
INSPECTION_APPROVE = "quality:inspection:approve"
PUNCH_ITEM_CREATE = "quality:punch_item:create"
PUNCH_ITEM_READ = "quality:punch_item:read"
PUNCH_ITEM_UPDATE = "quality:punch_item:update"
TEST_RESULT_CREATE = "quality:test_result:create"
TEST_RESULT_READ = "quality:test_result:read"
ALL_QUALITY = "quality:*:*"

# Meetings
MEETING_CREATE = "meetings:meeting:create"
MEETING_READ = "meetings:meeting:read"
MEETING_UPDATE = "meetings:meeting:update"
MINUTES_CREATE = "meetings:minutes:create"
MINUTES_READ = "meetings:minutes:read"
MINUTES_UPDATE = "meetings:minutes:update"
ACTION_ITEM_CREATE = "meetings:action_item:create"
ACTION_ITEM_READ = "meetings:action_item:read"
ACTION_ITEM_UPDATE = "meetings:action_item:update"
ALL_MEETINGS = "meetings:*:*"

# Project settings
SETTINGS_READ = "project_settings:settings:read"
SETTINGS_UPDATE = "project_settings:settings:update"
MEMBERS_READ = "project_settings:members:read"
MEMBERS_INVITE = "project_settings:members:invite"
MEMBERS_UPDATE = "project_settings:members:update"
MEMBERS_REMOVE = "project_settings:members:remove"
ALL_MEMBERS = "project_settings:members:*"
PERMISSIONS_READ = "project_settings:permissions:read"
INTEGRATIONS_READ = "project_settings:integrations:read"


PROJECT_ROLE_CAPABILITIES: dict[ProjectRole, tuple[str, ...]] = {
    ProjectRole.PROJECT_ADMIN: (ALL,),
    # Runs the project day to day; manages members but not settings.
    ProjectRole.PROJECT_MANAGER: (
        ALL_DOCUMENTS, ALL_RFIS, ALL_SUBMITTALS, ALL_SCHEDULE,
        DAILY_REPORT_READ, DAILY_REPORT_APPROVE, DAILY_REPORT_EXPORT,
        WEATHER_READ, LABOR_READ, EQUIPMENT_READ,
        ALL_SAFETY,
        BUDGET_ITEM_READ, BUDGET_ITEM_CREATE, BUDGET_ITEM_UPDATE, BUDGET_ITEM_EXPORT,
        CHANGE_ORDER_READ, CHANGE_ORDER_CREATE, CHANGE_ORDER_UPDATE,
        INVOICE_READ, INVOICE_CREATE, INVOICE_UPDATE, PAYMENT_READ,
        ALL_QUALITY, ALL_MEETINGS,
        SETTINGS_READ, ALL_MEMBERS, PERMISSIONS_READ, INTEGRATIONS_READ,
    ),
    ProjectRole.PROJECT_ENGINEER: (
        DRAWING_CREATE, DRAWING_READ, DRAWING_UPDATE, DRAWING_EXPORT, DRAWING_VERSION,
        SPECIFICATION_CREATE, SPECIFICATION_READ, SPECIFICATION_UPDATE,
        SPECIFICATION_EXPORT, SPECIFICATION_VERSION,
        MODEL_CREATE, MODEL_READ, MODEL_UPDATE, MODEL_EXPORT, MODEL_VERSION,
        PHOTO_READ, REPORT_CREATE, REPORT_READ, REPORT_EXPORT,
        RFI_CREATE, RFI_READ, RFI_UPDATE, RFI_RESPOND,
        SUBMITTAL_CREATE, SUBMITTAL_READ, SUBMITTAL_REVIEW, SUBMITTAL_UPDATE,
        ALL_SCHEDULE_READ, TASK_UPDATE, TASK_COMPLETE,
        DAILY_REPORT_READ, WEATHER_READ, LABOR_READ, EQUIPMENT_READ,
        INCIDENT_READ, INCIDENT_CREATE, SAFETY_INSPECTION_READ, TOOLBOX_TALK_READ,
        ALL_BUDGET_READ,
        INSPECTION_CREATE, INSPECTION_READ, INSPECTION_UPDATE,
        PUNCH_ITEM_READ, TEST_RESULT_CREATE, TEST_RESULT_READ,
        MEETING_READ, MINUTES_READ, ACTION_ITEM_CREATE, ACTION_ITEM_READ, ACTION_ITEM_UPDATE,
        SETTINGS_READ,
    ),
    ProjectRole.SUPERINTENDENT: (
        PHOTO_CREATE, PHOTO_READ, PHOTO_UPDATE, PHOTO_EXPORT,
        REPORT_CREATE, REPORT_READ, REPORT_UPDATE, REPORT_EXPORT,
        DRAWING_READ, SPECIFICATION_READ,
        RFI_CREATE, RFI_READ, RFI_UPDATE, RFI_RESPOND,
        SUBMITTAL_READ,
        ALL_SCHEDULE_READ, TASK_CREATE, TASK_UPDATE, TASK_ASSIGN, TASK_COMPLETE,
        ALL_DAILY_REPORTS, ALL_SAFETY,
        BUDGET_ITEM_READ, CHANGE_ORDER_READ,
        INSPECTION_CREATE, INSPECTION_READ, INSPECTION_UPDATE,
        PUNCH_ITEM_CREATE, PUNCH_ITEM_READ, PUNCH_ITEM_UPDATE, TEST_RESULT_READ,
        MEETING_CREATE, MEETING_READ, MEETING_UPDATE,
        MINUTES_CREATE, MINUTES_READ, MINUTES_UPDATE,
        ACTION_ITEM_CREATE, ACTION_ITEM_READ, ACTION_ITEM_UPDATE,
        SETTINGS_READ,
    ),
    # Scope-limited: every grant is narrowed to the assigned work area.
    ProjectRole.FOREMAN: (
        PHOTO_CREATE, PHOTO_READ, PHOTO_EXPORT, REPORT_CREATE, REPORT_READ,
        DRAWING_READ, SPECIFICATION_READ,
        RFI_CREATE, RFI_READ, SUBMITTAL_READ,
        TASK_READ, TASK_UPDATE, TASK_COMPLETE,
        DAILY_REPORT_CREATE, DAILY_REPORT_READ, DAILY_REPORT_UPDATE,
        WEATHER_CREATE, WEATHER_READ, LABOR_CREATE, LABOR_READ,
        EQUIPMENT_CREATE, EQUIPMENT_READ,
        INCIDENT_CREATE, INCIDENT_READ, SAFETY_INSPECTION_READ, TOOLBOX_TALK_READ,
        PUNCH_ITEM_READ, PUNCH_ITEM_UPDATE,
        MINUTES_READ, ACTION_ITEM_READ,
    ),
    ProjectRole.ARCHITECT_ENGINEER: (
        DRAWING_CREATE, DRAWING_READ, DRAWING_UPDATE, DRAWING_APPROVE,
        DRAWING_EXPORT, DRAWING_VERSION,
        SPECIFICATION_CREATE, SPECIFICATION_READ, SPECIFICATION_UPDATE,
        SPECIFICATION_APPROVE, SPECIFICATION_EXPORT, SPECIFICATION_VERSION,
        MODEL_CREATE, MODEL_READ, MODEL_UPDATE, MODEL_EXPORT, MODEL_VERSION,
        PHOTO_READ, REPORT_READ,
        RFI_CREATE, RFI_READ, RFI_RESPOND, RFI_UPDATE,
        SUBMITTAL_READ, SUBMITTAL_REVIEW, SUBMITTAL_APPROVE,
        SUBMITTAL_REJECT, SUBMITTAL_REQUIRE_RESUBMIT,
        ALL_SCHEDULE_READ, DAILY_REPORT_READ,
        INCIDENT_READ, SAFETY_INSPECTION_READ, TOOLBOX_TALK_READ,
        INSPECTION_READ, PUNCH_ITEM_READ, TEST_RESULT_READ,
        MEETING_READ, MINUTES_READ, ACTION_ITEM_CREATE, ACTION_ITEM_READ,
    ),
    # Scope-limited to the assigned trade.
    ProjectRole.SUBCONTRACTOR: (
        PHOTO_CREATE, PHOTO_READ, DRAWING_READ, SPECIFICATION_READ,
        REPORT_CREATE, REPORT_READ,
        RFI_CREATE, RFI_READ,
        SUBMITTAL_CREATE, SUBMITTAL_READ, SUBMITTAL_UPDATE,
        TASK_READ, TASK_UPDATE, TASK_COMPLETE,
        DAILY_REPORT_CREATE, DAILY_REPORT_READ, WEATHER_READ, LABOR_CREATE, LABOR_READ,
        INCIDENT_READ, TOOLBOX_TALK_READ,
        BUDGET_ITEM_READ, INVOICE_CREATE, INVOICE_READ,
        PUNCH_ITEM_READ, PUNCH_ITEM_UPDATE, TEST_RESULT_READ,
        MINUTES_READ, ACTION_ITEM_READ,
    ),
    ProjectRole.OWNER_REP: (
        ALL_DOCUMENT_READ, DRAWING_APPROVE, SPECIFICATION_APPROVE, REPORT_APPROVE,
        RFI_READ,
        SUBMITTAL_READ, SUBMITTAL_APPROVE, SUBMITTAL_REJECT,
        ALL_SCHEDULE_READ, MILESTONE_APPROVE,
        DAILY_REPORT_READ, WEATHER_READ, LABOR_READ, EQUIPMENT_READ,
        INCIDENT_READ, SAFETY_INSPECTION_READ, SAFETY_MEETING_READ, TOOLBOX_TALK_READ,
        ALL_BUDGET_READ, CHANGE_ORDER_APPROVE, INVOICE_APPROVE, PAYMENT_APPROVE,
        INSPECTION_READ, INSPECTION_APPROVE, PUNCH_ITEM_READ, TEST_RESULT_READ,
        MEETING_READ, MINUTES_READ, ACTION_ITEM_READ,
        SETTINGS_READ, MEMBERS_READ,
    ),
    ProjectRole.INSPECTOR: (
        DRAWING_READ, SPECIFICATION_READ, PHOTO_READ, PHOTO_CREATE,
        REPORT_CREATE, REPORT_READ, REPORT_EXPORT,
        RFI_READ, SUBMITTAL_READ, ALL_SCHEDULE_READ,
        DAILY_REPORT_READ, DAILY_REPORT_CREATE, WEATHER_READ,
        INCIDENT_READ, INCIDENT_CREATE, SAFETY_INSPECTION_CREATE, SAFETY_INSPECTION_READ,
        SAFETY_MEETING_READ, TOOLBOX_TALK_READ,
        ALL_QUALITY,
        MEETING_READ, MINUTES_READ,
    ),
    ProjectRole.VIEWER: (
        DRAWING_READ, SPECIFICATION_READ, PHOTO_READ, REPORT_READ,
        RFI_READ, SUBMITTAL_READ,
        TASK_READ, MILESTONE_READ,
        DAILY_REPORT_READ, TOOLBOX_TALK_READ,
        PUNCH_ITEM_READ, MINUTES_READ,
    ),
}


def role_capabilities(role: ProjectRole | None) -> tuple[str, ...]:
    if role is None:
        return ()
    return PROJECT_ROLE_CAPABILITIES.get(role, ())
