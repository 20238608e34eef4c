"""
SDOH Clinical Care implementation guide constants: profiles, code systems and Task statuses.
"""

SDOHCC_BASE = "http://hl7.org/fhir/us/sdoh-clinicalcare"

CONDITION_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-Condition"
GOAL_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-Goal"
SERVICE_REQUEST_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-ServiceRequest"
TASK_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-TaskForReferralManagement"
CONSENT_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-Consent"
ORGANIZATION_PROFILE = f"{SDOHCC_BASE}/StructureDefinition/SDOHCC-Organization"

SDOHCC_TEMPORARY_CODES = f"{SDOHCC_BASE}/CodeSystem/SDOHCC-CodeSystemTemporaryCodes"
SNOMED_SYSTEM = "http://snomed.info/sct"
TASK_CODE_SYSTEM = "http://hl7.org/fhir/CodeSystem/task-code"

# Organization.type coding (SDOHCC temporary codes) of community based organizations accepting referrals.
CBRO_ORGANIZATION_TYPE = "cbo"

TASK_OUTPUT_RESULT_CODE = "resulting-activity"


class TaskStatus:
    DRAFT = "draft"
    REQUESTED = "requested"
    RECEIVED = "received"
    ACCEPTED = "accepted"
    REJECTED = "rejected"
    READY = "ready"
    CANCELLED = "cancelled"
    IN_PROGRESS = "in-progress"
    ON_HOLD = "on-hold"
    FAILED = "failed"
    COMPLETED = "completed"
    ENTERED_IN_ERROR = "entered-in-error"

    ACTIVE = [REQUESTED, RECEIVED, ACCEPTED, IN_PROGRESS, ON_HOLD]
    TERMINAL = [REJECTED, CANCELLED, FAILED, COMPLETED, ENTERED_IN_ERROR]


class ServiceRequestStatus:
    ACTIVE = "active"
    COMPLETED = "completed"
    REVOKED = "revoked"


class TaskPriority:
    ROUTINE = "routine"
    URGENT = "urgent"
    ASAP = "asap"
    STAT = "stat"

    ALL = [ROUTINE, URGENT, ASAP, STAT]


# ServiceRequest status the EHR moves to once the CBRO finishes a Task.
SERVICE_REQUEST_STATUS_BY_TASK_STATUS = {
    TaskStatus.COMPLETED: ServiceRequestStatus.COMPLETED,
    TaskStatus.CANCELLED: ServiceRequestStatus.REVOKED,
    TaskStatus.REJECTED: ServiceRequestStatus.REVOKED,
    TaskStatus.FAILED: ServiceRequestStatus.REVOKED,
}
