CONTEXT_API_TAG = "Context Controller"
SUPPORT_API_TAG = "Support Controller"
TASK_API_TAG = "Task Controller"
MAPPINGS_API_TAG = "Mappings Controller"
ADMINISTRATION_API_TAG = "Administration Controller"
AUTH_API_TAG = "Authentication"

EHR_OPENAPI_TAGS = [
    {"name": CONTEXT_API_TAG, "description": "Get context details of a currently logged in user."},
    {"name": SUPPORT_API_TAG,
     "description": "Fetch lists of available FHIR resources to reference from Task/ServiceRequest "
                    "instances being created."},
    {"name": TASK_API_TAG,
     "description": "Perform operations on Task resources. This includes creation of tasks in CBRO "
                    "organizations and triggering an automatic polling mechanism for Task status "
                    "synchronization."},
    {"name": MAPPINGS_API_TAG, "description": "Get details of SDOH categories and codes."},
    {"name": ADMINISTRATION_API_TAG,
     "description": "Perform operations and manipulations with FHIR resources."},
    {"name": AUTH_API_TAG, "description": "SMART-on-FHIR login and logout."},
]

CBRO_OPENAPI_TAGS = [
    {"name": TASK_API_TAG, "description": "Work the referral Tasks received from EHRs."},
]
