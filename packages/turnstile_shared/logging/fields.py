"""Canonical structured logging field names.

Every module that binds log context or passes ``extra`` fields uses these
names so RPC call lines and authorization decisions share one key set.
"""

TIMESTAMP = "timestamp"
LEVEL = "level"
LOGGER = "logger"
MESSAGE = "message"
EVENT = "event"
EXCEPTION = "exception"

# Process-level fields.
SERVICE = "service"
ENVIRONMENT = "environment"

# RPC call fields.
CALL_ID = "call_id"
RPC_METHOD = "rpc_method"
RPC_SERVICE = "rpc_service"
STATUS_CODE = "status_code"
DURATION_MS = "duration_ms"
RPC_CALL_STARTED_EVENT = "rpc_call_started"
RPC_CALL_COMPLETED_EVENT = "rpc_call_completed"

# Authorization fields.
CALLER = "caller"
CREDENTIAL_KIND = "credential_kind"
REQUIRED_PERMISSION = "required_permission"
FAILURE_KIND = "failure_kind"
ERROR_CODE = "error_code"
ERROR_CATEGORY = "error_category"
