"""Shared error code constants.

Codes are stable, machine-readable identifiers. The authentication codes
mirror the rejection kinds surfaced to RPC clients so log queries and client
assertions can match on them.
"""

# Validation
VALIDATION_ERROR = "VALIDATION_ERROR"
INVALID_ARGUMENT = "INVALID_ARGUMENT"

# Not found / conflict
NOT_FOUND = "NOT_FOUND"
RESOURCE_NOT_FOUND = "RESOURCE_NOT_FOUND"
CONFLICT = "CONFLICT"
ALREADY_EXISTS = "ALREADY_EXISTS"
STILL_REFERENCED = "STILL_REFERENCED"

# Authentication
UNAUTHENTICATED = "UNAUTHENTICATED"
CREDENTIAL_MISSING = "CREDENTIAL_MISSING"
CREDENTIAL_MALFORMED = "CREDENTIAL_MALFORMED"
CREDENTIAL_UNKNOWN = "CREDENTIAL_UNKNOWN"
CREDENTIAL_REVOKED = "CREDENTIAL_REVOKED"
CREDENTIAL_EXPIRED = "CREDENTIAL_EXPIRED"
TOKEN_SIGNATURE_INVALID = "TOKEN_SIGNATURE_INVALID"
TOKEN_AUDIENCE_MISMATCH = "TOKEN_AUDIENCE_MISMATCH"
CALLER_UNKNOWN = "CALLER_UNKNOWN"

# Authorization
PERMISSION_DENIED = "PERMISSION_DENIED"
ROLE_REQUIRED = "ROLE_REQUIRED"
PERMISSION_REQUIRED = "PERMISSION_REQUIRED"

# Dependency / external system
DEPENDENCY_FAILURE = "DEPENDENCY_FAILURE"
DEPENDENCY_UNAVAILABLE = "DEPENDENCY_UNAVAILABLE"

# Internal
INTERNAL_ERROR = "INTERNAL_ERROR"
UNEXPECTED_EXCEPTION = "UNEXPECTED_EXCEPTION"
