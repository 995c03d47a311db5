from datapod.policy.validation_policy import (
    PolicyParams,
    PolicyResult,
    PolicySource,
    ValidationPolicyService,
    WorkspaceSettingsReader,
)

__all__ = [
    "PolicyParams",
    "PolicyResult",
    "PolicySource",
    "ValidationPolicyService",
    "WorkspaceSettingsReader",
]
