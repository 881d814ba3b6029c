from .config import AccessConfig, EnforcementMode, LogLevel, UsageBackend, load_config_from_env
from .exceptions import (
    AccessDeniedError,
    ConfigurationError,
    StorageError,
    TierAccessError,
    UnauthenticatedError,
    UnknownConditionError,
    UnknownPermissionError,
    UsageTrackingError,
)
from .interfaces import IdentityProvider, TierResolver, UsageStore
from .logging import (
    AccessLogFormatter,
    AccessLoggerAdapter,
    get_access_logger,
    redact_secrets,
    safe_log_value,
    safe_preview,
    setup_logging,
)
from .permissions import (
    PERMISSION_MATRIX,
    AccessCondition,
    AccessResult,
    ConditionalPermission,
    Feature,
    InMemoryUsageStore,
    LimitType,
    Permission,
    PermissionChecker,
    RedisUsageStore,
    ResourceType,
    Tier,
    TierAccessControl,
    TimeRestriction,
    UpgradeRecommendation,
    UsageContext,
    get_access_control,
    register_condition,
    reset_access_control,
)
from .audit import AccessAuditEntry, AccessAuditLogger

__all__ = [
    'AccessConfig',
    'EnforcementMode',
    'LogLevel',
    'UsageBackend',
    'load_config_from_env',
    'AccessDeniedError',
    'ConfigurationError',
    'StorageError',
    'TierAccessError',
    'UnauthenticatedError',
    'UnknownConditionError',
    'UnknownPermissionError',
    'UsageTrackingError',
    'IdentityProvider',
    'TierResolver',
    'UsageStore',
    'AccessLogFormatter',
    'AccessLoggerAdapter',
    'get_access_logger',
    'redact_secrets',
    'safe_log_value',
    'safe_preview',
    'setup_logging',
    'PERMISSION_MATRIX',
    'AccessCondition',
    'AccessResult',
    'ConditionalPermission',
    'Feature',
    'InMemoryUsageStore',
    'LimitType',
    'Permission',
    'PermissionChecker',
    'RedisUsageStore',
    'ResourceType',
    'Tier',
    'TierAccessControl',
    'TimeRestriction',
    'UpgradeRecommendation',
    'UsageContext',
    'get_access_control',
    'register_condition',
    'reset_access_control',
    'AccessAuditEntry',
    'AccessAuditLogger',
]
