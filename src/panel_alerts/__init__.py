"""panel-alerts: alert rule evaluation and notification dispatch for a hosting panel."""

__version__ = "0.1.0"

from panel_alerts.config import AlertsConfig, find_config, load_config
from panel_alerts.errors import (
    AlertingError,
    DependencyUnavailable,
    InvalidStateError,
    NotFoundError,
    ValidationError,
)
from panel_alerts.metrics.source import JsonFileMetricSource, MetricSource, StaticMetricSource
from panel_alerts.models import (
    Alert,
    AlertChannels,
    AlertComment,
    AlertHistoryEntry,
    AlertRule,
    AlertRuleCreateRequest,
    AlertRuleUpdateRequest,
    AlertStats,
    AlertStatus,
    ComparisonOperator,
    DispatchReport,
    EvaluationReport,
    NotificationChannel,
    Severity,
)
from panel_alerts.scheduler import EvaluationScheduler
from panel_alerts.service import AlertingService, build_service

__all__ = [
    "Alert",
    "AlertChannels",
    "AlertComment",
    "AlertHistoryEntry",
    "AlertRule",
    "AlertRuleCreateRequest",
    "AlertRuleUpdateRequest",
    "AlertStats",
    "AlertStatus",
    "AlertingError",
    "AlertingService",
    "AlertsConfig",
    "ComparisonOperator",
    "DependencyUnavailable",
    "DispatchReport",
    "EvaluationReport",
    "EvaluationScheduler",
    "InvalidStateError",
    "JsonFileMetricSource",
    "MetricSource",
    "NotFoundError",
    "NotificationChannel",
    "Severity",
    "StaticMetricSource",
    "ValidationError",
    "__version__",
    "build_service",
    "find_config",
    "load_config",
]
