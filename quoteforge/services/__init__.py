from .rate_resolver import RateResolver, StaticRateResolver, ConfigRateResolver, SettingsTableRateResolver
from .notification_service import LoggingNotifier
from .quote_service import QuoteService
from .intelligence_service import IntelligenceService
from .workflow_service import WorkflowService
from .reporting_service import ReportingService

__all__ = [
    'RateResolver',
    'StaticRateResolver',
    'ConfigRateResolver',
    'SettingsTableRateResolver',
    'LoggingNotifier',
    'QuoteService',
    'IntelligenceService',
    'WorkflowService',
    'ReportingService'
]
