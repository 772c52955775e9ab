# Make rps_guard a proper package
from .services import DetectionService, DETECTOR_CATALOGUE
from .models.detection_models import AttackType, MatchResult, Verdict
from .models.trace_models import AdditionalContext, TransactionTrace
from .config.settings import settings, policy, DetectionPolicy

__all__ = [
    'DetectionService',
    'DETECTOR_CATALOGUE',
    'AttackType',
    'MatchResult',
    'Verdict',
    'AdditionalContext',
    'TransactionTrace',
    'DetectionPolicy',
    'settings',
    'policy'
]
