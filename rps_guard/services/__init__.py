from .detection_service import DetectionService, build_verdict, is_in_scope
from .detectors import DETECTOR_CATALOGUE

__all__ = ['DetectionService', 'DETECTOR_CATALOGUE', 'build_verdict', 'is_in_scope']
