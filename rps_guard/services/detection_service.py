from typing import Optional, Sequence
import structlog
from prometheus_client import Counter, Histogram

from ..config import signatures
from ..config.settings import DetectionPolicy, policy as default_policy
from ..models.api_models import DetectionRequest, DetectionResponse
from ..models.detection_models import AttackType, Verdict
from ..models.trace_models import AdditionalContext, TransactionTrace
from .detectors import DETECTOR_CATALOGUE, Detector

logger = structlog.get_logger()

# Add metrics
DETECTION_COUNTER = Counter(
    'rps_detection_total',
    'Total number of classified transactions',
    ['outcome']
)
DETECTION_DURATION = Histogram(
    'rps_detection_duration_seconds',
    'Time spent classifying transactions'
)


def build_verdict(
    detected: bool,
    attack: Optional[AttackType] = None,
    request_id: Optional[str] = None,
    chain_id: Optional[int] = None,
    protocol_name: Optional[str] = None,
    protocol_address: Optional[str] = None
) -> Verdict:
    """Assemble a verdict, echoing the request identity fields"""
    return Verdict(
        detected=detected,
        message=attack.label if detected and attack else None,
        attack=attack if detected else None,
        request_id=request_id,
        chain_id=chain_id,
        protocol_name=protocol_name,
        protocol_address=protocol_address,
    )


def is_in_scope(trace: TransactionTrace, protocol_address: Optional[str]) -> bool:
    """Only transactions sent to the protected contract are judged"""
    if not protocol_address or not trace.to_address:
        return False
    return trace.to_address.lower() == protocol_address.lower()


class DetectionService:
    """
    Classifies one transaction against the detector catalogue.

    The service holds only the read-only policy and the ordered detector
    tuple, so a single instance can be shared across concurrent requests.
    """

    def __init__(self, detection_policy: DetectionPolicy = default_policy,
                 detectors: Sequence[Detector] = DETECTOR_CATALOGUE):
        self.policy = detection_policy
        self.detectors = tuple(detectors)

    def classify(
        self,
        trace: TransactionTrace,
        context: AdditionalContext,
        protocol_address: Optional[str],
        request_id: Optional[str] = None,
        chain_id: Optional[int] = None,
        protocol_name: Optional[str] = None
    ) -> Verdict:
        """
        Run the catalogue in order and return the first positive match.

        Transactions to any other recipient get a negative verdict without
        running a single detector.
        """
        identity = dict(
            request_id=request_id,
            chain_id=chain_id,
            protocol_name=protocol_name,
            protocol_address=protocol_address,
        )
        if not is_in_scope(trace, protocol_address):
            return build_verdict(False, **identity)

        attack = self.first_match(trace, context)
        return build_verdict(attack is not None, attack, **identity)

    def first_match(self, trace: TransactionTrace, context: AdditionalContext) -> Optional[AttackType]:
        """Attack reported by the first detector that matches, if any"""
        for detector in self.detectors:
            result = detector(trace, context, self.policy)
            if result.matched:
                return result.attack
        return None

    def detect(self, request: DetectionRequest) -> DetectionResponse:
        """Build the trace model from a validated request and classify it"""
        trace = TransactionTrace.from_payload(
            request.trace.model_dump(by_alias=True), request.hash)
        context = AdditionalContext.from_raw(request.additional_data)

        if context.rejected_views:
            logger.warning("context_views_rejected",
                           request_id=request.id,
                           views=list(context.rejected_views))

        in_scope = is_in_scope(trace, request.protocol_address)
        with DETECTION_DURATION.time():
            attack = self.first_match(trace, context) if in_scope else None
        verdict = build_verdict(
            attack is not None,
            attack,
            request_id=request.id,
            chain_id=request.chain_id,
            protocol_name=request.protocol_name,
            protocol_address=request.protocol_address,
        )

        outcome = verdict.attack.value if verdict.attack else "none"
        DETECTION_COUNTER.labels(outcome=outcome).inc()
        logger.info("detection_completed",
                    request_id=request.id,
                    in_scope=in_scope,
                    selector=trace.selector,
                    function=signatures.FUNCTION_NAMES.get(trace.selector),
                    detected=verdict.detected,
                    attack=outcome)

        return DetectionResponse.from_verdict(verdict)
