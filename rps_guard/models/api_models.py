from pydantic import AfterValidator, BaseModel, ConfigDict, Field
from typing import Any, Dict, List, Optional, Union
from typing_extensions import Annotated
from web3 import Web3

from .detection_models import Verdict

Quantity = Union[int, str]


def _validate_address(value: str) -> str:
    # Checksum casing is not enforced, only the 20-byte hex shape
    if not isinstance(value, str) or not Web3.is_address(value.lower()):
        raise ValueError("must be an Ethereum address")
    return value


Address = Annotated[str, AfterValidator(_validate_address)]


class _AliasedModel(BaseModel):
    model_config = ConfigDict(populate_by_name=True)


class AccountState(_AliasedModel):
    balance: Optional[str] = None
    nonce: Optional[int] = None
    code: Optional[str] = None


class TraceCall(_AliasedModel):
    from_address: Address = Field(alias="from")
    to_address: Address = Field(alias="to")
    input: str
    output: Optional[str] = None
    gas_used: Optional[Quantity] = Field(default=None, alias="gasUsed")
    value: Optional[Quantity] = None


class TraceLog(_AliasedModel):
    address: Address
    data: Optional[str] = None
    topics: List[str] = Field(default_factory=list)


class Trace(_AliasedModel):
    block_number: Optional[int] = Field(default=None, alias="blockNumber")
    from_address: Address = Field(alias="from")
    to_address: Address = Field(alias="to")
    transaction_hash: Optional[str] = Field(default=None, alias="transactionHash")
    input: str
    output: Optional[str] = None
    gas: Optional[Quantity] = None
    gas_used: Optional[Quantity] = Field(default=None, alias="gasUsed")
    value: Optional[Quantity] = None
    pre: Dict[str, AccountState] = Field(default_factory=dict)
    post: Dict[str, AccountState] = Field(default_factory=dict)
    logs: List[TraceLog] = Field(default_factory=list)
    calls: List[TraceCall] = Field(default_factory=list)


class DetectionRequest(_AliasedModel):
    id: Optional[str] = None
    detector_name: Optional[str] = Field(default=None, alias="detectorName")
    chain_id: int = Field(alias="chainId")
    hash: Optional[str] = None
    protocol_name: Optional[str] = Field(default=None, alias="protocolName")
    protocol_address: Address = Field(alias="protocolAddress")
    trace: Trace
    additional_data: Optional[Dict[str, Any]] = Field(default=None, alias="additionalData")


class DetectionResponse(_AliasedModel):
    request_id: Optional[str] = Field(default=None, alias="requestId")
    chain_id: Optional[int] = Field(default=None, alias="chainId")
    protocol_name: Optional[str] = Field(default=None, alias="protocolName")
    protocol_address: Optional[str] = Field(default=None, alias="protocolAddress")
    detected: bool
    message: Optional[str] = None

    @classmethod
    def from_verdict(cls, verdict: Verdict) -> "DetectionResponse":
        return cls(
            request_id=verdict.request_id,
            chain_id=verdict.chain_id,
            protocol_name=verdict.protocol_name,
            protocol_address=verdict.protocol_address,
            detected=verdict.detected,
            message=verdict.message,
        )


class HealthResponse(BaseModel):
    message: str


class VersionResponse(BaseModel):
    name: str
    version: str
