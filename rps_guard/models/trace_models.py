import math
from dataclasses import dataclass, field
from enum import Enum
from typing import Any, Callable, Dict, List, Optional, Tuple

from pydantic import BaseModel, BeforeValidator, ConfigDict, Field, ValidationError, field_validator, model_validator
from typing_extensions import Annotated


def parse_int(value: Any) -> Optional[int]:
    """Parse JSON numbers, decimal strings and 0x-hex strings into an int."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return value
    if isinstance(value, float):
        return int(value) if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            if text.lower().startswith("0x"):
                return int(text, 16)
            return int(text)
        except ValueError:
            parsed = parse_float(text)
            return int(parsed) if parsed is not None else None
    return None


def parse_float(value: Any) -> Optional[float]:
    """Parse numbers and strings such as "2.5", "2.5%" or "0x10" into a float."""
    if value is None or isinstance(value, bool):
        return None
    if isinstance(value, int):
        return float(value)
    if isinstance(value, float):
        return value if math.isfinite(value) else None
    if isinstance(value, str):
        text = value.strip().rstrip("%").strip()
        if not text:
            return None
        try:
            if text.lower().startswith("0x"):
                return float(int(text, 16))
            parsed = float(text)
        except ValueError:
            return None
        # NaN and infinities never compare meaningfully
        return parsed if math.isfinite(parsed) else None
    return None


def parse_bool(value: Any) -> Optional[bool]:
    if isinstance(value, bool):
        return value
    if isinstance(value, str) and value.strip().lower() in ("true", "false"):
        return value.strip().lower() == "true"
    return None


def _str_or_none(value: Any) -> Optional[str]:
    return value if isinstance(value, str) else None


def _required(parser: Callable[[Any], Any]) -> Callable[[Any], Any]:
    """Wrap a tolerant parser so that an unparseable value is an error"""
    def validate(value: Any) -> Any:
        parsed = parser(value)
        if parsed is None:
            raise ValueError(f"unparseable value {value!r}")
        return parsed
    return validate


def _listed(value: Any) -> Any:
    return [] if value is None else value


# Tolerant fields: an unparseable value counts as absent
Quantity = Annotated[Optional[int], BeforeValidator(parse_int)]
Amount = Annotated[Optional[float], BeforeValidator(parse_float)]
Flag = Annotated[Optional[bool], BeforeValidator(parse_bool)]
Text = Annotated[Optional[str], BeforeValidator(_str_or_none)]

# Strict fields: an unparseable value rejects the whole view
Integer = Annotated[int, BeforeValidator(_required(parse_int))]
Number = Annotated[float, BeforeValidator(_required(parse_float))]


@dataclass(frozen=True)
class AccountSnapshot:
    balance: Optional[str] = None
    nonce: Optional[int] = None
    code: Optional[str] = None


@dataclass(frozen=True)
class TraceCall:
    from_address: str
    to_address: str
    input: str
    output: Optional[str] = None
    gas_used: Optional[int] = None
    value: Optional[int] = None


@dataclass(frozen=True)
class TraceLog:
    address: str
    topics: Tuple[str, ...] = ()
    data: Optional[str] = None


def _snapshots(raw: Any) -> Dict[str, AccountSnapshot]:
    if not isinstance(raw, dict):
        return {}
    snapshots = {}
    for address, state in raw.items():
        if not isinstance(state, dict):
            continue
        snapshots[address.lower()] = AccountSnapshot(
            balance=_str_or_none(state.get("balance")),
            nonce=parse_int(state.get("nonce")),
            code=_str_or_none(state.get("code")),
        )
    return snapshots


@dataclass(frozen=True)
class TransactionTrace:
    from_address: str
    to_address: str
    input: str
    value: Optional[int] = None
    gas_used: Optional[int] = None
    hash: Optional[str] = None
    block_number: Optional[int] = None
    pre: Dict[str, AccountSnapshot] = field(default_factory=dict)
    post: Dict[str, AccountSnapshot] = field(default_factory=dict)
    calls: Tuple[TraceCall, ...] = ()
    logs: Tuple[TraceLog, ...] = ()

    @property
    def sender(self) -> str:
        return self.from_address.lower()

    @property
    def selector(self) -> Optional[str]:
        """First four bytes of call-data as a 0x-prefixed lowercase string."""
        if len(self.input) < 10 or not self.input.lower().startswith("0x"):
            return None
        return self.input[:10].lower()

    @classmethod
    def from_payload(cls, payload: Dict[str, Any], request_hash: Optional[str] = None) -> "TransactionTrace":
        """Build a trace from a raw (already validated) trace object.

        Missing or oddly typed fields degrade to empty values instead of
        raising, so every detector can decide for itself whether it has
        enough evidence.
        """
        payload = payload if isinstance(payload, dict) else {}
        calls = tuple(
            TraceCall(
                from_address=_str_or_none(call.get("from")) or "",
                to_address=_str_or_none(call.get("to")) or "",
                input=_str_or_none(call.get("input")) or "",
                output=_str_or_none(call.get("output")),
                gas_used=parse_int(call.get("gasUsed")),
                value=parse_int(call.get("value")),
            )
            for call in payload.get("calls") or []
            if isinstance(call, dict)
        )
        logs = tuple(
            TraceLog(
                address=_str_or_none(log.get("address")) or "",
                topics=tuple(t for t in log.get("topics") or [] if isinstance(t, str)),
                data=_str_or_none(log.get("data")),
            )
            for log in payload.get("logs") or []
            if isinstance(log, dict)
        )
        return cls(
            from_address=_str_or_none(payload.get("from")) or "",
            to_address=_str_or_none(payload.get("to")) or "",
            input=_str_or_none(payload.get("input")) or "",
            value=parse_int(payload.get("value")),
            gas_used=parse_int(payload.get("gasUsed")),
            hash=request_hash or _str_or_none(payload.get("transactionHash")),
            block_number=parse_int(payload.get("blockNumber")),
            pre=_snapshots(payload.get("pre")),
            post=_snapshots(payload.get("post")),
            calls=calls,
            logs=logs,
        )


class GameType(str, Enum):
    SINGLE_ROUND = "single-round"
    BEST_OF_THREE = "best-of-three"
    BEST_OF_FIVE = "best-of-five"

    @classmethod
    def parse(cls, raw: Any) -> "GameType":
        # The contract enum is GameType { OneRound, BestOfThree, BestOfFive }
        if raw is None:
            return cls.SINGLE_ROUND
        if isinstance(raw, cls):
            return raw
        aliases = {
            "0": cls.SINGLE_ROUND,
            "oneround": cls.SINGLE_ROUND,
            "singleround": cls.SINGLE_ROUND,
            "1": cls.BEST_OF_THREE,
            "bestofthree": cls.BEST_OF_THREE,
            "2": cls.BEST_OF_FIVE,
            "bestoffive": cls.BEST_OF_FIVE,
        }
        key = str(raw).replace("-", "").replace("_", "").replace(" ", "").lower()
        if isinstance(raw, bool) or key not in aliases:
            raise ValueError(f"unknown game type {raw!r}")
        return aliases[key]

    @property
    def wins_required(self) -> int:
        return {GameType.SINGLE_ROUND: 1, GameType.BEST_OF_THREE: 2, GameType.BEST_OF_FIVE: 3}[self]


class _View(BaseModel):
    model_config = ConfigDict(frozen=True, populate_by_name=True)


class GameStateView(_View):
    players: Annotated[Tuple[str, ...], BeforeValidator(_listed)] = ()
    game_id: Quantity = Field(default=None, alias="gameId")
    rounds_played: Quantity = Field(default=None, alias="roundsPlayed")
    scores: Annotated[Tuple[Integer, ...], BeforeValidator(_listed)] = ()
    game_type: GameType = Field(default=GameType.SINGLE_ROUND, alias="gameType")
    is_active: Flag = Field(default=None, alias="isActive")

    @field_validator("game_type", mode="before")
    @classmethod
    def parse_game_type(cls, value: Any) -> GameType:
        return GameType.parse(value)

    def has_player(self, address: str) -> bool:
        return address.lower() in {p.lower() for p in self.players}


class MempoolTransaction(_View):
    from_address: str = Field(alias="from", min_length=1)
    hash: Text = None
    to_address: Text = Field(default=None, alias="to")
    gas_price: Quantity = Field(default=None, alias="gasPrice")
    input: Text = None


Transactions = Annotated[Tuple[MempoolTransaction, ...], BeforeValidator(_listed)]


class SubmissionTiming(_View):
    submission_time_delta: Amount = Field(default=None, alias="submissionTimeDelta")


class SubmissionView(_View):
    """Gas and timing data around the sender's own submission."""
    gas_price: Quantity = Field(default=None, alias="gasPrice")
    pending_transactions: Transactions = Field(default=(), alias="pendingTransactions")
    timing: Optional[SubmissionTiming] = Field(default=None, alias="timingData")

    @property
    def submission_time_delta(self) -> Optional[float]:
        return self.timing.submission_time_delta if self.timing else None


# Top-level additionalData keys that make up the SubmissionView
SUBMISSION_KEYS = ("gasPrice", "pendingTransactions", "timingData")


class PriceImpact(_View):
    before: Number
    after: Number

    @property
    def total(self) -> float:
        return self.before + self.after


class SimilarityAnalysis(_View):
    is_exact_copy: Flag = Field(default=None, alias="isExactCopy")
    input_similarity: Amount = Field(default=None, alias="inputSimilarity")


class MempoolView(_View):
    block_transactions: Transactions = Field(default=(), alias="blockTransactions")
    pending_transactions: Transactions = Field(default=(), alias="pendingTransactions")
    current_transaction: Optional[MempoolTransaction] = Field(default=None, alias="currentTransaction")
    price_impact: Optional[PriceImpact] = Field(default=None, alias="priceImpact")
    similarity: Optional[SimilarityAnalysis] = Field(default=None, alias="similarityAnalysis")


class ReorgView(_View):
    is_reorg: Flag = Field(default=None, alias="isReorg")
    # None means the depth is unknown; 0 is a real, shallow depth
    reorg_depth: Optional[Integer] = Field(default=None, alias="reorgDepth")
    block_number: Quantity = Field(default=None, alias="blockNumber")
    timestamp: Quantity = None

    @field_validator("reorg_depth")
    @classmethod
    def check_depth(cls, value: Optional[int]) -> Optional[int]:
        if value is not None and value < 0:
            raise ValueError("reorgDepth must not be negative")
        return value


class LiquidityEvent(_View):
    type: str
    address: Text = None
    amount: Amount = None
    timestamp: Quantity = None


class LiquidityView(_View):
    events: Annotated[Tuple[LiquidityEvent, ...], BeforeValidator(_listed)] = Field(
        default=(), alias="recentLiquidityEvents")
    duration: Amount = Field(default=None, alias="liquidityDuration")

    def of_type(self, event_type: str) -> List[LiquidityEvent]:
        return [event for event in self.events if event.type == event_type]


class OracleUpdate(_View):
    old_value: Amount = Field(default=None, alias="oldValue")
    new_value: Amount = Field(default=None, alias="newValue")
    updater: Text = None
    timestamp: Quantity = None


class VolatilityAnalysis(_View):
    normal_volatility: Number = Field(alias="normalVolatility")
    attack_volatility: Number = Field(alias="attackVolatility")
    confidence_score: Number = Field(alias="confidenceScore")


class OracleView(_View):
    updates: Annotated[Tuple[OracleUpdate, ...], BeforeValidator(_listed)] = Field(
        default=(), alias="recentOracleUpdates")
    volatility: Optional[VolatilityAnalysis] = Field(default=None, alias="volatilityAnalysis")


class MultisigView(_View):
    """Counts of present players, or of provided signatures, against the required number"""
    present_players: Quantity = Field(default=None, alias="presentPlayers")
    required_players: Quantity = Field(default=None, alias="requiredPlayers")
    provided_signatures: Quantity = Field(default=None, alias="providedSignatures")
    required_signatures: Quantity = Field(default=None, alias="requiredSignatures")

    @model_validator(mode="after")
    def check_counts(self) -> "MultisigView":
        if self.counts is None:
            raise ValueError("multisigInfo needs present and required counts")
        return self

    @property
    def counts(self) -> Optional[Tuple[int, int]]:
        for present, required in (
            (self.present_players, self.required_players),
            (self.provided_signatures, self.required_signatures),
        ):
            if present is not None and required is not None:
                return present, required
        return None

    @property
    def present(self) -> int:
        return self.counts[0]

    @property
    def required(self) -> int:
        return self.counts[1]


class RiskView(_View):
    risk_score: Number = Field(alias="riskScore")
    address: Text = None
    risk_factors: Annotated[Tuple[str, ...], BeforeValidator(_listed)] = Field(default=(), alias="riskFactors")

    @field_validator("risk_score")
    @classmethod
    def check_score(cls, value: float) -> float:
        if not 0 <= value <= 100:
            raise ValueError("riskScore must be between 0 and 100")
        return value


class FunctionAnalysis(_View):
    is_documented: Flag = Field(default=None, alias="isDocumented")
    transfers_funds: Flag = Field(default=None, alias="transfersFunds")
    risk_level: Text = Field(default=None, alias="riskLevel")
    historical_calls: Quantity = Field(default=None, alias="historicalCalls")

    @field_validator("risk_level")
    @classmethod
    def lower_risk_level(cls, value: Optional[str]) -> Optional[str]:
        return value.lower() if value else None


class CodeAnalysis(_View):
    has_withdraw_function: Flag = Field(default=None, alias="hasWithdrawFunction")
    withdrawals_blocked: Flag = Field(default=None, alias="withdrawalsBlocked")


class StorageChange(_View):
    """One slot diff; values are storage words given as numbers, decimal or 0x-hex strings"""
    slot: Quantity = None
    original_value: Integer = Field(alias="originalValue")
    modified_value: Integer = Field(alias="modifiedValue")

    @property
    def changed(self) -> bool:
        return self.original_value != self.modified_value


class AdminOperationView(_View):
    contract_owner: Text = Field(default=None, alias="contractOwner")
    current_fee: Amount = Field(default=None, alias="currentFee")
    function_analysis: Optional[FunctionAnalysis] = Field(default=None, alias="functionAnalysis")
    code_analysis: Optional[CodeAnalysis] = Field(default=None, alias="codeAnalysis")
    storage_changes: Annotated[Tuple[StorageChange, ...], BeforeValidator(_listed)] = Field(
        default=(), alias="storageChanges")


# raw additionalData key -> (context attribute, view model)
_VIEW_MODELS = {
    "gameState": ("game_state", GameStateView),
    "mempoolContext": ("mempool", MempoolView),
    "blockchainContext": ("reorg", ReorgView),
    "liquidityContext": ("liquidity", LiquidityView),
    "oracleContext": ("oracle", OracleView),
    "multisigInfo": ("multisig", MultisigView),
    "riskAnalysis": ("risk", RiskView),
    "adminContext": ("admin", AdminOperationView),
}


@dataclass(frozen=True)
class AdditionalContext:
    """Closed set of optional side-channel views attached to one request."""
    game_state: Optional[GameStateView] = None
    submission: Optional[SubmissionView] = None
    mempool: Optional[MempoolView] = None
    reorg: Optional[ReorgView] = None
    liquidity: Optional[LiquidityView] = None
    oracle: Optional[OracleView] = None
    multisig: Optional[MultisigView] = None
    risk: Optional[RiskView] = None
    admin: Optional[AdminOperationView] = None
    rejected_views: Tuple[str, ...] = ()

    @classmethod
    def from_raw(cls, raw: Optional[Dict[str, Any]]) -> "AdditionalContext":
        """Validate the loosely typed additionalData bag.

        Each view is validated on its own. A malformed view is dropped as a
        whole and its key recorded in ``rejected_views``; it never poisons
        the others. One bad entry inside a view's list (say a mempool
        transaction without a sender) rejects that entire view.
        """
        if not isinstance(raw, dict):
            return cls()
        views: Dict[str, Any] = {}
        rejected = []
        for key, (attribute, model) in _VIEW_MODELS.items():
            if raw.get(key) is None:
                continue
            try:
                views[attribute] = model.model_validate(raw[key])
            except ValidationError:
                rejected.append(key)
        if any(key in raw for key in SUBMISSION_KEYS):
            try:
                views["submission"] = SubmissionView.model_validate(raw)
            except ValidationError:
                rejected.append("submission")
        return cls(rejected_views=tuple(rejected), **views)
