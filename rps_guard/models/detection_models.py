from dataclasses import dataclass
from enum import Enum
from typing import Optional


class AttackType(str, Enum):
    PREMATURE_RESOLUTION = "PREMATURE_RESOLUTION"
    PRIVILEGED_FUNCTION_CALL = "PRIVILEGED_FUNCTION_CALL"
    UNAUTHORIZED_PLAYER = "UNAUTHORIZED_PLAYER"
    RAPID_SEQUENTIAL_MOVES = "RAPID_SEQUENTIAL_MOVES"
    FRONT_RUNNING = "FRONT_RUNNING"
    SANDWICH = "SANDWICH"
    TIME_BANDIT = "TIME_BANDIT"
    JIT_LIQUIDITY = "JIT_LIQUIDITY"
    MULTISIG_BYPASS = "MULTISIG_BYPASS"
    ORACLE_MANIPULATION = "ORACLE_MANIPULATION"
    GENERALIZED_FRONT_RUNNING = "GENERALIZED_FRONT_RUNNING"
    UNAUTHORIZED_PARAMETER_CHANGE = "UNAUTHORIZED_PARAMETER_CHANGE"
    STORAGE_MANIPULATION = "STORAGE_MANIPULATION"
    WITHDRAWAL_DISABLING_UPGRADE = "WITHDRAWAL_DISABLING_UPGRADE"
    HIDDEN_ADMIN_FUNCTION = "HIDDEN_ADMIN_FUNCTION"
    HIGH_RISK_OWNERSHIP_TRANSFER = "HIGH_RISK_OWNERSHIP_TRANSFER"

    @property
    def label(self) -> str:
        return ATTACK_LABELS[self]


ATTACK_LABELS = {
    AttackType.PREMATURE_RESOLUTION:
        "Attempt to end game prematurely detected: game has not reached its win condition",
    AttackType.PRIVILEGED_FUNCTION_CALL:
        "Direct call to privileged function detected: _endGame may only be invoked by the contract itself",
    AttackType.UNAUTHORIZED_PLAYER:
        "Unauthorized player attempting to make move: sender is not a participant in this game",
    AttackType.RAPID_SEQUENTIAL_MOVES:
        "Suspicious rapid sequential moves detected: the same player acted more than once in a single transaction",
    AttackType.FRONT_RUNNING:
        "Potential frontrunning attack detected: high gas price move submitted immediately after an opponent's pending move",
    AttackType.SANDWICH:
        "Sandwich attack pattern detected: Transaction is part of a sandwich attack that may extract value from players",
    AttackType.TIME_BANDIT:
        "Time-bandit attack detected: Potential chain reorganization targeting high-value games",
    AttackType.JIT_LIQUIDITY:
        "JIT liquidity attack detected: Temporary liquidity provision to extract fees from players",
    AttackType.MULTISIG_BYPASS:
        "Multisig validation bypass attempt detected: Transaction attempts to circumvent two-player validation",
    AttackType.ORACLE_MANIPULATION:
        "Oracle manipulation attack detected: Price feed manipulation could affect game outcomes",
    AttackType.GENERALIZED_FRONT_RUNNING:
        "Generalized frontrunning attack detected: Transaction copies player moves with higher gas price",
    AttackType.UNAUTHORIZED_PARAMETER_CHANGE:
        "Unauthorized fee change detected: only the contract owner may modify protocol parameters",
    AttackType.STORAGE_MANIPULATION:
        "Direct storage manipulation detected: low-level write altered contract storage",
    AttackType.WITHDRAWAL_DISABLING_UPGRADE:
        "Malicious upgrade detected: new implementation disables player withdrawals",
    AttackType.HIDDEN_ADMIN_FUNCTION:
        "Hidden admin function detected: undocumented high-risk function transfers funds",
    AttackType.HIGH_RISK_OWNERSHIP_TRANSFER:
        "High-risk ownership transfer detected: new owner address has an elevated risk score",
}


@dataclass(frozen=True)
class MatchResult:
    matched: bool
    attack: Optional[AttackType] = None

    @property
    def label(self) -> Optional[str]:
        return self.attack.label if self.attack else None

    @classmethod
    def hit(cls, attack: AttackType) -> "MatchResult":
        return cls(matched=True, attack=attack)


NO_MATCH = MatchResult(matched=False)


@dataclass(frozen=True)
class Verdict:
    detected: bool
    message: Optional[str] = None
    attack: Optional[AttackType] = None
    request_id: Optional[str] = None
    chain_id: Optional[int] = None
    protocol_name: Optional[str] = None
    protocol_address: Optional[str] = None
