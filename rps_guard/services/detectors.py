"""
Detector catalogue for the RockPaperScissors contract.

Every detector is a pure function of the transaction trace, the optional
context views and the read-only detection policy. A detector that lacks the
view it needs abstains with ``NO_MATCH``; none of them raise on documented
input. ``DETECTOR_CATALOGUE`` fixes the evaluation order, and the first match
wins, so more specific signatures are listed before the generic ones they
overlap with.
"""
from typing import Callable, Optional, Tuple

from ..config import signatures
from ..config.settings import DetectionPolicy
from ..models.detection_models import NO_MATCH, AttackType, MatchResult
from ..models.trace_models import AdditionalContext, GameType, TransactionTrace

Detector = Callable[[TransactionTrace, AdditionalContext, DetectionPolicy], MatchResult]


def _same_address(left: Optional[str], right: Optional[str]) -> bool:
    return bool(left) and bool(right) and left.lower() == right.lower()


def _address_argument(call_data: str) -> Optional[str]:
    """Decode the first ABI word of call-data as an address"""
    if len(call_data) < 74:
        return None
    return "0x" + call_data[34:74].lower()


def check_premature_resolution(trace: TransactionTrace, context: AdditionalContext,
                               policy: DetectionPolicy) -> MatchResult:
    """Catch _endGame calls on games that have not reached their win condition"""
    state = context.game_state
    if trace.selector != signatures.END_GAME or state is None:
        return NO_MATCH

    if state.game_type is GameType.SINGLE_ROUND:
        finished = (state.rounds_played or 0) >= 1
    else:
        finished = max(state.scores, default=0) >= state.game_type.wins_required

    return NO_MATCH if finished else MatchResult.hit(AttackType.PREMATURE_RESOLUTION)


def check_privileged_function_call(trace: TransactionTrace, context: AdditionalContext,
                                   policy: DetectionPolicy) -> MatchResult:
    """Check for external calls to functions only the contract may invoke"""
    if trace.selector in signatures.PRIVILEGED_SELECTORS:
        return MatchResult.hit(AttackType.PRIVILEGED_FUNCTION_CALL)
    return NO_MATCH


def check_unauthorized_player(trace: TransactionTrace, context: AdditionalContext,
                              policy: DetectionPolicy) -> MatchResult:
    """Check that the mover is one of the game's registered players"""
    state = context.game_state
    if trace.selector not in signatures.PER_GAME_ACTION_SELECTORS:
        return NO_MATCH
    if state is None or not state.players:
        return NO_MATCH

    if state.has_player(trace.from_address):
        return NO_MATCH
    return MatchResult.hit(AttackType.UNAUTHORIZED_PLAYER)


def check_rapid_sequential_moves(trace: TransactionTrace, context: AdditionalContext,
                                 policy: DetectionPolicy) -> MatchResult:
    """
    Detect a single transaction acting more than once for the same player.

    A turn needs the opponent's input in between, so two nested calls from
    the top-level sender mean the turn order is being skipped.
    """
    if not trace.sender:
        return NO_MATCH

    own_calls = [call for call in trace.calls if _same_address(call.from_address, trace.sender)]
    if len(own_calls) >= 2:
        return MatchResult.hit(AttackType.RAPID_SEQUENTIAL_MOVES)
    return NO_MATCH


def check_front_running(trace: TransactionTrace, context: AdditionalContext,
                        policy: DetectionPolicy) -> MatchResult:
    """
    Detect a move submitted right after an opponent's pending move with a
    high gas price. Gas price, pending transactions and timing must all be
    present.
    """
    submission = context.submission
    if submission is None:
        return NO_MATCH
    if (submission.gas_price is None
            or not submission.pending_transactions
            or submission.submission_time_delta is None):
        return NO_MATCH

    if (submission.gas_price > policy.frontrun_gas_price_wei
            and submission.submission_time_delta < policy.frontrun_time_delta_seconds):
        return MatchResult.hit(AttackType.FRONT_RUNNING)
    return NO_MATCH


def check_sandwich_attack(trace: TransactionTrace, context: AdditionalContext,
                          policy: DetectionPolicy) -> MatchResult:
    """
    Checks if the transaction is part of a sandwich attack pattern.

    The attacker brackets the target with a buy before and a sell after,
    both from the same known MEV address and both outbidding the target's
    gas price. When price impact figures are supplied they must also show a
    material move; otherwise the structure alone is enough.
    """
    mempool = context.mempool
    if mempool is None or not trace.hash:
        return NO_MATCH

    transactions = mempool.block_transactions
    # Need at least 3 transactions for a sandwich (before, target, after)
    if len(transactions) < 3:
        return NO_MATCH

    target_position = next(
        (i for i, tx in enumerate(transactions) if tx.hash and tx.hash.lower() == trace.hash.lower()),
        None,
    )
    if target_position is None or target_position == 0 or target_position == len(transactions) - 1:
        return NO_MATCH

    first_tx, last_tx = transactions[0], transactions[-1]
    target_gas = transactions[target_position].gas_price
    if not _same_address(first_tx.from_address, last_tx.from_address):
        return NO_MATCH
    if not policy.is_high_risk(first_tx.from_address):
        return NO_MATCH
    if target_gas is None or first_tx.gas_price is None or last_tx.gas_price is None:
        return NO_MATCH
    if not (first_tx.gas_price > target_gas and last_tx.gas_price > target_gas):
        return NO_MATCH

    if mempool.price_impact is not None:
        if mempool.price_impact.total <= policy.sandwich_price_impact_percent:
            return NO_MATCH
    return MatchResult.hit(AttackType.SANDWICH)


def check_time_bandit_attack(trace: TransactionTrace, context: AdditionalContext,
                             policy: DetectionPolicy) -> MatchResult:
    """Deep reorgs are suspicious in an MEV context"""
    reorg = context.reorg
    if reorg is None or not reorg.is_reorg:
        return NO_MATCH
    # A depth of 0 is a known shallow reorg, not missing data
    if reorg.reorg_depth is not None and reorg.reorg_depth > policy.reorg_depth_threshold:
        return MatchResult.hit(AttackType.TIME_BANDIT)
    return NO_MATCH


def check_jit_liquidity_attack(trace: TransactionTrace, context: AdditionalContext,
                               policy: DetectionPolicy) -> MatchResult:
    """
    Detect liquidity added just before a player's transaction and removed
    right after it.
    """
    liquidity = context.liquidity
    if liquidity is None:
        return NO_MATCH

    add_events = liquidity.of_type("add")
    remove_events = liquidity.of_type("remove")
    player_events = liquidity.of_type("playerTransaction")
    if not add_events or not remove_events or not player_events:
        return NO_MATCH

    if liquidity.duration is None or liquidity.duration >= policy.jit_duration_seconds:
        return NO_MATCH

    if policy.is_high_risk(add_events[0].address):
        return MatchResult.hit(AttackType.JIT_LIQUIDITY)

    # Provider profited from the brief window
    added, removed = add_events[0].amount, remove_events[0].amount
    if added is not None and removed is not None and removed > added:
        return MatchResult.hit(AttackType.JIT_LIQUIDITY)
    return NO_MATCH


def check_multisig_validation_bypass(trace: TransactionTrace, context: AdditionalContext,
                                     policy: DetectionPolicy) -> MatchResult:
    """
    Detect a move that resolves the game from inside the same transaction.

    Resolution needs both players; without multisig data to prove both were
    present the attempt is still reported.
    """
    if trace.selector not in signatures.PER_GAME_ACTION_SELECTORS:
        return NO_MATCH

    resolves_game = any(
        call.input.lower().startswith(signatures.END_GAME) for call in trace.calls
    )
    if not resolves_game:
        return NO_MATCH

    multisig = context.multisig
    if multisig is None or multisig.present < multisig.required:
        return MatchResult.hit(AttackType.MULTISIG_BYPASS)
    return NO_MATCH


def check_oracle_manipulation(trace: TransactionTrace, context: AdditionalContext,
                              policy: DetectionPolicy) -> MatchResult:
    """Check for price swings in consecutive oracle updates"""
    oracle = context.oracle
    if oracle is None or len(oracle.updates) < 2:
        return NO_MATCH

    volatility = oracle.volatility
    for update, _next_update in zip(oracle.updates, oracle.updates[1:]):
        if volatility is not None:
            if (volatility.attack_volatility > volatility.normal_volatility * policy.oracle_volatility_multiplier
                    and volatility.confidence_score > policy.oracle_confidence_threshold):
                return MatchResult.hit(AttackType.ORACLE_MANIPULATION)
            continue

        if update.old_value is None or update.new_value is None or update.old_value == 0:
            continue
        percent_change = abs((update.new_value - update.old_value) / update.old_value) * 100
        if percent_change > policy.oracle_change_percent and policy.is_high_risk(update.updater):
            return MatchResult.hit(AttackType.ORACLE_MANIPULATION)

    return NO_MATCH


def check_generalized_frontrunning(trace: TransactionTrace, context: AdditionalContext,
                                   policy: DetectionPolicy) -> MatchResult:
    """
    Detect a known MEV bot copying a pending player's call-data with a
    higher gas price.
    """
    mempool = context.mempool
    if mempool is None:
        return NO_MATCH
    current = mempool.current_transaction
    if current is None or not mempool.pending_transactions:
        return NO_MATCH
    if not policy.is_high_risk(current.from_address):
        return NO_MATCH

    for pending in mempool.pending_transactions:
        if pending.input is None or pending.input != current.input:
            continue
        if current.gas_price is None or pending.gas_price is None:
            continue
        if current.gas_price > pending.gas_price and not _same_address(current.from_address, pending.from_address):
            return MatchResult.hit(AttackType.GENERALIZED_FRONT_RUNNING)

    similarity = mempool.similarity
    if similarity is not None and similarity.is_exact_copy and similarity.input_similarity == 100:
        return MatchResult.hit(AttackType.GENERALIZED_FRONT_RUNNING)
    return NO_MATCH


def check_unauthorized_parameter_change(trace: TransactionTrace, context: AdditionalContext,
                                        policy: DetectionPolicy) -> MatchResult:
    """Only the owner may change fees and other protocol parameters"""
    admin = context.admin
    if trace.selector not in signatures.PARAMETER_SELECTORS:
        return NO_MATCH
    if admin is None or not admin.contract_owner:
        return NO_MATCH

    if _same_address(trace.from_address, admin.contract_owner):
        return NO_MATCH
    return MatchResult.hit(AttackType.UNAUTHORIZED_PARAMETER_CHANGE)


def check_storage_manipulation(trace: TransactionTrace, context: AdditionalContext,
                               policy: DetectionPolicy) -> MatchResult:
    admin = context.admin
    if admin is None or not admin.storage_changes:
        return NO_MATCH
    if any(change.changed for change in admin.storage_changes):
        return MatchResult.hit(AttackType.STORAGE_MANIPULATION)
    return NO_MATCH


def check_withdrawal_disabling_upgrade(trace: TransactionTrace, context: AdditionalContext,
                                       policy: DetectionPolicy) -> MatchResult:
    """Check upgrades whose new implementation blocks withdrawals"""
    admin = context.admin
    if trace.selector not in signatures.UPGRADE_SELECTORS:
        return NO_MATCH
    if admin is None or admin.code_analysis is None:
        return NO_MATCH

    code = admin.code_analysis
    if code.has_withdraw_function is False or code.withdrawals_blocked is True:
        return MatchResult.hit(AttackType.WITHDRAWAL_DISABLING_UPGRADE)
    return NO_MATCH


def check_hidden_admin_function(trace: TransactionTrace, context: AdditionalContext,
                                policy: DetectionPolicy) -> MatchResult:
    admin = context.admin
    if trace.selector not in signatures.UNDOCUMENTED_ADMIN_SELECTORS:
        return NO_MATCH
    if admin is None or admin.function_analysis is None:
        return NO_MATCH

    function = admin.function_analysis
    if (function.risk_level == "high"
            and function.transfers_funds is True
            and function.is_documented is False):
        return MatchResult.hit(AttackType.HIDDEN_ADMIN_FUNCTION)
    return NO_MATCH


def check_high_risk_ownership_transfer(trace: TransactionTrace, context: AdditionalContext,
                                       policy: DetectionPolicy) -> MatchResult:
    """Check the risk score of the address receiving ownership"""
    risk = context.risk
    if trace.selector not in signatures.OWNERSHIP_SELECTORS or risk is None:
        return NO_MATCH

    # The risk view must describe the new owner, not some other address
    new_owner = _address_argument(trace.input)
    if new_owner and risk.address and not _same_address(new_owner, risk.address):
        return NO_MATCH

    if risk.risk_score > policy.owner_risk_score_threshold:
        return MatchResult.hit(AttackType.HIGH_RISK_OWNERSHIP_TRANSFER)
    return NO_MATCH


# Evaluation order is the tie-break between overlapping signatures
DETECTOR_CATALOGUE: Tuple[Detector, ...] = (
    check_premature_resolution,
    check_privileged_function_call,
    check_unauthorized_player,
    check_rapid_sequential_moves,
    check_front_running,
    check_sandwich_attack,
    check_time_bandit_attack,
    check_jit_liquidity_attack,
    check_multisig_validation_bypass,
    check_oracle_manipulation,
    check_generalized_frontrunning,
    check_unauthorized_parameter_change,
    check_storage_manipulation,
    check_withdrawal_disabling_upgrade,
    check_hidden_admin_function,
    check_high_risk_ownership_transfer,
)
