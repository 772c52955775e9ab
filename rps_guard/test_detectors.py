import pytest

from rps_guard.config import signatures
from rps_guard.config.settings import DetectionPolicy
from rps_guard.models.detection_models import AttackType
from rps_guard.models.trace_models import AdditionalContext, TraceCall, TransactionTrace
from rps_guard.services import detectors
from rps_guard.services.detectors import DETECTOR_CATALOGUE

CONTRACT = "0x7296c77Edd04092Fd6a8117c7f797E0680d97fa1"
PLAYER1 = "0xD8dA6BF26964aF9D7eEd9e03E53415D37aA96045"
PLAYER2 = "0x690B9A9E9aa1C9dB991C7721a92d351Db4FaC990"
MEV_BOT = "0x4206904396d558D6fA240E0F788d30C831D4a6E7"
OUTSIDER = "0x1111111111111111111111111111111111111111"

POLICY = DetectionPolicy()


def word(value) -> str:
    return format(value, "064x")


MAKE_MOVE_INPUT = signatures.MAKE_MOVE + word(1) + word(1)
END_GAME_INPUT = signatures.END_GAME + word(1)
CREATE_GAME_INPUT = signatures.CREATE_GAME + word(0)
SET_FEE_INPUT = signatures.SET_FEE + word(500)
UPGRADE_INPUT = signatures.UPGRADE_TO + word(int(OUTSIDER, 16))
EMERGENCY_INPUT = signatures.EMERGENCY_WITHDRAW
TRANSFER_OWNERSHIP_INPUT = signatures.TRANSFER_OWNERSHIP + word(int(OUTSIDER, 16))


def make_trace(sender=PLAYER1, input_data=MAKE_MOVE_INPUT, calls=(), tx_hash="0xtarget"):
    return TransactionTrace(
        from_address=sender,
        to_address=CONTRACT,
        input=input_data,
        hash=tx_hash,
        calls=tuple(calls),
    )


def make_context(**raw):
    return AdditionalContext.from_raw(raw)


def nested_call(sender, input_data=MAKE_MOVE_INPUT):
    return TraceCall(from_address=sender, to_address=CONTRACT, input=input_data)


def matches(detector, trace, context, attack):
    result = detector(trace, context, POLICY)
    return result.matched and result.attack is attack and result.label == attack.label


def abstains(detector, trace, context):
    result = detector(trace, context, POLICY)
    return not result.matched and result.label is None


def test_catalogue_order_and_coverage():
    assert DETECTOR_CATALOGUE[0] is detectors.check_premature_resolution
    assert DETECTOR_CATALOGUE[1] is detectors.check_privileged_function_call
    assert DETECTOR_CATALOGUE[-1] is detectors.check_high_risk_ownership_transfer
    assert len(DETECTOR_CATALOGUE) == len(AttackType)


def test_every_attack_has_a_distinct_label():
    labels = [attack.label for attack in AttackType]
    assert all(labels)
    assert len(set(labels)) == len(labels)


# Premature resolution

@pytest.mark.parametrize("game_state", [
    {"players": [PLAYER1, PLAYER2], "roundsPlayed": 0, "scores": [0, 0]},
    {"players": [PLAYER1, PLAYER2], "gameType": "BestOfThree", "scores": [1, 1]},
    {"players": [PLAYER1, PLAYER2], "gameType": 2, "scores": [2, 2]},
    {"players": [PLAYER1, PLAYER2]},
])
def test_premature_resolution_detected(game_state):
    trace = make_trace(input_data=END_GAME_INPUT)
    assert matches(detectors.check_premature_resolution, trace,
                   make_context(gameState=game_state), AttackType.PREMATURE_RESOLUTION)


@pytest.mark.parametrize("game_state", [
    {"players": [PLAYER1, PLAYER2], "roundsPlayed": 1},
    {"players": [PLAYER1, PLAYER2], "gameType": "best-of-three", "scores": [2, 0]},
    {"players": [PLAYER1, PLAYER2], "gameType": "BestOfFive", "scores": [1, 3]},
])
def test_finished_game_is_not_premature(game_state):
    trace = make_trace(input_data=END_GAME_INPUT)
    assert abstains(detectors.check_premature_resolution, trace, make_context(gameState=game_state))


def test_premature_resolution_abstains_without_game_state():
    assert abstains(detectors.check_premature_resolution, make_trace(input_data=END_GAME_INPUT), make_context())


def test_premature_resolution_ignores_other_selectors():
    context = make_context(gameState={"players": [PLAYER1], "roundsPlayed": 0})
    assert abstains(detectors.check_premature_resolution, make_trace(), context)


# Privileged function call

def test_direct_end_game_call_detected():
    assert matches(detectors.check_privileged_function_call, make_trace(input_data=END_GAME_INPUT.upper().replace("0X", "0x")),
                   make_context(), AttackType.PRIVILEGED_FUNCTION_CALL)


def test_public_functions_are_not_privileged():
    for input_data in (MAKE_MOVE_INPUT, CREATE_GAME_INPUT, "0x", ""):
        assert abstains(detectors.check_privileged_function_call, make_trace(input_data=input_data), make_context())


# Unauthorized player

def test_unauthorized_player_detected():
    context = make_context(gameState={"gameId": 1, "players": [PLAYER1, PLAYER2], "isActive": True})
    assert matches(detectors.check_unauthorized_player, make_trace(sender=MEV_BOT), context,
                   AttackType.UNAUTHORIZED_PLAYER)


def test_registered_player_compared_case_insensitively():
    context = make_context(gameState={"players": [PLAYER1, PLAYER2]})
    assert abstains(detectors.check_unauthorized_player, make_trace(sender=PLAYER2.lower()), context)


@pytest.mark.parametrize("raw", [{}, {"gameState": {"players": []}}, {"gameState": "not-a-view"}])
def test_unauthorized_player_abstains_without_player_set(raw):
    assert abstains(detectors.check_unauthorized_player, make_trace(sender=MEV_BOT), AdditionalContext.from_raw(raw))


# Rapid sequential moves

def test_rapid_sequential_moves_detected():
    trace = make_trace(calls=[nested_call(PLAYER1), nested_call(PLAYER1.lower())])
    assert matches(detectors.check_rapid_sequential_moves, trace, make_context(),
                   AttackType.RAPID_SEQUENTIAL_MOVES)


def test_single_nested_move_is_fine():
    trace = make_trace(calls=[nested_call(PLAYER1), nested_call(CONTRACT)])
    assert abstains(detectors.check_rapid_sequential_moves, trace, make_context())


# Front-running

FRONT_RUN_DATA = {
    "gasPrice": "50000000000",
    "pendingTransactions": [{
        "from": PLAYER1,
        "to": CONTRACT,
        "input": signatures.MAKE_MOVE + word(1) + word(1),
        "gasPrice": "20000000000",
    }],
    "timingData": {"submissionTimeDelta": 0.5},
}


def test_front_running_detected():
    assert matches(detectors.check_front_running, make_trace(sender=PLAYER2), make_context(**FRONT_RUN_DATA),
                   AttackType.FRONT_RUNNING)


@pytest.mark.parametrize("missing", ["gasPrice", "pendingTransactions", "timingData"])
def test_front_running_needs_all_three_pieces(missing):
    raw = {key: value for key, value in FRONT_RUN_DATA.items() if key != missing}
    assert abstains(detectors.check_front_running, make_trace(sender=PLAYER2), make_context(**raw))


def test_front_running_thresholds_are_strict():
    at_gas_limit = dict(FRONT_RUN_DATA, gasPrice=str(30_000_000_000))
    at_time_limit = dict(FRONT_RUN_DATA, timingData={"submissionTimeDelta": 2})
    assert abstains(detectors.check_front_running, make_trace(), make_context(**at_gas_limit))
    assert abstains(detectors.check_front_running, make_trace(), make_context(**at_time_limit))


# Sandwich

def sandwich_mempool(attacker=MEV_BOT, before_gas="60000000000", after_gas="60000000000",
                     target_position=1, price_impact=None):
    target = {"hash": "0xtarget", "from": PLAYER2, "to": CONTRACT, "gasPrice": "20000000000",
              "input": MAKE_MOVE_INPUT}
    buy = {"hash": "0xbuy", "from": attacker, "to": CONTRACT, "gasPrice": before_gas, "input": "0x"}
    sell = {"hash": "0xsell", "from": attacker.lower(), "to": CONTRACT, "gasPrice": after_gas, "input": "0x"}
    block = [buy, sell]
    block.insert(target_position, target)
    mempool = {"blockTransactions": block}
    if price_impact is not None:
        mempool["priceImpact"] = {"before": price_impact[0], "after": price_impact[1]}
    return make_context(mempoolContext=mempool)


def test_sandwich_detected_with_price_impact():
    context = sandwich_mempool(price_impact=("2.5%", "2.7%"))
    assert matches(detectors.check_sandwich_attack, make_trace(sender=PLAYER2), context, AttackType.SANDWICH)


def test_sandwich_structure_alone_is_enough():
    assert matches(detectors.check_sandwich_attack, make_trace(sender=PLAYER2), sandwich_mempool(),
                   AttackType.SANDWICH)


def test_sandwich_requires_material_price_impact():
    context = sandwich_mempool(price_impact=("0.4", "0.5"))
    assert abstains(detectors.check_sandwich_attack, make_trace(sender=PLAYER2), context)


@pytest.mark.parametrize("context", [
    sandwich_mempool(attacker=OUTSIDER),
    sandwich_mempool(before_gas="20000000000"),
    sandwich_mempool(after_gas="1000"),
    sandwich_mempool(target_position=0),
    sandwich_mempool(target_position=2),
])
def test_sandwich_structural_conditions(context):
    assert abstains(detectors.check_sandwich_attack, make_trace(sender=PLAYER2), context)


def test_sandwich_needs_target_hash_in_block():
    assert abstains(detectors.check_sandwich_attack, make_trace(tx_hash="0xelsewhere"), sandwich_mempool())
    assert abstains(detectors.check_sandwich_attack, make_trace(tx_hash=None), sandwich_mempool())


# Time-bandit

@pytest.mark.parametrize("depth,detected", [(0, False), (1, False), (2, False), (3, True), (12, True)])
def test_time_bandit_depth_threshold(depth, detected):
    context = make_context(blockchainContext={"isReorg": True, "reorgDepth": depth})
    result = detectors.check_time_bandit_attack(make_trace(), context, POLICY)
    assert result.matched is detected


@pytest.mark.parametrize("view", [
    {"isReorg": False, "reorgDepth": 5},
    {"isReorg": True},
    {"isReorg": True, "reorgDepth": None},
])
def test_time_bandit_abstains(view):
    assert abstains(detectors.check_time_bandit_attack, make_trace(), make_context(blockchainContext=view))


# JIT liquidity

def liquidity(provider=MEV_BOT, added="100", removed="100", duration=12, with_player=True):
    events = [
        {"type": "add", "address": provider, "amount": added, "timestamp": 1000},
        {"type": "remove", "address": provider, "amount": removed, "timestamp": 1012},
    ]
    if with_player:
        events.insert(1, {"type": "playerTransaction", "address": PLAYER1, "amount": "1", "timestamp": 1005})
    view = {"recentLiquidityEvents": events}
    if duration is not None:
        view["liquidityDuration"] = duration
    return make_context(liquidityContext=view)


def test_jit_liquidity_from_known_mev_provider():
    assert matches(detectors.check_jit_liquidity_attack, make_trace(), liquidity(), AttackType.JIT_LIQUIDITY)


def test_jit_liquidity_profit_from_unknown_provider():
    context = liquidity(provider=OUTSIDER, added="100", removed="105.5")
    assert matches(detectors.check_jit_liquidity_attack, make_trace(), context, AttackType.JIT_LIQUIDITY)


def test_zero_duration_is_a_real_duration():
    context = liquidity(provider=OUTSIDER, removed="150", duration=0)
    assert matches(detectors.check_jit_liquidity_attack, make_trace(), context, AttackType.JIT_LIQUIDITY)


@pytest.mark.parametrize("context", [
    liquidity(provider=OUTSIDER, added="100", removed="90"),
    liquidity(duration=45),
    liquidity(duration=None),
    liquidity(with_player=False),
])
def test_jit_liquidity_abstains(context):
    assert abstains(detectors.check_jit_liquidity_attack, make_trace(), context)


# Multisig bypass

def bypass_trace():
    return make_trace(calls=[nested_call(CONTRACT, END_GAME_INPUT)])


def test_multisig_bypass_fails_closed_without_multisig_info():
    assert matches(detectors.check_multisig_validation_bypass, bypass_trace(), make_context(),
                   AttackType.MULTISIG_BYPASS)


def test_multisig_bypass_with_missing_signer():
    context = make_context(multisigInfo={"presentPlayers": 1, "requiredPlayers": 2})
    assert matches(detectors.check_multisig_validation_bypass, bypass_trace(), context, AttackType.MULTISIG_BYPASS)


def test_multisig_satisfied():
    context = make_context(multisigInfo={"providedSignatures": 2, "requiredSignatures": 2})
    assert abstains(detectors.check_multisig_validation_bypass, bypass_trace(), context)


def test_multisig_bypass_needs_nested_resolution():
    assert abstains(detectors.check_multisig_validation_bypass, make_trace(calls=[nested_call(CONTRACT)]),
                    make_context())
    trace = make_trace(input_data=CREATE_GAME_INPUT, calls=[nested_call(CONTRACT, END_GAME_INPUT)])
    assert abstains(detectors.check_multisig_validation_bypass, trace, make_context())


# Oracle manipulation

def oracle(updates, volatility=None):
    view = {"recentOracleUpdates": updates}
    if volatility is not None:
        view["volatilityAnalysis"] = volatility
    return make_context(oracleContext=view)


def update(old, new, updater=MEV_BOT):
    return {"oldValue": old, "newValue": new, "updater": updater, "timestamp": 1}


def test_oracle_volatility_spike_detected():
    context = oracle([update("100", "101"), update("101", "100")],
                     {"normalVolatility": "1.0", "attackVolatility": "5.0", "confidenceScore": 0.9})
    assert matches(detectors.check_oracle_manipulation, make_trace(), context, AttackType.ORACLE_MANIPULATION)


def test_oracle_volatility_needs_confidence():
    context = oracle([update("100", "101"), update("101", "100")],
                     {"normalVolatility": "1.0", "attackVolatility": "5.0", "confidenceScore": 0.8})
    assert abstains(detectors.check_oracle_manipulation, make_trace(), context)


def test_oracle_raw_swing_by_mev_updater():
    context = oracle([update("100", "125"), update("125", "124")])
    assert matches(detectors.check_oracle_manipulation, make_trace(), context, AttackType.ORACLE_MANIPULATION)


def test_oracle_raw_swing_needs_high_risk_updater():
    context = oracle([update("100", "125", OUTSIDER), update("125", "124", OUTSIDER)])
    assert abstains(detectors.check_oracle_manipulation, make_trace(), context)


def test_oracle_swing_in_latest_update_has_no_successor():
    context = oracle([update("100", "101"), update("101", "150")])
    assert abstains(detectors.check_oracle_manipulation, make_trace(), context)


def test_oracle_needs_two_updates_and_skips_zero_baseline():
    assert abstains(detectors.check_oracle_manipulation, make_trace(), oracle([update("100", "200")]))
    assert abstains(detectors.check_oracle_manipulation, make_trace(), oracle([update("0", "200"), update("1", "1")]))


# Generalized front-running

def copy_trade(current_sender=MEV_BOT, pending_sender=PLAYER1, current_gas="90", pending_gas="20",
               similarity=None, pending_input=MAKE_MOVE_INPUT):
    mempool = {
        "currentTransaction": {"hash": "0xcopy", "from": current_sender, "to": CONTRACT,
                               "gasPrice": current_gas, "input": MAKE_MOVE_INPUT},
        "pendingTransactions": [{"hash": "0xorig", "from": pending_sender, "to": CONTRACT,
                                 "gasPrice": pending_gas, "input": pending_input}],
    }
    if similarity is not None:
        mempool["similarityAnalysis"] = similarity
    return make_context(mempoolContext=mempool)


def test_copied_move_with_higher_gas_detected():
    assert matches(detectors.check_generalized_frontrunning, make_trace(), copy_trade(),
                   AttackType.GENERALIZED_FRONT_RUNNING)


@pytest.mark.parametrize("context", [
    copy_trade(current_sender=PLAYER2),
    copy_trade(pending_sender=MEV_BOT.lower()),
    copy_trade(current_gas="20", pending_gas="90"),
    copy_trade(pending_input=CREATE_GAME_INPUT),
])
def test_generalized_frontrunning_abstains(context):
    assert abstains(detectors.check_generalized_frontrunning, make_trace(), context)


def test_exact_copy_similarity_analysis():
    context = copy_trade(pending_input=CREATE_GAME_INPUT,
                         similarity={"isExactCopy": True, "inputSimilarity": "100%"})
    assert matches(detectors.check_generalized_frontrunning, make_trace(), context,
                   AttackType.GENERALIZED_FRONT_RUNNING)

    partial = copy_trade(pending_input=CREATE_GAME_INPUT,
                         similarity={"isExactCopy": True, "inputSimilarity": "99%"})
    assert abstains(detectors.check_generalized_frontrunning, make_trace(), partial)


# Admin operations

def test_fee_change_by_non_owner():
    context = make_context(adminContext={"contractOwner": PLAYER1, "currentFee": "2.5"})
    assert matches(detectors.check_unauthorized_parameter_change, make_trace(sender=MEV_BOT, input_data=SET_FEE_INPUT),
                   context, AttackType.UNAUTHORIZED_PARAMETER_CHANGE)


def test_fee_change_by_owner():
    context = make_context(adminContext={"contractOwner": PLAYER1.lower()})
    assert abstains(detectors.check_unauthorized_parameter_change, make_trace(input_data=SET_FEE_INPUT), context)
    assert abstains(detectors.check_unauthorized_parameter_change, make_trace(sender=MEV_BOT, input_data=SET_FEE_INPUT),
                    make_context())


def test_storage_slot_modification():
    changed = make_context(adminContext={"storageChanges": [
        {"slot": "0x0", "originalValue": "0x01", "modifiedValue": "0x01"},
        {"slot": "0x3", "originalValue": "0x00", "modifiedValue": "0xff"},
    ]})
    unchanged = make_context(adminContext={"storageChanges": [
        {"slot": "0x0", "originalValue": "0x01", "modifiedValue": "0x01"},
    ]})
    assert matches(detectors.check_storage_manipulation, make_trace(), changed, AttackType.STORAGE_MANIPULATION)
    assert abstains(detectors.check_storage_manipulation, make_trace(), unchanged)


@pytest.mark.parametrize("original,modified", [(0, 255), ("0x00", 255), ("1", "0x2"), (1, "0x10")])
def test_storage_diff_in_any_number_format(original, modified):
    context = make_context(adminContext={"storageChanges": [
        {"slot": 3, "originalValue": original, "modifiedValue": modified},
    ]})
    assert matches(detectors.check_storage_manipulation, make_trace(), context, AttackType.STORAGE_MANIPULATION)


@pytest.mark.parametrize("original,modified", [("0x01", 1), ("0x01", "0x1"), ("0x10", "16"), (0, "0x0")])
def test_same_storage_word_written_differently_is_unchanged(original, modified):
    context = make_context(adminContext={"storageChanges": [
        {"slot": "0x0", "originalValue": original, "modifiedValue": modified},
    ]})
    assert abstains(detectors.check_storage_manipulation, make_trace(), context)


def test_unparseable_storage_word_drops_admin_view():
    context = make_context(adminContext={"storageChanges": [
        {"slot": "0x0", "originalValue": "garbage", "modifiedValue": "0x01"},
    ]})
    assert context.admin is None
    assert context.rejected_views == ("adminContext",)
    assert abstains(detectors.check_storage_manipulation, make_trace(), context)


@pytest.mark.parametrize("code_analysis", [
    {"hasWithdrawFunction": False},
    {"hasWithdrawFunction": True, "withdrawalsBlocked": True},
])
def test_withdrawal_disabling_upgrade(code_analysis):
    context = make_context(adminContext={"contractOwner": PLAYER1, "codeAnalysis": code_analysis})
    assert matches(detectors.check_withdrawal_disabling_upgrade, make_trace(input_data=UPGRADE_INPUT), context,
                   AttackType.WITHDRAWAL_DISABLING_UPGRADE)


def test_safe_upgrade():
    context = make_context(adminContext={"codeAnalysis": {"hasWithdrawFunction": True, "withdrawalsBlocked": False}})
    assert abstains(detectors.check_withdrawal_disabling_upgrade, make_trace(input_data=UPGRADE_INPUT), context)
    blocked = make_context(adminContext={"codeAnalysis": {"withdrawalsBlocked": True}})
    assert abstains(detectors.check_withdrawal_disabling_upgrade, make_trace(input_data=SET_FEE_INPUT), blocked)


def test_hidden_admin_function():
    analysis = {"isDocumented": False, "transfersFunds": True, "riskLevel": "HIGH", "historicalCalls": 0}
    context = make_context(adminContext={"functionAnalysis": analysis})
    assert matches(detectors.check_hidden_admin_function, make_trace(input_data=EMERGENCY_INPUT), context,
                   AttackType.HIDDEN_ADMIN_FUNCTION)

    documented = make_context(adminContext={"functionAnalysis": dict(analysis, isDocumented=True)})
    assert abstains(detectors.check_hidden_admin_function, make_trace(input_data=EMERGENCY_INPUT), documented)


def test_high_risk_ownership_transfer():
    context = make_context(riskAnalysis={"address": OUTSIDER, "riskScore": 92, "riskFactors": ["mixer"]})
    assert matches(detectors.check_high_risk_ownership_transfer, make_trace(input_data=TRANSFER_OWNERSHIP_INPUT),
                   context, AttackType.HIGH_RISK_OWNERSHIP_TRANSFER)


@pytest.mark.parametrize("risk", [
    {"address": OUTSIDER, "riskScore": 75},
    {"address": PLAYER2, "riskScore": 99},
    {"address": OUTSIDER, "riskScore": 140},
])
def test_ownership_transfer_abstains(risk):
    context = make_context(riskAnalysis=risk)
    assert abstains(detectors.check_high_risk_ownership_transfer, make_trace(input_data=TRANSFER_OWNERSHIP_INPUT),
                    context)
