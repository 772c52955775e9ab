"""Function selectors of the RockPaperScissors contract and its admin surface."""

# Official game functions
CREATE_GAME = "0x25aa99cd"  # createGame(GameType)
JOIN_GAME = "0xee9a31a2"  # joinGame(uint256)
MAKE_MOVE = "0x57a33a7c"  # makeMove(uint256,Choice)
END_GAME = "0x3e4372d0"  # _endGame(uint256) - private

# Admin functions
SET_FEE = "0x69fe0e2d"  # setFee(uint256)
UPGRADE_TO = "0x3659cfe6"  # upgradeTo(address)
UPGRADE_TO_AND_CALL = "0x4f1ef286"  # upgradeToAndCall(address,bytes)
TRANSFER_OWNERSHIP = "0xf2fde38b"  # transferOwnership(address)
EMERGENCY_WITHDRAW = "0xdb2e21bc"  # emergencyWithdraw()

FUNCTION_NAMES = {
    CREATE_GAME: "createGame(GameType)",
    JOIN_GAME: "joinGame(uint256)",
    MAKE_MOVE: "makeMove(uint256,Choice)",
    END_GAME: "_endGame(uint256)",
    SET_FEE: "setFee(uint256)",
    UPGRADE_TO: "upgradeTo(address)",
    UPGRADE_TO_AND_CALL: "upgradeToAndCall(address,bytes)",
    TRANSFER_OWNERSHIP: "transferOwnership(address)",
    EMERGENCY_WITHDRAW: "emergencyWithdraw()",
}

# Must never be called directly by an external account
PRIVILEGED_SELECTORS = frozenset({END_GAME})
PER_GAME_ACTION_SELECTORS = frozenset({MAKE_MOVE})
PARAMETER_SELECTORS = frozenset({SET_FEE})
UPGRADE_SELECTORS = frozenset({UPGRADE_TO, UPGRADE_TO_AND_CALL})
OWNERSHIP_SELECTORS = frozenset({TRANSFER_OWNERSHIP})
# Present in the deployed bytecode but absent from the published ABI
UNDOCUMENTED_ADMIN_SELECTORS = frozenset({EMERGENCY_WITHDRAW})
