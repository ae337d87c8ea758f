"""Account positions within launchpad instructions."""

from enum import IntEnum


class InitializeAccountIndex(IntEnum):
    """Accounts of the ``initialize`` instruction."""

    PAYER = 0
    CREATOR = 1
    GLOBAL_CONFIG = 2
    PLATFORM_CONFIG = 3
    AUTHORITY = 4
    POOL_STATE = 5
    BASE_MINT = 6
    QUOTE_MINT = 7
    BASE_VAULT = 8
    QUOTE_VAULT = 9


class TradeAccountIndex(IntEnum):
    """Accounts shared by the buy and sell instructions."""

    PAYER = 0
    AUTHORITY = 1
    GLOBAL_CONFIG = 2
    PLATFORM_CONFIG = 3
    POOL_STATE = 4
    USER_BASE_TOKEN = 5
    USER_QUOTE_TOKEN = 6
    BASE_VAULT = 7
    QUOTE_VAULT = 8
    BASE_TOKEN_MINT = 9
    QUOTE_TOKEN_MINT = 10


def account_at(accounts: tuple[str, ...], index: IntEnum) -> str:
    """Return the account at ``index`` or raise a descriptive error."""
    if index >= len(accounts):
        raise IndexError(f"instruction has {len(accounts)} accounts, {index.name} expected at {int(index)}")
    return accounts[index]
