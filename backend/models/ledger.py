from enum import Enum


class LedgerEntryType(str, Enum):
    GROSS_ORDER_VALUE = "GROSS_ORDER_VALUE"
    PLATFORM_FEE = "PLATFORM_FEE"
    ORDER_PAYOUT = "ORDER_PAYOUT"
    PAYOUT_PROCESSED = "PAYOUT_PROCESSED"


class LedgerStatus(str, Enum):
    PENDING = "PENDING"
    PROCESSING = "PROCESSING"
    COMPLETED = "COMPLETED"
    FAILED = "FAILED"


# +1: credit to the merchant, -1: debit
LEDGER_SIGNS = {
    LedgerEntryType.GROSS_ORDER_VALUE: 1,
    LedgerEntryType.PLATFORM_FEE: -1,
    LedgerEntryType.ORDER_PAYOUT: 1,
    LedgerEntryType.PAYOUT_PROCESSED: -1,
}

LEDGER_TRANSITIONS = {
    LedgerStatus.PENDING: {LedgerStatus.PROCESSING, LedgerStatus.FAILED},
    LedgerStatus.PROCESSING: {LedgerStatus.COMPLETED, LedgerStatus.FAILED},
    LedgerStatus.COMPLETED: set(),
    LedgerStatus.FAILED: set(),
}
