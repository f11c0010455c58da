# backend/config/constants.py

# -----------------------------
# PLATFORM FEE DEFAULTS (paise / bps)
# -----------------------------

DEFAULT_FEE_PERCENTAGE_BPS = 200      # 2%
DEFAULT_FEE_FLAT_PAISE = 500          # ₹5
DEFAULT_FEE_MAX_CAP_PAISE = 2500      # ₹25
DEFAULT_PAYOUT_FREQUENCY = "WEEKLY"

BPS_DENOMINATOR = 10000

# -----------------------------
# SINGLETON DOCUMENT IDS
# -----------------------------

PLATFORM_SETTINGS_ID = "singleton"
PLATFORM_BILLING_PROFILE_ID = "platform"

# -----------------------------
# INVOICE NUMBERING
# -----------------------------

INVOICE_NUMBER_TOKEN = "{NNNNN}"

PLATFORM_INVOICE_PREFIX = "SMK"
PLATFORM_INVOICE_PADDING = 5
PLATFORM_INVOICE_SERIES_FORMAT = "{PREFIX}-{FY}-{NNNNN}"

MERCHANT_INVOICE_PREFIX = "MRC"
MERCHANT_INVOICE_PADDING = 5
MERCHANT_INVOICE_SERIES_FORMAT = "{PREFIX}-{YYYY}-{NNNNN}"

MAX_ALLOCATION_ATTEMPTS = 5

# -----------------------------
# GST
# -----------------------------

DEFAULT_GST_RATE = 18
DEFAULT_SAC_CODE = "9983"             # other IT / platform services
DEFAULT_STATE_CODE = "09"
INVOICE_CURRENCY = "INR"

# -----------------------------
# SETTLEMENT CYCLE
# -----------------------------

# Cycles close Thursday 23:59:59.999 in PLATFORM_TIMEZONE. Trigger the invoice
# job on Thursday local time (before 18:30 UTC for Asia/Kolkata); a run on Friday
# already belongs to the next cycle.
CYCLE_END_WEEKDAY = 3                 # Thursday (Monday == 0)
CYCLE_LENGTH_DAYS = 7
