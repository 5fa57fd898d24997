"""
config.py
Configuration and constants for the capital ledger engine
"""

# ============================================================
# DATA LAYER
# ============================================================
DB_PATH = "ledger.db"

# ============================================================
# TRANSACTION VOCABULARY
# ============================================================
TX_INFLOW = "inflow"
TX_DEPLOYMENT = "deployment"
TX_RETURN = "return"
TX_WITHDRAWAL = "withdrawal"

TRANSACTION_TYPES = {TX_INFLOW, TX_DEPLOYMENT, TX_RETURN, TX_WITHDRAWAL}

STATUS_PENDING = "pending"
STATUS_COMPLETED = "completed"
STATUS_FAILED = "failed"
STATUS_REJECTED = "rejected"

TRANSACTION_STATUSES = {STATUS_PENDING, STATUS_COMPLETED, STATUS_FAILED, STATUS_REJECTED}

# Deployments and returns only count toward a purchase request
REQUEST_TRANSACTION_TYPES = {TX_DEPLOYMENT, TX_RETURN}

# ============================================================
# CONTRACTOR FINANCE TERMS (defaults when unset)
# ============================================================
DEFAULT_PLATFORM_FEE_RATE = 0.0025      # 0.25% of funded, one-time
DEFAULT_PLATFORM_FEE_CAP = 25000.0      # absolute ceiling
DEFAULT_PARTICIPATION_FEE_RATE_DAILY = 0.001  # 0.1% of funded per day

# ============================================================
# INVESTOR FEE WATERFALL
# ============================================================
MANAGEMENT_FEE_RATE = 0.02   # flat, on invested capital
HURDLE_RATE = 0.12           # return owed before carry applies
PERFORMANCE_FEE_RATE = 0.20  # carry above hurdle

# ============================================================
# XIRR SOLVER
# ============================================================
XIRR_INITIAL_GUESS = 0.10
XIRR_MAX_ITERATIONS = 100
XIRR_NPV_TOLERANCE = 1e-6
XIRR_DERIVATIVE_FLOOR = 1e-10
XIRR_RATE_FLOOR = -0.9999
DAYS_PER_YEAR = 365.0  # Actual/365, matches Excel XIRR
SECONDS_PER_DAY = 86400.0


def normalize_label(value) -> str:
    """Normalize a transaction type or status label ('  Completed ' -> 'completed')."""
    if value is None or (isinstance(value, float) and value != value):
        return ""
    return str(value).strip().lower()


def _rate_or_default(value, default: float) -> float:
    """Unset (None/NaN) -> default. Values are expected to be cleaned by the loaders."""
    if value is None:
        return default
    x = float(value)
    if x != x:  # NaN
        return default
    return x


def resolve_finance_terms(row: dict = None) -> dict:
    """Resolve a contractor row's finance terms, applying defaults.

    Args:
        row: Mapping with optional platform_fee_rate, platform_fee_cap,
             participation_fee_rate_daily keys (numeric or None)

    Returns:
        Dict with all three keys populated
    """
    row = row or {}
    return {
        "platform_fee_rate": _rate_or_default(
            row.get("platform_fee_rate"), DEFAULT_PLATFORM_FEE_RATE),
        "platform_fee_cap": _rate_or_default(
            row.get("platform_fee_cap"), DEFAULT_PLATFORM_FEE_CAP),
        "participation_fee_rate_daily": _rate_or_default(
            row.get("participation_fee_rate_daily"), DEFAULT_PARTICIPATION_FEE_RATE_DAILY),
    }
