"""
Position Engine Package.

============================================================
PURPOSE
============================================================
Tracks trading positions from opening buy to closing sell and
computes realized gains.

AUTHORITY BOUNDARIES:
    CAN:
        - Place the buy order opening a position
        - Place the sell order closing a position when its
          stop gain / stop loss rule fires
        - Reconcile trades against positions

    MUST NOT:
        - Decide which positions to open
        - Place more than one sell order per position
        - Delete positions

============================================================
MODULES
============================================================
- money: Currency, pairs and amounts
- types: Position rules, trades, tickers, statuses, results
- exceptions: Exception hierarchy
- errors: Error taxonomy and codes
- config: Engine configuration
- ledger: Per-position trade ledger
- state_machine: Position lifecycle transitions
- position: Position aggregate
- validation: Creation request validation
- position_service: Main position orchestrator
- adapters: Executor / store interfaces and mocks
- models: ORM models for persistence
- database: Async engine and session factory
- repository: Database operations

============================================================
"""

# ============================================================
# MONEY
# ============================================================
from .money import (
    Currency,
    CurrencyPair,
    CurrencyAmount,
)

# ============================================================
# TYPES
# ============================================================
from .types import (
    # Enums
    TradeType,
    PositionStatus,
    # Dataclasses
    PositionRules,
    Trade,
    Ticker,
    OrderCreationResult,
    PositionCreationResult,
    Gain,
    PositionRecord,
)

# ============================================================
# EXCEPTIONS AND ERRORS
# ============================================================
from .exceptions import (
    PositionEngineError,
    CurrencyMismatchError,
    InvalidTransitionError,
    OrderIdAlreadySetError,
    PositionPersistenceError,
    PositionRepositoryError,
)
from .errors import (
    ErrorCategory,
    ErrorSeverity,
    ErrorCodeInfo,
    ErrorRecord,
    ERROR_CODES,
    get_error_info,
)

# ============================================================
# CONFIGURATION
# ============================================================
from .config import (
    PositionServiceConfig,
    DatabaseConfig,
    PositionEngineConfig,
)

# ============================================================
# CORE
# ============================================================
from .ledger import TradeLedger, TradeSet, sum_notional, sum_fees
from .state_machine import (
    VALID_TRANSITIONS,
    PositionTransitionEvent,
    TransitionGuard,
)
from .position import Position
from .validation import ValidationResult, PositionRequestValidator
from .position_service import PositionService

# ============================================================
# ADAPTERS
# ============================================================
from .adapters import (
    OrderExecutor,
    PositionStore,
    MockConfig,
    MockOrderExecutor,
    InMemoryPositionStore,
)

# ============================================================
# PERSISTENCE
# ============================================================
from .models import Base, PositionModel, PositionTradeModel
from .database import create_session_factory, init_models
from .repository import PositionRepository


__version__ = "1.0.0"

__all__ = [
    # Money
    "Currency",
    "CurrencyPair",
    "CurrencyAmount",
    # Types
    "TradeType",
    "PositionStatus",
    "PositionRules",
    "Trade",
    "Ticker",
    "OrderCreationResult",
    "PositionCreationResult",
    "Gain",
    "PositionRecord",
    # Exceptions
    "PositionEngineError",
    "CurrencyMismatchError",
    "InvalidTransitionError",
    "OrderIdAlreadySetError",
    "PositionPersistenceError",
    "PositionRepositoryError",
    # Errors
    "ErrorCategory",
    "ErrorSeverity",
    "ErrorCodeInfo",
    "ErrorRecord",
    "ERROR_CODES",
    "get_error_info",
    # Config
    "PositionServiceConfig",
    "DatabaseConfig",
    "PositionEngineConfig",
    # Core
    "TradeLedger",
    "TradeSet",
    "sum_notional",
    "sum_fees",
    "VALID_TRANSITIONS",
    "PositionTransitionEvent",
    "TransitionGuard",
    "Position",
    "ValidationResult",
    "PositionRequestValidator",
    "PositionService",
    # Adapters
    "OrderExecutor",
    "PositionStore",
    "MockConfig",
    "MockOrderExecutor",
    "InMemoryPositionStore",
    # Persistence
    "Base",
    "PositionModel",
    "PositionTradeModel",
    "create_session_factory",
    "init_models",
    "PositionRepository",
]
