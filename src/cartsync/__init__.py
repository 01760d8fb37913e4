"""cartsync - guest/remote shopping cart synchronization engine."""

from importlib.metadata import PackageNotFoundError, version

try:
    __version__ = version("cartsync")
except PackageNotFoundError:
    __version__ = "0+local"

from cartsync.config import CartSyncConfig
from cartsync.engine import CartSyncEngine
from cartsync.exceptions import (
    CartApiError,
    CartAuthenticationError,
    CartConfigError,
    CartNotFoundError,
    CartSyncError,
    CartTransportError,
    LineNotFoundError,
    MergeIncompleteError,
    RemoteUnavailableError,
    StockExceededError,
)
from cartsync.local import InMemorySlots, JsonFileSlots, KeyValueSlots, LocalCartStore
from cartsync.models import AuthorityMode, Cart, CartLine, Item, MergeResult
from cartsync.remote import CartServiceClient, RemoteCartService
from cartsync.session import Identity, IdentityProvider, SessionEvent, SessionEventKind, basic_credential
from cartsync.stock import (
    EmbeddedStockOracle,
    StaticStockOracle,
    StockOracle,
    StockShortfall,
    can_increase,
    clamp_line_quantity,
    find_shortfalls,
)

__all__ = [
    "__version__",
    "AuthorityMode",
    "Cart",
    "CartApiError",
    "CartAuthenticationError",
    "CartConfigError",
    "CartLine",
    "CartNotFoundError",
    "CartServiceClient",
    "CartSyncConfig",
    "CartSyncEngine",
    "CartSyncError",
    "CartTransportError",
    "EmbeddedStockOracle",
    "Identity",
    "IdentityProvider",
    "InMemorySlots",
    "Item",
    "JsonFileSlots",
    "KeyValueSlots",
    "LineNotFoundError",
    "LocalCartStore",
    "MergeIncompleteError",
    "MergeResult",
    "RemoteCartService",
    "RemoteUnavailableError",
    "SessionEvent",
    "SessionEventKind",
    "StaticStockOracle",
    "StockExceededError",
    "StockOracle",
    "StockShortfall",
    "basic_credential",
    "can_increase",
    "clamp_line_quantity",
    "find_shortfalls",
]
