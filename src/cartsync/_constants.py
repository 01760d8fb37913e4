"""Internal constants shared across the library."""

BASE_URL = "http://localhost:2424/api"
USER_AGENT = "cartsync/1 (+aiohttp)"

# ------------------------------------------------------------------
# Local Store slot keys
# ------------------------------------------------------------------

CART_SLOT_KEY = "cart"
RELOAD_FLAG_KEY = "forceReloadCart"
MERGE_LEDGER_KEY = "cartMergeLedger"

# ------------------------------------------------------------------
# Remote Cart Service endpoints
# ------------------------------------------------------------------

CART_PATH = "/cart/user/{user_id}"
CART_ITEMS_PATH = "/cart/user/{user_id}/items"
CART_ITEM_PATH = "/cart/user/{user_id}/items/{line_id}"

ITEM_PARAM = "itemId"
QUANTITY_PARAM = "qty"

# HTTP statuses the Remote Cart Service uses for application errors.
NOT_FOUND_STATUSES: frozenset[int] = frozenset({404})
AUTH_STATUSES: frozenset[int] = frozenset({401, 403})
STOCK_STATUSES: frozenset[int] = frozenset({409})
