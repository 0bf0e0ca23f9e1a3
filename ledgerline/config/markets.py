"""
Market Configuration - Single source of truth for quote feeds and policy windows.

These values are fixed policy, not user settings. User-editable values live in
ledgerline.settings.DEFAULTS.
"""

# Official exchange intraday feed (free, no token, ~5s delay)
TWSE_BASE_URL = "https://mis.twse.com.tw/"
TWSE_QUOTE_PATH = "stock/api/getStockInfo.jsp"
TWSE_SUCCESS_CODE = "0000"

# An instrument is listed on exactly one of these; tried in this order
MARKET_PREFIXES = ["tse", "otc"]

# Token-gated historical feed
FINMIND_BASE_URL = "https://api.finmindtrade.com/api/v4/data"
FINMIND_PRICE_DATASET = "TaiwanStockPrice"
FINMIND_DIVIDEND_DATASET = "TaiwanStockDividend"
FINMIND_INFO_DATASET = "TaiwanStockInfo"

# Connect/read timeout for every source call (seconds)
SOURCE_TIMEOUT_SECONDS = 30

# Cached quotes younger than this are served without a network call
PRICE_CACHE_FRESH_SECONDS = 5 * 60

# Trailing window queried from the historical feed when building a quote
PRICE_LOOKBACK_DAYS = 30

# Minimum gap between dividend queries for one instrument (SUCCESS / NOT_FOUND)
DIVIDEND_RECHECK_SECONDS = 24 * 60 * 60

# Feed messages that mean "unknown instrument" rather than "no dividends"
NOT_FOUND_MARKERS = ["not found", "not exist", "no data id"]

# Exchange local time, used by the market session helper
MARKET_TIMEZONE = "Asia/Taipei"

# Index snapshot used to read the exchange's own date and clock
MARKET_INDEX_CODE = "tse_t00.tw"
