import os
from dotenv import load_dotenv

# Load Environment Variables from project root .env
env_path = os.path.join(os.path.dirname(__file__), "../.env")
load_dotenv(env_path)


def _split_urls(raw: str) -> list:
    return [url.strip() for url in raw.split(",") if url.strip()]


class Settings:
    # ═══════════════════════════════════════════════════════════════════
    # RIFT LIQUIDITY ORCHESTRATOR CONFIGURATION
    # ═══════════════════════════════════════════════════════════════════

    # --- Console ---
    SILENT_MODE = os.getenv("SILENT_MODE", "false").lower() == "true"

    # Paths
    DATA_DIR = os.path.abspath(os.path.join(os.path.dirname(__file__), "../data"))
    CACHE_DB_PATH = os.getenv(
        "CACHE_DB_PATH", os.path.join(DATA_DIR, "liquidity_cache.db")
    )

    # --- RPC ---
    RPC_URL = os.getenv("RPC_URL", "https://api.mainnet-beta.solana.com")
    RPC_FALLBACK_URLS = _split_urls(os.getenv("RPC_FALLBACK_URLS", ""))
    RPC_TIMEOUT_S = float(os.getenv("RPC_TIMEOUT_S", "10"))
    RPC_COMMITMENT = os.getenv("RPC_COMMITMENT", "confirmed")

    # --- Wallet (base58 secret key, never logged) ---
    SOLANA_PRIVATE_KEY = os.getenv("SOLANA_PRIVATE_KEY", "")

    # --- Jito bundles ---
    JITO_REGION = os.getenv("JITO_REGION", "ny")
    JITO_TIP_LAMPORTS = int(os.getenv("JITO_TIP_LAMPORTS", "1000000"))  # 0.001 SOL
    JITO_MAX_TXS_PER_BUNDLE = int(os.getenv("JITO_MAX_TXS_PER_BUNDLE", "5"))

    # --- Compute budget ---
    COMPUTE_UNIT_LIMIT = int(os.getenv("COMPUTE_UNIT_LIMIT", "400000"))
    COMPUTE_UNIT_PRICE = int(os.getenv("COMPUTE_UNIT_PRICE", "100000"))  # micro-lamports

    # --- Confirmation polling ---
    CONFIRM_POLL_INTERVAL_S = float(os.getenv("CONFIRM_POLL_INTERVAL_S", "1.0"))
    CONFIRM_MAX_ATTEMPTS = int(os.getenv("CONFIRM_MAX_ATTEMPTS", "30"))

    # --- Balance verification between create and deposit ---
    BALANCE_RECHECK_ATTEMPTS = int(os.getenv("BALANCE_RECHECK_ATTEMPTS", "5"))
    BALANCE_RECHECK_DELAY_S = float(os.getenv("BALANCE_RECHECK_DELAY_S", "2.0"))

    # Remote nodes lag submitted txs; optimistic values win inside this window
    BALANCE_FRESHNESS_WINDOW_S = float(os.getenv("BALANCE_FRESHNESS_WINDOW_S", "30"))

    # --- Quoting ---
    FOT_DEFAULT_HAIRCUT_BPS = int(os.getenv("FOT_DEFAULT_HAIRCUT_BPS", "100"))  # 1%
    STALE_QUOTE_TOLERANCE_BPS = int(os.getenv("STALE_QUOTE_TOLERANCE_BPS", "100"))

    # --- Fee distribution ---
    FEE_SAFETY_MARGIN_PPM = int(os.getenv("FEE_SAFETY_MARGIN_PPM", "10"))

    # --- Withdrawal batching ---
    DLMM_BINS_PER_TX = int(os.getenv("DLMM_BINS_PER_TX", "50"))
    CP_POSITIONS_PER_TX = int(os.getenv("CP_POSITIONS_PER_TX", "4"))

    # --- Price oracle ---
    PRICE_API_URL = os.getenv("PRICE_API_URL", "https://lite-api.jup.ag/price/v3")
    PRICE_TIMEOUT_S = float(os.getenv("PRICE_TIMEOUT_S", "5"))
    PRICE_CACHE_TTL_S = float(os.getenv("PRICE_CACHE_TTL_S", "10"))
    JUPITER_API_KEY = os.getenv("JUPITER_API_KEY", "").strip("'\"")
