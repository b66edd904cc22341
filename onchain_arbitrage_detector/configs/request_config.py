import os


def _endpoints_from_env(name: str, default: list) -> list:
    value = os.environ.get(name, "")
    endpoints = [url.strip() for url in value.split(",") if url.strip()]
    return endpoints or default


# Solana RPC configuration for the connection pool and transaction submission
solana_rpc_api = {
    "https_endpoints": _endpoints_from_env("SOLANA_HTTPS_ENDPOINTS", ["https://api.mainnet-beta.solana.com"]),
    "wss_endpoints": _endpoints_from_env("SOLANA_WSS_ENDPOINTS", ["wss://api.mainnet-beta.solana.com"]),
    "commitment": "confirmed",
    "skip_preflight": True,  # simulation is done by the program itself (profit_or_revert)
    "subscribe_timeout": 30,  # seconds to wait for a websocket subscription confirmation
}

# On-chain arbitrage program and local files
arb_program = {
    "program_id": os.environ.get("ARB_PROGRAM_ID", "9YthhmfnP2CYahYNrQGHoJg6wtatTtKee7cMeWd7z6gk"),
    "wallet_key_path": os.environ.get("ARB_WALLET_KEY", "data/wallet.json"),
    "token_table_path": "data/tokens.json",
    "routes_dir": None,  # e.g. "data/routes", one <origin>_routes.json per origin token when set
    "venue_configs": {
        "constant_product": "data/venues/saber.json",
        # "whirlpool": "data/venues/orca.json",
        # "clmm": "data/venues/raydium.json",
    },
    # venue name -> "module:attribute" of a factory(arb_program_id) -> venue plugin.
    # Concentrated-liquidity venues need account decoders and curve math from outside
    # this package, see main.register_concentrated_venue.
    "venue_plugins": {
        # "whirlpool": "my_venues.orca:make_venue",
        # "clmm": "my_venues.raydium:make_venue",
    },
}
