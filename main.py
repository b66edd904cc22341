"""
# main.py
# This is a console application for the live Solana on-chain arbitrage engine.
"""
import asyncio
import functools
import importlib
import logging
from pathlib import Path

from solders.pubkey import Pubkey

from onchain_arbitrage_detector.configs.request_config import arb_program, solana_rpc_api
from onchain_arbitrage_detector.configs.strategy_config import get_strategy_config
from onchain_arbitrage_detector.algorithms.arbitrage_detector_integrated import LiveArbitrageDetector
from onchain_arbitrage_detector.algorithms.exhaustive_dfs_algorithm import format_path
from onchain_arbitrage_detector.utils import logging_config
from onchain_arbitrage_detector.utils.connection_pool import ConnectionPool
from onchain_arbitrage_detector.utils.exceptions import ConfigurationError
from onchain_arbitrage_detector.utils.graph_structure import VenueRegistry
from onchain_arbitrage_detector.utils.solana_network import RpcQueryEndpoint, WebsocketPushEndpoint
from onchain_arbitrage_detector.utils.token_table import TokenTable
from onchain_arbitrage_detector.utils.transaction import ArbTransactionSender
from onchain_arbitrage_detector.utils.wallet import WalletTokenAccounts, load_keypair
from onchain_arbitrage_detector.venues.concentrated_liquidity import ConcentratedLiquidityVenue
from onchain_arbitrage_detector.venues.constant_product import ConstantProductVenue

logger = logging.getLogger("main")

VENUE_FACTORIES = {
    "constant_product": ConstantProductVenue,
}


def register_venue(name, factory):
    """
    Make a venue available to build_registries.
    factory(arb_program_id) must return a venue plugin.
    """
    VENUE_FACTORIES[name] = factory


def register_concentrated_venue(name, pool_decoder, tick_array_decoder, swap_quote,
                                venue_class=ConcentratedLiquidityVenue, **options):
    """
    Register a tick-array venue whose account decoders and swap quote live outside
    this package. Extra options go to venue_class, e.g. the fee config and bitmap
    decoders of ClmmVenue or the window shape of ConcentratedLiquidityVenue.
    """
    register_venue(name, functools.partial(venue_class,
                                           pool_decoder=pool_decoder,
                                           tick_array_decoder=tick_array_decoder,
                                           swap_quote=swap_quote,
                                           name=name,
                                           **options))


def resolve_venue_factory(target):
    """Import a "module:attribute" venue factory"""
    module_name, _, attribute = target.partition(":")
    if not module_name or not attribute:
        raise ConfigurationError(f"Venue plugin {target!r} must look like 'module:attribute'")
    try:
        return getattr(importlib.import_module(module_name), attribute)
    except (ImportError, AttributeError) as e:
        raise ConfigurationError(f"Cannot load venue plugin {target!r}: {e}") from e


def load_venue_plugins(venue_plugins=None):
    venue_plugins = arb_program["venue_plugins"] if venue_plugins is None else venue_plugins
    for venue_name, target in venue_plugins.items():
        register_venue(venue_name, resolve_venue_factory(target))


def get_user_input(prompt, default=None, is_int=False):
    """
    Get user input with a prompt, allowing for a default value.
    If the user presses Enter without typing anything, the default value is returned.
    """
    user_input = input(f"{prompt} [{'default: ' + str(default) if default is not None else 'required'}]: ")
    if not user_input:
        return default
    return int(user_input) if is_int else user_input


def build_connection_pool() -> ConnectionPool:
    commitment = solana_rpc_api["commitment"]
    return ConnectionPool(
        [RpcQueryEndpoint(url, commitment) for url in solana_rpc_api["https_endpoints"]],
        [WebsocketPushEndpoint(url, commitment, solana_rpc_api["subscribe_timeout"])
         for url in solana_rpc_api["wss_endpoints"]],
    ).require_endpoints()


def build_registries(connection_pool: ConnectionPool, arb_program_id: Pubkey, venue_configs=None):
    venue_configs = arb_program["venue_configs"] if venue_configs is None else venue_configs
    registries = []
    for venue_name, config_path in venue_configs.items():
        if venue_name not in VENUE_FACTORIES:
            raise ConfigurationError(f"Unknown venue: {venue_name}. Available: {list(VENUE_FACTORIES)}")
        plugin = VENUE_FACTORIES[venue_name](arb_program_id)
        registries.append(VenueRegistry(plugin, connection_pool, config_path=config_path))
    return registries


async def build_detector(min_profit=None, routes_dir=None):
    """
    Build every long-lived object once: connection pool, token table, wallet,
    venue registries and the live detector wired to the transaction sender.
    """
    connection_pool = build_connection_pool()
    arb_program_id = Pubkey.from_string(arb_program["program_id"])
    token_table = TokenTable.from_file(arb_program["token_table_path"])
    keypair = load_keypair(arb_program["wallet_key_path"])

    client = connection_pool.get_https_connection()[0].client
    wallet = await WalletTokenAccounts.create(client, keypair, token_table)
    load_venue_plugins()
    registries = build_registries(connection_pool, arb_program_id)
    sender = ArbTransactionSender(client, wallet, arb_program_id, skip_preflight=solana_rpc_api["skip_preflight"])
    return LiveArbitrageDetector(registries, wallet, executor=sender, min_profit=min_profit, routes_dir=routes_dir)


async def handle_option_1():
    """
    Handle the first option: list arbitrage routes.
    Routes are enumerated from the venue configuration only, nothing is subscribed.
    """
    detector = await build_detector()
    origin_tokens = get_strategy_config("live_arbitrage")["origin_tokens"]
    for origin_token in origin_tokens:
        paths = detector.find_paths(origin_token)
        print(f"\n{origin_token}: {len(paths)} routes")
        for idx, path in enumerate(paths, 1):
            print(f" {idx:3d}. {' | '.join(format_path(path))}")
    print(f"\nSearch stats: {detector.path_finder.get_algorithm_stats()}")


async def handle_option_2():
    """
    Handle the second option: run the live arbitrage loop until interrupted.
    """
    min_profit = get_user_input("Enter minimum profit in base units (e.g., 500)",
                                get_strategy_config("live_arbitrage")["min_profit"], is_int=True)
    routes_dir = get_user_input("Directory for routes and profit logs", arb_program["routes_dir"])
    detector = await build_detector(min_profit=min_profit, routes_dir=Path(routes_dir) if routes_dir else None)
    live = await detector.start()
    if live == 0:
        print("❌ No arbitrage path could be activated.")
        return
    print(f"✅ {live} arbitrage paths live. Press Ctrl+C to stop.")
    try:
        await asyncio.Event().wait()
    finally:
        await detector.stop()


def main():
    """
    Main function to run the console application.
    It provides a simple text-based menu for the user to interact with.
    """
    logging_config.setup()
    while True:
        print("\nWelcome to Solana On-chain Arbitrage Console")
        print("1) List arbitrage routes")
        print("2) Run live arbitrage")
        print("q) Quit")

        choice = input("Please choose an option: ").strip().lower()

        try:
            if choice == "1":
                asyncio.run(handle_option_1())
            elif choice == "2":
                asyncio.run(handle_option_2())
            elif choice in ("q", "quit"):
                print("Exiting... Goodbye!")
                break
            else:
                print("❌ Invalid option. Please try again.")
        except ConfigurationError as e:
            logger.error("Configuration error: %s", e)
            raise SystemExit(1)
        except KeyboardInterrupt:
            print("\nStopped.")


if __name__ == "__main__":
    main()
