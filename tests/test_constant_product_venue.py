"""
Constant-product venue: reserve decoding, pricing and swap instruction layout.
"""
import asyncio

import pytest
from solders.pubkey import Pubkey
from spl.token.constants import TOKEN_PROGRAM_ID

from fakes import FakeNetwork, FakeWallet, constant_product_pool, token_account_data
from onchain_arbitrage_detector.utils.pool_state import PoolState
from onchain_arbitrage_detector.utils.transaction import anchor_discriminator, swap_state_address
from onchain_arbitrage_detector.venues.constant_product import (
    ConstantProductVenue,
    constant_product_amount_out,
    decode_token_amount,
)


def test_decode_token_amount():
    assert decode_token_amount(token_account_data(123_456_789)) == 123_456_789
    with pytest.raises(ValueError):
        decode_token_amount(bytes(40))


def test_amount_out_formula():
    assert constant_product_amount_out(1_000_000, 2_000_000, 1000, 0) == 1998
    # 30 bps fee leaves 997 of 1000
    assert constant_product_amount_out(1_000_000, 1_000_000, 1000, 30) == 1_000_000 * 997 // 1_000_997
    assert constant_product_amount_out(1_000_000, 1_000_000, 0, 30) == 0
    with pytest.raises(ValueError):
        constant_product_amount_out(0, 1_000_000, 10, 0)


def test_parse_pool_config_defaults():
    network = FakeNetwork()
    entry = constant_product_pool(network, "USDC", "USDT", 1, 1)
    del entry["feeBps"]
    config = ConstantProductVenue(Pubkey.new_unique()).parse_pool_config(entry)

    assert config.extra == {"fee_bps": 30}
    assert config.a_to_b and config.b_to_a
    assert config.accounts["reserveB"] == entry["reserveB"]


def test_fee_out_of_range_is_rejected():
    network = FakeNetwork()
    entry = constant_product_pool(network, "USDC", "USDT", 1, 1, fee_bps=10_000)
    with pytest.raises(ValueError):
        ConstantProductVenue(Pubkey.new_unique()).parse_pool_config(entry)


def make_pool_state():
    network = FakeNetwork()
    entry = constant_product_pool(network, "USDC", "USDT", 1_000_000, 2_000_000, fee_bps=0)
    arb_program_id = Pubkey.new_unique()
    plugin = ConstantProductVenue(arb_program_id)
    pool_state = PoolState(plugin, Pubkey.new_unique(), plugin.parse_pool_config(entry), network.pool)
    return network, entry, arb_program_id, pool_state


def test_reserve_b_update_reprices_the_pool():
    async def run():
        network, entry, _, pool_state = make_pool_state()
        await pool_state.start()
        assert pool_state.get_amount_out(1000, True) == 1998

        await network.update(Pubkey.from_string(entry["reserveB"]), token_account_data(1_000_000))
        assert pool_state.get_amount_out(1000, True) == 999

    asyncio.run(run())


def test_swap_instruction_layout():
    async def run():
        _, entry, arb_program_id, pool_state = make_pool_state()
        wallet = FakeWallet(["USDC", "USDT"])
        await pool_state.start()

        instruction = await pool_state.get_swap_instruction(False, wallet)

        assert instruction.program_id == arb_program_id
        assert bytes(instruction.data) == anchor_discriminator("saber_swap")
        keys = [meta.pubkey for meta in instruction.accounts]
        assert len(keys) == 11
        assert keys[0] == pool_state.program_id
        assert keys[3] == wallet.owner
        assert instruction.accounts[3].is_signer
        # B -> A: user pays USDT and receives USDC, the pool pays out of reserve A
        assert keys[4] == wallet.get_token_account("USDT")
        assert keys[5] == wallet.get_token_account("USDC")
        assert keys[6] == Pubkey.from_string(entry["reserveB"])
        assert keys[7] == Pubkey.from_string(entry["reserveA"])
        assert keys[8] == Pubkey.from_string(entry["adminTokenA"])
        assert keys[9] == swap_state_address(arb_program_id)
        assert keys[10] == TOKEN_PROGRAM_ID

    asyncio.run(run())


def test_swap_instruction_needs_both_token_accounts():
    async def run():
        _, _, _, pool_state = make_pool_state()
        with pytest.raises(ValueError):
            await pool_state.get_swap_instruction(True, FakeWallet(["USDC"]))

    asyncio.run(run())
