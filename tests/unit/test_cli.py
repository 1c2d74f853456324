"""
CLI Tests
=========
Offline commands only: fee claim preview and manual creation price.
"""

from argparse import Namespace

import pytest

from src.liquidity.cli import claimable_command, create_quote_command


@pytest.mark.unit
class TestClaimableCommand:

    def test_partner_share_preview(self, capsys):
        args = Namespace(vault=None, total=1_000, treasury="T" * 32, partner="P" * 32, caller="P" * 32, amount=100.0)

        claimable_command(args)
        out = capsys.readouterr().out

        assert "Treasury share:   500" in out
        assert "PARTNER (claimable 500)" in out
        assert "Distribute total: 200.000000" in out
        assert "After margin:     199" in out

    def test_without_amount(self, capsys):
        args = Namespace(vault="vault-1", total=9, treasury="T" * 32, partner=None, caller="T" * 32, amount=None)

        claimable_command(args)
        out = capsys.readouterr().out

        assert "TREASURY (claimable 9)" in out
        assert "After margin" not in out


@pytest.mark.unit
class TestCreateQuoteCommand:

    @pytest.mark.asyncio
    async def test_manual_price_inverted(self, capsys, mint_pair):
        low, high = mint_pair
        args = Namespace(source_mint=high, quote_mint=low, price=0.02)

        await create_quote_command(args)
        out = capsys.readouterr().out

        assert f"Token X (A):     {low}" in out
        assert "Stored (Y per X): 50  [inverted]" in out
