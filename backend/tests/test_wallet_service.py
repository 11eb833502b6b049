from decimal import Decimal

import pytest

from quotedesk.errors import InsufficientFunds, Unauthorized, ValidationError


async def test_new_account_is_empty(container, agent):
    account = await container.wallet.get_or_create(agent.id, agent.name)
    assert account.wallet_balance == Decimal("0")
    assert account.available_funds == Decimal("0")


async def test_top_up_and_debit(container, agent, staff):
    await container.wallet.top_up(agent.id, Decimal("1000"), "Cheque 0042", staff)
    account = await container.wallet.debit(agent.id, Decimal("400"), "QT-1", staff)
    assert account.wallet_balance == Decimal("600")
    assert [t.amount for t in account.transactions] == [Decimal("1000"), Decimal("-400")]


async def test_debit_beyond_balance_and_credit(container, agent, staff):
    await container.wallet.set_credit_limit(agent.id, Decimal("200"), staff)
    with pytest.raises(InsufficientFunds):
        await container.wallet.debit(agent.id, Decimal("200.01"), "QT-1", staff)


async def test_only_staff_manage_wallets(container, agent):
    with pytest.raises(Unauthorized):
        await container.wallet.top_up(agent.id, Decimal("100"), "self top-up", agent)


async def test_top_up_must_be_positive(container, agent, staff):
    with pytest.raises(ValidationError):
        await container.wallet.top_up(agent.id, Decimal("0"), "nothing", staff)
