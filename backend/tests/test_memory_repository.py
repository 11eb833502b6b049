import pytest

from quotedesk.errors import ConcurrentModification
from quotedesk.repositories.memory import InMemoryRepository
from quotedesk.schemas.account import Company


@pytest.fixture
def repo() -> InMemoryRepository[Company]:
    return InMemoryRepository[Company]("company")


async def test_create_sets_first_row_version(repo):
    saved = await repo.save(Company(id="c1", name="Acme"), expected_version=None)
    assert saved.row_version == 1
    assert (await repo.get("c1")).name == "Acme"


async def test_create_twice_conflicts(repo):
    await repo.save(Company(id="c1", name="Acme"), expected_version=None)
    with pytest.raises(ConcurrentModification):
        await repo.save(Company(id="c1", name="Other"), expected_version=None)


async def test_update_requires_current_version(repo):
    saved = await repo.save(Company(id="c1", name="Acme"), expected_version=None)
    updated = await repo.save(saved.model_copy(update={"name": "Acme Ltd"}), expected_version=1)
    assert updated.row_version == 2

    with pytest.raises(ConcurrentModification):
        await repo.save(saved.model_copy(update={"name": "Stale"}), expected_version=1)
    with pytest.raises(ConcurrentModification):
        await repo.save(Company(id="missing", name="X"), expected_version=1)


async def test_returned_entities_are_copies(repo):
    saved = await repo.save(Company(id="c1", name="Acme"), expected_version=None)
    saved.name = "Mutated"
    fetched = await repo.get("c1")
    fetched.next_receipt_number = 99
    assert (await repo.get("c1")).name == "Acme"
    assert (await repo.get("c1")).next_receipt_number == 1


async def test_query_filters(repo):
    await repo.save(Company(id="c1", name="Acme"), expected_version=None)
    await repo.save(Company(id="c2", name="Globex"), expected_version=None)
    found = await repo.query(lambda c: c.name.startswith("G"))
    assert [c.id for c in found] == ["c2"]
    assert await repo.get("nope") is None
