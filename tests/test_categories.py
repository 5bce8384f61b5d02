import pytest
from sqlalchemy import create_engine
from sqlalchemy.orm import sessionmaker

from database import Base
from errors import NotFoundError, PermissionDeniedError, ValidationError
from schemas import CategoryIn, PayerIn, PlaceIn
from services import CategoryService, PayerService, PlaceService, UserService


ALICE = "alice@example.com"
BOB = "bob@example.com"


def make_session():
    engine = create_engine(
        "sqlite+pysqlite:///:memory:", connect_args={"check_same_thread": False}
    )
    Base.metadata.create_all(engine)
    SessionLocal = sessionmaker(bind=engine, autoflush=False, expire_on_commit=False)
    return SessionLocal()


def test_personal_categories_are_listed_for_their_owner_only() -> None:
    session = make_session()
    alice = CategoryService(session, ALICE)
    alice.create(CategoryIn(name="Groceries", sort_order=2))
    alice.create(CategoryIn(name="Rent", sort_order=1))
    alice.create(CategoryIn(name="Games", sort_order=3, personal=True))

    assert [c.name for c in alice.list_active()] == ["Rent", "Groceries", "Games"]
    assert [c.name for c in CategoryService(session, BOB).list_active()] == [
        "Rent",
        "Groceries",
    ]


def test_inactive_categories_only_in_full_listing() -> None:
    session = make_session()
    service = CategoryService(session, ALICE)
    service.create(CategoryIn(name="Old", is_active=False))
    service.create(CategoryIn(name="Current"))

    assert [c.name for c in service.list_active()] == ["Current"]
    assert {c.name for c in service.list_all()} == {"Old", "Current"}


def test_other_user_cannot_modify_personal_category() -> None:
    session = make_session()
    personal = CategoryService(session, ALICE).create(
        CategoryIn(name="Games", personal=True)
    )
    bob = CategoryService(session, BOB)

    with pytest.raises(PermissionDeniedError):
        bob.update(personal.id, CategoryIn(name="Mine now"))
    with pytest.raises(PermissionDeniedError):
        bob.delete(personal.id)

    assert CategoryService(session, ALICE).list_active()[0].name == "Games"


def test_owner_and_anyone_can_modify_allowed_categories() -> None:
    session = make_session()
    alice = CategoryService(session, ALICE)
    personal = alice.create(CategoryIn(name="Games", personal=True))
    shared = alice.create(CategoryIn(name="Food"))

    updated = alice.update(
        personal.id, CategoryIn(name="Hobbies", exclude_from_breakdown=True)
    )
    assert updated.name == "Hobbies"
    assert updated.exclude_from_breakdown is True
    assert updated.owner == ALICE

    CategoryService(session, BOB).update(shared.id, CategoryIn(name="Meals"))
    CategoryService(session, BOB).delete(shared.id)
    assert [c.name for c in alice.list_all()] == ["Hobbies"]


def test_category_validation_and_missing_ids() -> None:
    session = make_session()
    service = CategoryService(session, ALICE)

    with pytest.raises(ValidationError):
        service.create(CategoryIn(name="   "))
    with pytest.raises(NotFoundError):
        service.update("missing", CategoryIn(name="X"))
    with pytest.raises(NotFoundError):
        service.delete("missing")


def test_payer_identifier_is_its_name() -> None:
    session = make_session()
    service = PayerService(session)
    payer = service.create(PayerIn(name=" Wallet ", track_balance=True))

    assert payer.id == "Wallet"
    with pytest.raises(ValidationError):
        service.create(PayerIn(name="Wallet"))

    service.create(PayerIn(name="Card", is_active=False))
    assert [p.name for p in service.list_active()] == ["Wallet"]
    assert len(service.list_all()) == 2

    service.delete("Card")
    with pytest.raises(NotFoundError):
        service.delete("Card")


def test_place_crud() -> None:
    session = make_session()
    service = PlaceService(session)
    place = service.create(PlaceIn(name="Market"))

    renamed = service.update(place.id, PlaceIn(name="Supermarket", sort_order=4))

    assert renamed.name == "Supermarket"
    assert [p.name for p in service.list_active()] == ["Supermarket"]
    service.delete(place.id)
    assert service.list_all() == []
    with pytest.raises(NotFoundError):
        service.update(place.id, PlaceIn(name="Gone"))


def test_user_registration_and_role() -> None:
    session = make_session()
    users = UserService(session)

    assert not users.is_registered(ALICE)
    users.add(ALICE, role="admin")
    users.add(BOB)

    assert users.is_registered(ALICE)
    assert users.get_role(ALICE) == "admin"
    assert users.get_role(BOB) == "user"
    assert users.get_role("stranger@example.com") == "user"
