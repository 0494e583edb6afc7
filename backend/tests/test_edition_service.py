from datetime import timedelta

import pytest
from sqlalchemy.exc import OperationalError, SQLAlchemyError

from edition_ledger.models import LineItem, EditionEvent, LINE_ITEM_STATUS_REMOVED
from edition_ledger.services import edition_service, verification_service
from edition_ledger.services.edition_service import EditionStoreError, plan_edition_numbers
from edition_ledger.services.line_item_repository import LineItemRepository
from tests.conftest import BASE_TIME, editions_by_item


def test_assigns_contiguous_numbers_in_purchase_order(db_session, factory):
    late = factory.item(minutes=30)
    early = factory.item(minutes=0)
    middle = factory.item(minutes=10)

    result = edition_service.assign_edition_numbers("P1")

    assert result.edition_total == 3
    assert result.writes == 3
    assert editions_by_item(db_session, "P1") == {early.id: 1, middle.id: 2, late.id: 3}
    totals = {i.edition_total for i in db_session.query(LineItem).filter_by(product_id="P1")}
    assert totals == {3}


def test_equal_purchase_times_break_ties_by_id(db_session, factory):
    first = factory.item(minutes=5)
    second = factory.item(minutes=5)
    third = factory.item(minutes=5)

    edition_service.assign_edition_numbers("P1")

    assert editions_by_item(db_session, "P1") == {first.id: 1, second.id: 2, third.id: 3}


def test_second_run_writes_nothing(db_session, factory):
    for minutes in (0, 1, 2):
        factory.item(minutes=minutes)

    edition_service.assign_edition_numbers("P1")
    db_session.expire_all()
    versions = {i.id: i.version_id for i in db_session.query(LineItem).all()}

    again = edition_service.assign_edition_numbers("P1")

    assert again.writes == 0
    assert again.changes == []
    assert again.edition_total == 3
    db_session.expire_all()
    assert {i.id: i.version_id for i in db_session.query(LineItem).all()} == versions


def test_empty_product_is_a_no_op(db_session, factory):
    factory.item(product_id="OTHER")

    result = edition_service.assign_edition_numbers("P1")

    assert result.edition_total == 0
    assert result.writes == 0
    assert db_session.query(EditionEvent).count() == 0


def test_only_differing_rows_are_written(db_session, factory):
    factory.item(minutes=0, edition_number=1, edition_total=3)
    factory.item(minutes=1, edition_number=2, edition_total=3)
    newcomer = factory.item(minutes=2)

    result = edition_service.assign_edition_numbers("P1")

    assert result.writes == 1
    assert [c.line_item_id for c in result.changes] == [newcomer.id]
    assert editions_by_item(db_session, "P1")[newcomer.id] == 3


def test_removed_units_are_not_numbered(db_session, factory):
    kept = factory.item(minutes=0)
    gone = factory.item(minutes=1, status=LINE_ITEM_STATUS_REMOVED, removed_reason="refunded")
    later = factory.item(minutes=2)

    result = edition_service.assign_edition_numbers("P1")

    assert result.edition_total == 2
    assert editions_by_item(db_session, "P1") == {kept.id: 1, gone.id: None, later.id: 2}


def test_first_numbering_issues_certificate_once(db_session, factory):
    early = factory.item(minutes=0)
    late = factory.item(minutes=1)

    edition_service.assign_edition_numbers("P1")
    db_session.expire_all()
    late = db_session.query(LineItem).filter_by(id=late.id).first()
    token = late.certificate_token

    assert token
    assert late.certificate_url == f"https://collectors.example.com/certificate/{late.id}"
    assert late.certificate_generated_at is not None

    # Renumbering #2 -> #1 keeps the certificate
    gone = db_session.query(LineItem).filter_by(id=early.id).first()
    gone.status = LINE_ITEM_STATUS_REMOVED
    gone.edition_number = None
    db_session.commit()
    edition_service.assign_edition_numbers("P1")

    db_session.expire_all()
    late = db_session.query(LineItem).filter_by(id=late.id).first()
    assert late.edition_number == 1
    assert late.certificate_token == token


def test_numbering_changes_are_logged(db_session, factory):
    item = factory.item(minutes=0)

    edition_service.assign_edition_numbers("P1", source="cli")

    events = db_session.query(EditionEvent).filter_by(line_item_id=item.id).all()
    assert [(e.event_type, e.edition_number, e.source) for e in events] == [
        ("edition_assigned", 1, "cli"),
    ]


def test_plan_is_pure_and_follows_given_order():
    a = LineItem(id=1, created_at=BASE_TIME, edition_number=2, edition_total=2)
    b = LineItem(id=2, created_at=BASE_TIME - timedelta(hours=1), edition_number=1, edition_total=2)

    assert plan_edition_numbers([b, a]) == []

    c = LineItem(id=3, created_at=BASE_TIME - timedelta(hours=2))
    updates = plan_edition_numbers([c, b, a])

    assert [(u.line_item_id, u.previous_number, u.edition_number, u.edition_total) for u in updates] == [
        (3, None, 1, 3),
        (2, 1, 2, 3),
        (1, 2, 3, 3),
    ]
    assert a.edition_number == 2
    assert c.edition_number is None


def test_store_failure_rolls_back_and_raises(db_session, factory, monkeypatch):
    item = factory.item(minutes=0)

    def boom(self, updates):
        raise SQLAlchemyError("connection reset")

    monkeypatch.setattr(LineItemRepository, "apply_edition_updates", boom)

    with pytest.raises(EditionStoreError):
        edition_service.assign_edition_numbers("P1")

    db_session.expire_all()
    reloaded = db_session.query(LineItem).filter_by(id=item.id).first()
    assert reloaded.edition_number is None
    assert reloaded.certificate_token is None
    assert db_session.query(EditionEvent).count() == 0


def test_lock_conflicts_are_retried(db_session, factory, monkeypatch):
    factory.item(minutes=0)
    original = LineItemRepository.apply_edition_updates
    calls = {"n": 0}

    def flaky(self, updates):
        calls["n"] += 1
        if calls["n"] == 1:
            raise OperationalError("UPDATE line_items", {}, Exception("database is locked"))
        return original(self, updates)

    monkeypatch.setattr(LineItemRepository, "apply_edition_updates", flaky)

    result = edition_service.assign_edition_numbers("P1")

    assert calls["n"] == 2
    assert result.edition_total == 1
    assert result.writes == 1


def test_assign_all_products(db_session, factory):
    factory.item("P1", minutes=0)
    factory.item("P2", minutes=0)
    factory.item("P2", minutes=1)
    factory.item(None, minutes=2)

    results = edition_service.assign_all_products()

    assert {r.product_id: r.edition_total for r in results} == {"P1": 1, "P2": 2}


def test_full_recompute_repairs_drifted_numbering(db_session, factory):
    a = factory.item(minutes=0, edition_number=1, edition_total=2)
    b = factory.item(minutes=1, edition_number=1, edition_total=2)  # duplicate #1
    gone = factory.item(minutes=2, status=LINE_ITEM_STATUS_REMOVED, removed_reason="refunded")
    c = factory.item(minutes=3, edition_number=7, edition_total=2)  # out of range
    d = factory.item(minutes=4, edition_number=3, edition_total=2)  # gap at #2
    e = factory.item(minutes=5)
    assert not verification_service.verify_product("P1").is_consistent

    result = edition_service.assign_edition_numbers("P1")

    assert result.edition_total == 5
    assert editions_by_item(db_session, "P1") == {
        a.id: 1, b.id: 2, gone.id: None, c.id: 3, d.id: 4, e.id: 5,
    }
    totals = {
        i.edition_total
        for i in db_session.query(LineItem).filter_by(product_id="P1", status="active")
    }
    assert totals == {5}
    assert verification_service.verify_product("P1").is_consistent
    assert edition_service.assign_edition_numbers("P1").writes == 0
