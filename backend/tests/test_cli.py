from edition_ledger.models import EditionEvent, LineItem
from edition_ledger.services import edition_service
from tests.conftest import editions_by_item


def test_assign_requires_exactly_one_target(app, db_session):
    runner = app.test_cli_runner()

    neither = runner.invoke(args=["editions", "assign"])
    both = runner.invoke(args=["editions", "assign", "--product-id", "P1", "--all"])

    assert neither.exit_code == 2
    assert both.exit_code == 2
    assert "exactly one of --product-id or --all" in both.output


def test_assign_one_product(app, db_session, factory):
    first = factory.item(minutes=0)
    second = factory.item(minutes=1)

    result = app.test_cli_runner().invoke(args=["editions", "assign", "--product-id", "P1"])

    assert result.exit_code == 0, result.output
    assert "PASS product P1: 2 editions, 2 rows written" in result.output
    assert f"line item {second.id}: - -> 2" in result.output
    assert editions_by_item(db_session, "P1") == {first.id: 1, second.id: 2}
    sources = {e.source for e in db_session.query(EditionEvent).all()}
    assert sources == {"cli"}


def test_assign_all(app, db_session, factory):
    factory.item("P1")
    factory.item("P2")

    result = app.test_cli_runner().invoke(args=["editions", "assign", "--all"])

    assert result.exit_code == 0, result.output
    assert "PASS product P1: 1 editions" in result.output
    assert "PASS product P2: 1 editions" in result.output


def test_verify_passes_on_consistent_data(app, db_session, factory):
    factory.item("P1")
    edition_service.assign_edition_numbers("P1")

    result = app.test_cli_runner().invoke(args=["editions", "verify"])

    assert result.exit_code == 0
    assert "PASS 1 product(s) consistent." in result.output


def test_verify_fails_on_drift(app, db_session, factory):
    factory.item("P1", minutes=0, edition_number=1, edition_total=2)
    factory.item("P1", minutes=1, edition_number=3, edition_total=2)

    result = app.test_cli_runner().invoke(args=["editions", "verify", "--product-id", "P1"])

    assert result.exit_code == 1
    assert "FAIL product P1 (2 active):" in result.output
    assert "missing numbers: 2" in result.output
    assert "unexpected numbers: 3" in result.output
    assert "[edition_mismatch]" in result.output


def test_revoke_and_reactivate(app, db_session, factory):
    a = factory.item(minutes=0)
    b = factory.item(minutes=1)
    edition_service.assign_edition_numbers("P1")
    runner = app.test_cli_runner()

    revoked = runner.invoke(args=["editions", "revoke", str(a.id), "--reason", "refunded"])
    assert revoked.exit_code == 0, revoked.output
    assert f"PASS revoked line item {a.id} (released #1); 1 editions remain." in revoked.output
    assert editions_by_item(db_session, "P1") == {a.id: None, b.id: 1}

    again = runner.invoke(args=["editions", "revoke", str(a.id)])
    assert f"SKIP line item {a.id} already removed." in again.output

    restored = runner.invoke(args=["editions", "reactivate", str(a.id)])
    assert f"PASS reactivated line item {a.id}; 2 editions." in restored.output
    assert editions_by_item(db_session, "P1") == {a.id: 1, b.id: 2}


def test_revoke_rejects_unknown_reason(app, db_session, factory):
    item = factory.item()

    result = app.test_cli_runner().invoke(args=["editions", "revoke", str(item.id), "--reason", "lost"])

    assert result.exit_code == 2
    db_session.expire_all()
    assert db_session.get(LineItem, item.id).status == "active"


def test_revoke_unknown_line_item(app, db_session):
    result = app.test_cli_runner().invoke(args=["editions", "revoke", "999"])

    assert result.exit_code == 0
    assert "SKIP line item 999 not found." in result.output


def test_history(app, db_session, factory):
    item = factory.item()
    edition_service.assign_edition_numbers("P1")
    runner = app.test_cli_runner()

    result = runner.invoke(args=["editions", "history", str(item.id)])
    empty = runner.invoke(args=["editions", "history", "999"])

    assert result.exit_code == 0
    assert "edition_assigned" in result.output
    assert "#1" in result.output
    assert "No events for line item 999." in empty.output


def test_init_db_is_idempotent(app, db_session):
    result = app.test_cli_runner().invoke(args=["system", "init-db"])

    assert result.exit_code == 0
    assert "PASS Tables ready." in result.output
