"""CLI command tests (flask catalog / stats / queue)."""

from hallqueue.services import catalog_service


def test_catalog_add_and_list(app, db_session):
    runner = app.test_cli_runner()

    added = runner.invoke(args=["catalog", "add", "--name", "Indigency", "--template", "indigency", "--price-cents", "0"])
    listed = runner.invoke(args=["catalog", "list"])

    assert added.exit_code == 0
    assert "PASS Created service type Indigency" in added.output
    assert "Indigency" in listed.output


def test_catalog_add_duplicate_fails(app, clearance):
    result = app.test_cli_runner().invoke(
        args=["catalog", "add", "--name", "BARANGAY CLEARANCE", "--template", "x"]
    )

    assert result.exit_code == 1
    assert result.output.startswith("FAIL")


def test_catalog_toggle(app, clearance):
    result = app.test_cli_runner().invoke(args=["catalog", "toggle", str(clearance.id)])

    assert result.exit_code == 0
    assert "inactive" in result.output
    assert catalog_service.get_service_type(clearance.id).is_active is False


def test_stats_reconcile_reports_each_dimension(app, make_person):
    make_person(purok="Purok 1")

    result = app.test_cli_runner().invoke(args=["stats", "reconcile"])

    assert result.exit_code == 0
    assert "Purok 1: in sync" in result.output
    assert "0 drifted" in result.output


def test_queue_display(app, db_session):
    result = app.test_cli_runner().invoke(args=["queue", "display"])

    assert result.exit_code == 0
    assert "WAITING (0)" in result.output
