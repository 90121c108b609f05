"""
CLI commands and default seed data.
"""

from portfolio_status.seed import seed_default_data
from portfolio_status.store import COUNTRIES_KEY, STATUSES_KEY


def test_seed_is_idempotent(store, service):
    first = seed_default_data(store)
    assert first[STATUSES_KEY] == 5
    assert first[COUNTRIES_KEY] == 3

    second = seed_default_data(store)
    assert set(second.values()) == {0}
    assert len(service.get_statuses()) == 5


def test_seed_keeps_edited_records(store, service):
    seed_default_data(store)
    service.save_countries([{"id": "country-1", "name": "Brasil", "code": "BR"}])
    seed_default_data(store)
    assert service.get_countries()[0].name == "Brasil"


def test_seed_data_command(app, service):
    result = app.test_cli_runner().invoke(args=["seed-data"])
    assert result.exit_code == 0, result.output
    assert "statuses: 5 added" in result.output
    assert [s.id for s in service.get_statuses()][-1] == "status-5"


def test_rebuild_view_command(app, seeded):
    result = app.test_cli_runner().invoke(args=["rebuild-view"])
    assert result.exit_code == 0, result.output
    assert "2 products" in result.output


def test_create_admin_command(app, directory):
    runner = app.test_cli_runner()
    result = runner.invoke(
        args=["create-admin", "--name", "Cli Admin", "--email", "cli.admin@company.com", "--password", "Admin@1234"]
    )
    assert result.exit_code == 0, result.output
    user = directory.find_user_by_email("cli.admin@company.com")
    assert user.is_admin

    again = runner.invoke(
        args=["create-admin", "--name", "Cli Admin", "--email", "cli.admin@company.com", "--password", "Admin@1234"]
    )
    assert again.exit_code != 0
