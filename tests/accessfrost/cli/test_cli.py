import pytest
import yaml

import accessfrost
from accessfrost.cli import cli
from accessfrost.error import RepositoryError
from accessfrost.role_scope import AccountRole
from accessfrost_test_utils.in_memory_repository import InMemoryRepository

SPEC = """
access_providers:
  - id: ap1
    name: Analysts
    who:
      users: [alice]
"""


@pytest.fixture
def spec_path(write_spec):
    return write_spec(SPEC)


@pytest.fixture
def repository(mocker):
    repository = InMemoryRepository()
    repository.executed = []
    mocker.patch("accessfrost.cli.sync.SnowflakeConnector")
    mocker.patch("accessfrost.cli.sync.SnowflakeRepository", return_value=repository)
    return repository


def test_version(cli_runner):
    cli_version = cli_runner.invoke(cli, ["--version"])
    assert cli_version.output == f"accessfrost, version {accessfrost.__version__}\n"


@pytest.mark.parametrize("command", ["export", "import", "spec-test"])
def test_command_help(cli_runner, command):
    cli_version = cli_runner.invoke(cli.commands[command], ["--help"])
    cli_output = cli_version.output
    assert (len(cli_output) >= 5) and (cli_output[:5] == "Usage")


def test_spec_test(cli_runner, spec_path):
    result = cli_runner.invoke(cli, ["spec-test", str(spec_path)])

    assert result.exit_code == 0
    assert "Access provider file successfully loaded" in result.output


def test_spec_test_is_the_default_command(cli_runner, spec_path):
    result = cli_runner.invoke(cli, [str(spec_path)])

    assert result.exit_code == 0


def test_spec_test_with_errors(cli_runner, write_spec):
    path = write_spec("access_providers:\n  - name: no id\n", name="invalid.yml")

    result = cli_runner.invoke(cli, ["spec-test", str(path)])

    assert result.exit_code == 1
    assert 'Spec error: access_provider "#0", field "id"' in result.output


def test_export(cli_runner, spec_path, repository, mkdtemp):
    feedback_path = mkdtemp() / "feedback.yml"

    result = cli_runner.invoke(
        cli, ["export", str(spec_path), "--feedback", str(feedback_path)]
    )

    assert result.exit_code == 0
    assert "[SUCCESS] ap1 (ANALYSTS)" in result.output
    assert repository.calls_to("grant_users_to_role") == [
        (AccountRole("ANALYSTS"), ["alice"])
    ]
    assert yaml.safe_load(feedback_path.read_text()) == {
        "feedback": [
            {
                "access_provider": "ap1",
                "external_id": "ANALYSTS",
                "actual_name": "ANALYSTS",
                "type": "role",
            }
        ]
    }


def test_export_dry_run_prints_statements(cli_runner, spec_path, repository):
    repository.executed = ["CREATE ROLE IF NOT EXISTS ANALYSTS"]

    result = cli_runner.invoke(cli, ["export", str(spec_path), "--dry"])

    assert result.exit_code == 0
    assert "[PENDING] CREATE ROLE IF NOT EXISTS ANALYSTS;" in result.output


def test_export_with_errors_exits(cli_runner, spec_path, repository):
    repository.failures["create_role"] = RepositoryError("denied")

    result = cli_runner.invoke(cli, ["export", str(spec_path)])

    assert result.exit_code == 1
    assert "[ERROR] ap1 (ANALYSTS): denied" in result.output


def test_import(cli_runner, spec_path, repository, mkdtemp):
    repository.add_role(AccountRole("REPORTING"))
    output = mkdtemp() / "imported.yml"

    result = cli_runner.invoke(cli, ["import", str(spec_path), "--output", str(output)])

    assert result.exit_code == 0
    assert "Imported 1 access providers" in result.output
    imported = yaml.safe_load(output.read_text())
    assert [ap["id"] for ap in imported["access_providers"]] == ["REPORTING"]
