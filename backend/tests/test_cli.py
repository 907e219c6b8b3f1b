# Overview: Pytest coverage for the flask perms inspection commands.

import pytest


@pytest.fixture
def runner(app):
    return app.test_cli_runner()


def test_perms_list_by_category(runner):
    result = runner.invoke(args=['perms', 'list', '--category', 'finance'])

    assert result.exit_code == 0
    assert 'CATEGORY FINANCE' in result.output
    assert 'VIEW_BANK_ACCOUNTS' in result.output
    assert 'CREATE_SALE' not in result.output


def test_perms_list_unknown_category(runner):
    result = runner.invoke(args=['perms', 'list', '--category', 'payroll'])
    assert "FAIL Category 'payroll' not found" in result.output


def test_perms_list_role_shows_names(runner):
    result = runner.invoke(args=['perms', 'list', '--role', 'BankVerifier'])

    assert result.exit_code == 0
    assert 'Verify Bank Sale' in result.output
    assert 'Total: 3 permissions' in result.output
