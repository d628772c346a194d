"""
Tests for the forum-rbac command line.
"""
import pytest
import yaml
from click.testing import CliRunner

from forum.cli.cli_main import cli


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def config_file(tmp_path):
    path = tmp_path / "forum.yaml"
    path.write_text(yaml.safe_dump({
        'rbac': {
            'routes': {
                '/admin': {'role': 'admin'},
                '/api/reports': {'permission': 'view_reports'},
            },
        },
        'seed': {
            'users': [
                {'username': 'admin', 'email': 'admin@example.com', 'role': 'admin'},
                {'username': 'test_user', 'email': 'user@example.com'},
            ],
        },
    }))
    return str(path)


class TestPermissionsCommand:
    """Tests for the permissions command."""

    def test_lists_role_permissions(self, runner):
        """Test a role's permissions are listed."""
        result = runner.invoke(cli, ['permissions', 'moderator'])
        assert result.exit_code == 0
        assert 'moderator (level 1): 21 permissions' in result.output
        assert '  lock_forum' in result.output
        assert 'view_logs' not in result.output

    def test_unknown_role(self, runner):
        """Test an undefined role is an error."""
        result = runner.invoke(cli, ['permissions', 'owner'])
        assert result.exit_code != 0
        assert "Unknown role 'owner'" in result.output


class TestCheckCommand:
    """Tests for the check command."""

    @pytest.mark.parametrize("role,path,exit_code,verdict", [
        ('admin', '/admin/users', 0, 'ALLOW'),
        ('user', '/admin', 1, 'DENY'),
        ('moderator', '/api/users', 0, 'ALLOW'),
        ('user', '/somewhere', 0, 'ALLOW'),
    ])
    def test_default_table(self, runner, role, path, exit_code, verdict):
        """Test verdicts and exit codes against the built-in table."""
        result = runner.invoke(cli, ['check', role, path])
        assert result.exit_code == exit_code
        assert result.output.startswith(f"{verdict} {role} {path}")

    def test_reports_matched_prefix(self, runner):
        result = runner.invoke(cli, ['check', 'user', '/somewhere'])
        assert '(matched: none)' in result.output

    def test_configured_table(self, runner, config_file):
        """Test a route table from a config file."""
        result = runner.invoke(cli, ['check', 'moderator', '/api/reports/1', '-c', config_file])
        assert result.exit_code == 0
        assert '(matched: /api/reports)' in result.output

        result = runner.invoke(cli, ['check', 'user', '/api/reports', '-c', config_file])
        assert result.exit_code == 1

    def test_missing_config(self, runner, tmp_path):
        """Test a config path that does not exist."""
        result = runner.invoke(cli, ['check', 'user', '/admin', '-c', str(tmp_path / 'nope.yaml')])
        assert result.exit_code != 0
        assert 'Config file not found' in result.output


class TestRoutesCommand:
    """Tests for the routes command."""

    def test_default_routes(self, runner):
        """Test the built-in table is printed in order."""
        result = runner.invoke(cli, ['routes'])
        assert result.exit_code == 0
        assert '/moderator' in result.output
        assert 'admin | moderator' in result.output
        assert '/api/health' in result.output

    def test_invalid_config(self, runner, tmp_path):
        """Test a table naming an undefined role."""
        path = tmp_path / "bad.yaml"
        path.write_text(yaml.safe_dump({'rbac': {'routes': {'/admin': {'role': 'owner'}}}}))
        result = runner.invoke(cli, ['routes', '-c', str(path)])
        assert result.exit_code != 0

    @pytest.mark.parametrize("content", [
        "rbac: [unclosed\n",
        "rbac:\n  routes:\n    - /admin\n    - /moderator\n",
        "rbac:\n  - /admin\n",
    ])
    def test_malformed_config_is_a_clean_error(self, runner, tmp_path, content):
        """Test unparseable or wrongly shaped configs exit with a message."""
        path = tmp_path / "malformed.yaml"
        path.write_text(content)
        result = runner.invoke(cli, ['routes', '-c', str(path)])
        assert result.exit_code == 1
        assert result.output.startswith("Error:")
        assert not isinstance(result.exception, (ValueError, TypeError))


class TestSeedCommand:
    """Tests for the seed command."""

    def test_seed(self, runner, config_file):
        """Test seed users are reported as created."""
        result = runner.invoke(cli, ['seed', '-c', config_file])
        assert result.exit_code == 0
        assert 'created: admin <admin@example.com> role=admin' in result.output
        assert 'created: test_user <user@example.com> role=user' in result.output

    def test_requires_config(self, runner):
        result = runner.invoke(cli, ['seed'])
        assert result.exit_code != 0
