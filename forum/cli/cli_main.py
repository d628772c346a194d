import sys

import click

from forum.utils.config_access import ConfigNotReadyError, get_rbac_config, load_config
from forum.utils.errors import ValidationError
from forum.utils.logging import get_logger, setup_cli_logging
from forum.utils.rbac.registry import RBACConfigError, RBACRegistry
from forum.utils.rbac.roles import VALID_ROLES, get_role_level, get_role_permissions
from forum.utils.user_service import UserService


def _load(config_file):
    try:
        config = load_config(config_file)
        registry = RBACRegistry(get_rbac_config(config))
    except (ConfigNotReadyError, RBACConfigError) as e:
        raise click.ClickException(str(e))
    return config, registry


@click.group()
def cli():
    pass


@click.command()
@click.option('--config', '-c', 'config_file', type=str, help="Path to forum YAML config")
@click.option('--host', type=str, default=None, help="Bind address (overrides config)")
@click.option('--port', '-p', type=int, default=None, help="Port (overrides config)")
@click.option('--verbosity', '-v', type=int, default=3, help="Logging verbosity level (0-4)")
def run(config_file, host, port, verbosity):
    """Serve the forum app."""
    from forum.interfaces.forum_app.app import create_app

    setup_cli_logging(verbosity=verbosity)
    logger = get_logger(__name__)

    config, registry = _load(config_file)
    app_config = config.get('app', {})
    app = create_app(config, registry=registry)

    host = host or app_config.get('host', '0.0.0.0')
    port = port or app_config.get('port', 5000)
    logger.info(f"Starting forum app on {host}:{port}")
    app.run(host=host, port=port, debug=bool(app_config.get('debug', False)))


@click.command()
@click.option('--config', '-c', 'config_file', type=str, help="Path to forum YAML config")
def routes(config_file):
    """Print the route access table in match order."""
    _, registry = _load(config_file)

    click.echo("Protected routes (first match wins):")
    for row in registry.describe_routes():
        value = row['value']
        if isinstance(value, (list, tuple)):
            value = ' | '.join(value)
        click.echo(f"  {row['prefix']:<20} {row['requirement']:<13} {value}")

    click.echo("Public routes:")
    for route in registry.public_routes:
        click.echo(f"  {route}")


@click.command()
@click.argument('role')
def permissions(role):
    """List the permissions granted to ROLE."""
    perms = get_role_permissions(role)
    if not perms:
        raise click.ClickException(f"Unknown role '{role}'. Valid roles: {', '.join(VALID_ROLES)}")

    click.echo(f"{role} (level {get_role_level(role)}): {len(perms)} permissions")
    for perm in sorted(perms):
        click.echo(f"  {perm}")


@click.command()
@click.argument('role')
@click.argument('path')
@click.option('--config', '-c', 'config_file', type=str, help="Path to forum YAML config")
def check(role, path, config_file):
    """Check whether ROLE may access PATH. Exit code 0 = allow, 1 = deny."""
    _, registry = _load(config_file)

    allowed = registry.can_access_route({'role': role}, path)
    matched = registry.matching_route(path)
    verdict = 'ALLOW' if allowed else 'DENY'
    click.echo(f"{verdict} {role} {path} (matched: {matched or 'none'})")
    sys.exit(0 if allowed else 1)


@click.command()
@click.option('--config', '-c', 'config_file', type=str, required=True, help="Path to forum YAML config")
def seed(config_file):
    """Validate the seed users in a config and show what would be created."""
    config, _ = _load(config_file)
    records = (config.get('seed') or {}).get('users') or []
    if not records:
        raise click.ClickException("No seed.users defined in config")

    service = UserService()
    try:
        results = service.seed_users(records)
    except ValidationError as e:
        raise click.ClickException(e.message)

    for user, created in results:
        action = 'created' if created else 'updated'
        click.echo(f"{action}: {user.username} <{user.email}> role={user.role}")


cli.add_command(run)
cli.add_command(routes)
cli.add_command(permissions)
cli.add_command(check)
cli.add_command(seed)


def main():
    """
    Entrypoint for the forum-rbac CLI.
    """
    cli()


if __name__ == '__main__':
    main()
