# Overview: Flask CLI command groups for bootstrap, inspection, and maintenance.

# backend/reseller_ops/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Use: python -m flask --app reseller_ops <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask --app reseller_ops system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Environment management (MULTI-TENANT):
# - python -m flask --app reseller_ops envs list
#   List all environments with member and product counts.
# - python -m flask --app reseller_ops envs create --name "Acme Resale" --slug acme --admin-user alice
#   Create a new environment (tenant); --admin-user gets reseller_manager.
# - python -m flask --app reseller_ops envs add-member --slug acme --user-id bob --role reseller_staff
#   Add or re-role a membership. Omit --slug for a system-level membership.
#
# Demo data:
# - python -m flask --app reseller_ops demo seed
#   Create the demo environment with sample locations, products and sales.
#
# Cache inspection:
# - python -m flask --app reseller_ops cache stats
#   Print hit/miss counters of this process's cache store.

import click
from flask.cli import with_appcontext

from .extensions import db, get_cache_store
from .models import Environment, Membership, Product, MEMBERSHIP_ROLES
from .services import environment_service, seed_service
from .services.tenant_service import TenantAccessError, get_environment_by_slug
from .validation import ConflictError, ValidationError


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Skip confirmation')
@with_appcontext
def reset_db(yes):
    """
    DANGER: Drop all tables and recreate schema.

    This will DELETE ALL DATA!
    """
    if not yes:
        click.confirm("WARN This will DELETE ALL DATA. Are you sure?", abort=True)

    click.echo("DELETE  Dropping all tables...")
    db.drop_all()

    click.echo("BUILD  Creating all tables...")
    db.create_all()

    get_cache_store().clear()
    click.echo("PASS Database reset complete. Run 'python -m flask demo seed' for sample data.")


# =============================================================================
# ENVIRONMENT MANAGEMENT COMMANDS (MULTI-TENANT)
# =============================================================================

@click.group('envs')
def envs_group():
    """Environment (tenant) management commands."""


@envs_group.command('list')
@with_appcontext
def list_envs():
    """List all environments."""
    envs = db.session.query(Environment).order_by(Environment.name.asc()).all()

    if not envs:
        click.echo("No environments found.")
        return

    click.echo("\n" + "="*90)
    click.echo(f"{'Slug':<20} {'Name':<30} {'Members':<9} {'Products':<9} {'ID'}")
    click.echo("="*90)

    for env in envs:
        member_count = db.session.query(Membership).filter_by(environment_id=env.id).count()
        product_count = db.session.query(Product).filter_by(environment_id=env.id).count()
        click.echo(f"{env.slug:<20} {env.name:<30} {member_count:<9} {product_count:<9} {env.id}")

    click.echo("="*90 + "\n")


@envs_group.command('create')
@click.option('--name', required=True, help='Environment name')
@click.option('--slug', required=True, help='URL slug (unique)')
@click.option('--description', default=None, help='Optional description')
@click.option('--admin-user', default=None, help='User id to make reseller_manager')
@with_appcontext
def create_env_cli(name, slug, description, admin_user):
    """
    Create a new environment (tenant).

    The CLI runs with operator rights, so no system-admin membership is needed.
    """
    if db.session.query(Environment.id).filter_by(slug=slug).first():
        click.echo(f"FAIL Environment with slug '{slug}' already exists")
        return

    env = Environment(name=name, slug=slug, description=description, created_by=admin_user)
    db.session.add(env)
    db.session.commit()
    click.echo(f"PASS Created environment: {env.name} (slug: {env.slug}, ID: {env.id})")

    if admin_user:
        environment_service.add_member(
            environment_id=env.id, user_id=admin_user, role=environment_service.CREATOR_ROLE
        )
        click.echo(f"PASS {admin_user} is now {environment_service.CREATOR_ROLE} of {env.slug}")


@envs_group.command('add-member')
@click.option('--slug', default=None, help='Environment slug (omit for a system-level membership)')
@click.option('--user-id', required=True, help='User id asserted by the identity provider')
@click.option('--role', required=True, type=click.Choice(MEMBERSHIP_ROLES), help='Membership role')
@with_appcontext
def add_member_cli(slug, user_id, role):
    """Add a membership, or change the role of an existing one."""
    environment_id = None
    if slug:
        try:
            environment_id = get_environment_by_slug(slug).id
        except TenantAccessError:
            click.echo(f"FAIL Environment '{slug}' not found")
            return

    try:
        member = environment_service.add_member(environment_id=environment_id, user_id=user_id, role=role)
    except (ValidationError, ConflictError) as e:
        click.echo(f"FAIL {e}")
        return

    scope = slug or "system"
    click.echo(f"PASS {member['user_id']} -> {member['role']} ({scope})")


# =============================================================================
# DEMO DATA
# =============================================================================

@click.group('demo')
def demo_group():
    """Demo environment commands."""


@demo_group.command('seed')
@with_appcontext
def seed_demo_cli():
    """Seed the demo environment (skipped if it already has products)."""
    result = seed_service.seed_demo_data()
    if result["skipped"]:
        click.echo(f"WARN  Demo environment {result['environment_id']} already has products, skipping...")
        return
    click.echo(
        f"PASS Seeded demo environment {result['environment_id']}: "
        f"{result['locations']} locations, {result['products']} products"
    )


# =============================================================================
# CACHE
# =============================================================================

@click.group('cache')
def cache_group():
    """Cache inspection commands."""


@cache_group.command('stats')
@with_appcontext
def cache_stats_cli():
    """
    Print cache counters.

    The store lives in process memory, so a fresh CLI process reports zeros;
    use GET /api/cache/stats for a running server.
    """
    stats = get_cache_store().monitor.get_stats()
    click.echo(f"Hits:          {stats['total_hits']}")
    click.echo(f"Misses:        {stats['total_misses']}")
    click.echo(f"Invalidations: {stats['total_invalidations']}")
    click.echo(f"Hit rate:      {stats['overall_hit_rate']:.2f}%")
    for key in stats["cache_keys"]:
        click.echo(f"  - {key}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(envs_group)  # Multi-tenant environment management
    app.cli.add_command(demo_group)
    app.cli.add_command(cache_group)
