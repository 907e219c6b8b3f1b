# Overview: Flask CLI command groups for bootstrap, inspection, and ledger checks.

# backend/fintab/cli.py
# Commands Legend (run from the backend directory):
# Prereqs:
# - Activate your virtualenv.
# - Set FLASK_APP to wsgi.py (PowerShell: $env:FLASK_APP="wsgi.py").
# - Use: python -m flask <group> <command> [options]
#
# System bootstrap/repair:
# - python -m flask system init
#   Create all tables (idempotent).
# - python -m flask system reset-db --yes
#   DEV/TEST only: drop and recreate all tables (deletes all data).
#
# Users:
# - python -m flask users create --email owner@fintab.local --name "Owner" --password "Password123!"
# - python -m flask users list
# - python -m flask users promote-super-admin owner@fintab.local
#
# Businesses (MULTI-TENANT):
# - python -m flask businesses create --name "Corner Shop" --owner-email owner@fintab.local
# - python -m flask businesses list
#
# Permissions:
# - python -m flask perms list [--role Cashier] [--category FINANCE]
# - python -m flask perms check owner@fintab.local 1 CREATE_SALE
#
# Workflow roles:
# - python -m flask workflow assign 1 cash_verifier clerk@fintab.local
# - python -m flask workflow list 1
#
# Ledger:
# - python -m flask ledger verify [--business-id 1]
#   Check balance == sum(transactions) for every bank account.

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import BankAccount, Business, Membership, User
from .permissions import (
    DEFAULT_ROLE_PERMISSIONS,
    PERMISSION_DEFINITIONS,
    UNRESTRICTED_ROLES,
    get_permission_definition,
    get_permissions_by_category,
    get_role_permission_codes,
)
from .services import permission_service
from .services.auth_service import AccountError, PasswordValidationError, find_user_by_email, sign_up
from .services.bank_service import verify_ledger
from .services.tenant_service import TenantError, register_business
from .services.workflow_role_service import WorkflowRoleError, assign_workflow_role, list_workflow_roles


@click.group('system')
def system_group():
    """System bootstrap and repair commands."""


@system_group.command('init')
@with_appcontext
def init_system():
    """Create every table that does not exist yet."""
    db.create_all()
    click.echo("PASS Tables created. Next: python -m flask users create")


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

    click.echo("PASS Database reset complete. Run 'python -m flask system init' to initialize.")


# =============================================================================
# USERS
# =============================================================================

@click.group('users')
def users_group():
    """User management commands."""


@users_group.command('create')
@click.option('--email', prompt=True)
@click.option('--name', 'display_name', prompt=True)
@click.option('--password', prompt=True, hide_input=True, confirmation_prompt=True)
@with_appcontext
def create_user_cli(email, display_name, password):
    """Create a user account."""
    try:
        user = sign_up(email, password, display_name)
    except (AccountError, PasswordValidationError) as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created user {user.email} (ID: {user.id})")


@users_group.command('list')
@with_appcontext
def list_users():
    """List all users with their memberships."""
    users = db.session.query(User).order_by(User.id).all()
    if not users:
        click.echo("No users found.")
        return

    click.echo("\n" + "="*80)
    click.echo(f"{'ID':<5} {'Email':<32} {'Name':<22} {'Active':<7} {'Businesses'}")
    click.echo("="*80)
    for user in users:
        memberships = db.session.query(Membership).filter_by(user_id=user.id).all()
        seats = ", ".join(f"{m.business_id}:{m.role}" for m in memberships) or "-"
        flag = " (super admin)" if user.is_super_admin else ""
        click.echo(f"{user.id:<5} {user.email:<32} {user.display_name:<22} {'Yes' if user.is_active else 'No':<7} {seats}{flag}")
    click.echo("="*80 + "\n")


@users_group.command('promote-super-admin')
@click.argument('email')
@with_appcontext
def promote_super_admin(email):
    """Give a user platform-wide access to every business."""
    user = find_user_by_email(email)
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return
    user.is_super_admin = True
    db.session.commit()
    click.echo(f"PASS {user.email} is now a super admin")


# =============================================================================
# BUSINESSES (MULTI-TENANT)
# =============================================================================

@click.group('businesses')
def businesses_group():
    """Business (tenant) management commands."""


@businesses_group.command('create')
@click.option('--name', required=True, help='Business name')
@click.option('--owner-email', required=True, help='Existing user who becomes Owner')
@click.option('--type', 'business_type', default=None, help='Business type')
@with_appcontext
def create_business_cli(name, owner_email, business_type):
    """Create a business and seat its owner."""
    owner = find_user_by_email(owner_email)
    if not owner:
        click.echo(f"FAIL User '{owner_email}' not found")
        return
    try:
        business = register_business(owner=owner, name=name, business_type=business_type)
    except TenantError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS Created business {business.name} (ID: {business.id}) owned by {owner.email}")


@businesses_group.command('list')
@with_appcontext
def list_businesses():
    """List all businesses."""
    businesses = db.session.query(Business).order_by(Business.id).all()
    if not businesses:
        click.echo("No businesses found.")
        return

    click.echo("\n" + "="*72)
    click.echo(f"{'ID':<5} {'Name':<30} {'Active':<8} {'Members':<8} {'Bank accounts'}")
    click.echo("="*72)
    for business in businesses:
        members = db.session.query(Membership).filter_by(business_id=business.id).count()
        accounts = db.session.query(BankAccount).filter_by(business_id=business.id).count()
        click.echo(f"{business.id:<5} {business.name:<30} {'Yes' if business.is_active else 'No':<8} {members:<8} {accounts}")
    click.echo("="*72 + "\n")


# =============================================================================
# PERMISSIONS
# =============================================================================

@click.group('perms')
def perms_group():
    """Permission inspection commands."""


@perms_group.command('list')
@click.option('--role', help='Filter by business role')
@click.option('--category', help='Filter by permission category (SALES, FINANCE, ...)')
@with_appcontext
def list_permissions_cli(role, category):
    """List the permission catalogue, one category of it, or the defaults of one role."""
    if role:
        if role not in DEFAULT_ROLE_PERMISSIONS and role not in UNRESTRICTED_ROLES:
            click.echo(f"FAIL Role '{role}' not found")
            return
        codes = sorted(get_role_permission_codes(role))
        click.echo(f"\nPermissions for role: {role}")
        click.echo("-"*60)
        for code in codes:
            definition = get_permission_definition(code)
            click.echo(f"  {code:<28} {definition['name']}")
        click.echo(f"\n Total: {len(codes)} permissions\n")
        return

    if category:
        definitions = get_permissions_by_category(category.upper())
        if not definitions:
            click.echo(f"FAIL Category '{category}' not found")
            return
    else:
        definitions = PERMISSION_DEFINITIONS

    current_category = None
    for code, name, _description, perm_category in sorted(definitions, key=lambda d: (d[3], d[0])):
        if perm_category != current_category:
            click.echo(f"\nCATEGORY {perm_category}")
            click.echo("-"*60)
            current_category = perm_category
        click.echo(f"  {code:<28} {name}")
    click.echo(f"\n Total: {len(definitions)} permissions\n")


@perms_group.command('check')
@click.argument('email')
@click.argument('business_id', type=int)
@click.argument('permission_code')
@with_appcontext
def check_permission_cli(email, business_id, permission_code):
    """Check if a user has a permission inside one business."""
    user = find_user_by_email(email)
    if not user:
        click.echo(f"FAIL User '{email}' not found")
        return

    membership = permission_service.get_membership(user.id, business_id)
    if permission_service.has_access(user, membership, permission_code):
        click.echo(f"PASS User '{email}' HAS permission '{permission_code}' in business {business_id}")
    else:
        click.echo(f"FAIL User '{email}' DOES NOT HAVE permission '{permission_code}' in business {business_id}")


# =============================================================================
# WORKFLOW ROLES
# =============================================================================

@click.group('workflow')
def workflow_group():
    """Sign-off duty assignment commands."""


@workflow_group.command('assign')
@click.argument('business_id', type=int)
@click.argument('role_key')
@click.argument('email')
@with_appcontext
def assign_workflow_cli(business_id, role_key, email):
    """Assign a workflow role to a member."""
    business = db.session.get(Business, business_id)
    user = find_user_by_email(email)
    if not business or not user:
        click.echo("FAIL Business or user not found")
        return
    try:
        assign_workflow_role(business=business, role_key=role_key, user_id=user.id, assigned_by_user_id=None)
    except WorkflowRoleError as e:
        click.echo(f"FAIL {e}")
        return
    click.echo(f"PASS {email} now holds {role_key} in business {business_id}")


@workflow_group.command('list')
@click.argument('business_id', type=int)
@with_appcontext
def list_workflow_cli(business_id):
    """Show every workflow role and its holders."""
    for role_key, holders in list_workflow_roles(business_id).items():
        names = ", ".join(h["user_name"] or str(h["user_id"]) for h in holders) or "(unassigned)"
        click.echo(f"  {role_key:<22} {names}")


# =============================================================================
# LEDGER
# =============================================================================

@click.group('ledger')
def ledger_group():
    """Bank ledger consistency commands."""


@ledger_group.command('verify')
@click.option('--business-id', type=int, default=None)
@with_appcontext
def verify_ledger_cli(business_id):
    """Check balance == sum(transactions) for each bank account."""
    query = db.session.query(BankAccount)
    if business_id:
        query = query.filter_by(business_id=business_id)

    failures = 0
    for account in query.order_by(BankAccount.id).all():
        result = verify_ledger(account)
        if result["ok"]:
            click.echo(f"PASS account {account.id} ({account.account_name}) balance={result['balance_cents']}")
        else:
            failures += 1
            click.echo(
                f"FAIL account {account.id} ({account.account_name}) "
                f"balance={result['balance_cents']} ledger={result['ledger_sum_cents']}"
            )
    if failures:
        raise SystemExit(1)


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(businesses_group)
    app.cli.add_command(perms_group)
    app.cli.add_command(workflow_group)
    app.cli.add_command(ledger_group)
