# Overview: Operator commands (flask <group> <command>) for schema, accounts, and voucher inspection.
#
# Run from backend/ with FLASK_APP=wsgi.py:
#
#   flask system init-db                  create missing tables (safe to repeat)
#   flask system reset-db --yes           drop + recreate every table; local use only
#
#   flask users list [--usertype sponsor]
#   flask users create --email sponsor@example.com --usertype sponsor --name "Acme Foundation"
#   flask users issue-token --email sponsor@example.com    prints a bearer token
#
#   flask vouchers list --sponsor-id 1 [--all]            --all also shows revoked vouchers
#   flask vouchers show 19AGVCBQOA                        merchants + ledger for one code

import click
from flask.cli import with_appcontext

from .extensions import db
from .models import User, Voucher, Transaction
from .models.accounts import VALID_USERTYPES
from .services import account_service, session_service
from .services.voucher_service import VoucherNotFoundError, get_voucher_by_code


@click.group('system')
def system_group():
    """Schema bootstrap."""


@system_group.command('init-db')
@with_appcontext
def init_db():
    """Create all tables that do not exist yet."""
    db.create_all()
    click.echo("PASS Database tables ready")


@system_group.command('reset-db')
@click.option('--yes', is_flag=True, help='Do not ask before dropping')
@with_appcontext
def reset_db(yes):
    """Drop every table and rebuild the schema. All vouchers and ledgers are lost."""
    if not yes:
        click.confirm("WARN Every voucher, account and transaction will be erased. Continue?", abort=True)

    db.drop_all()
    db.create_all()
    click.echo("PASS Schema rebuilt from models")


def _rule(width: int, *, before: bool = False, after: bool = False) -> str:
    return ("\n" if before else "") + "=" * width + ("\n" if after else "")


@click.group('users')
def users_group():
    """Accounts and their bearer tokens."""


@users_group.command('list')
@click.option('--usertype', type=click.Choice(VALID_USERTYPES), help='Filter by usertype')
@with_appcontext
def list_users(usertype):
    """One row per user, with the profile attached to it."""
    query = db.session.query(User)

    if usertype:
        query = query.filter_by(usertype=usertype)

    users = query.order_by(User.id.asc()).all()

    if not users:
        click.echo("No users found.")
        return

    click.echo(_rule(80, before=True))
    click.echo(f"{'ID':<5} {'Email':<35} {'Type':<10} {'Active':<8} {'Profile'}")
    click.echo(_rule(80))

    for user in users:
        profile = user.sponsor or user.merchant or user.beneficiary
        profile_str = f"{type(profile).__name__} #{profile.id}" if profile else "none"
        active_str = "Yes" if user.is_active else "No"
        click.echo(f"{user.id:<5} {user.email:<35} {user.usertype:<10} {active_str:<8} {profile_str}")

    click.echo(_rule(80, after=True))


@users_group.command('create')
@click.option('--email', prompt=True, help='Email address')
@click.option('--usertype', type=click.Choice(VALID_USERTYPES), default='user', show_default=True)
@click.option('--name', 'display_name', default=None, help='Sponsor or store name')
@click.option('--first-name', default=None)
@click.option('--last-name', default=None)
@click.option('--state', default=None)
@click.option('--city', default=None)
@with_appcontext
def create_user_cmd(email, usertype, display_name, first_name, last_name, state, city):
    """Create a user with its sponsor, merchant or beneficiary profile."""
    try:
        user = account_service.create_account(
            email,
            usertype=usertype,
            display_name=display_name,
            first_name=first_name,
            last_name=last_name,
            state=state,
            city=city,
        )
    except ValueError as e:
        db.session.rollback()
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(f"PASS Created {user.usertype}: {user.email} (ID: {user.id})")


@users_group.command('issue-token')
@click.option('--email', required=True, help='Email address')
@with_appcontext
def issue_token(email):
    """Issue a bearer token for an existing user."""
    user = db.session.query(User).filter_by(email=email.strip().lower()).first()
    if not user:
        click.echo(f"FAIL User not found: {email}")
        raise SystemExit(1)

    try:
        _, token = session_service.create_session(user.id)
    except ValueError as e:
        click.echo(f"FAIL {e}")
        raise SystemExit(1)

    click.echo(token)


@click.group('vouchers')
def vouchers_group():
    """Voucher inspection commands."""


@vouchers_group.command('list')
@click.option('--sponsor-id', type=int, required=True, help='Owning sponsor ID')
@click.option('--all', 'include_revoked', is_flag=True, help='Include revoked vouchers')
@with_appcontext
def list_vouchers(sponsor_id, include_revoked):
    """List a sponsor's vouchers."""
    query = db.session.query(Voucher).filter_by(sponsor_id=sponsor_id)
    if not include_revoked:
        query = query.filter(Voucher.deleted_at.is_(None))

    vouchers = query.order_by(Voucher.created_at.desc(), Voucher.id.desc()).all()

    if not vouchers:
        click.echo("No vouchers found.")
        return

    click.echo(_rule(90, before=True))
    click.echo(f"{'ID':<5} {'Code':<12} {'Type':<15} {'Status':<8} {'Limit':<7} {'Expiry':<12} {'Location'}")
    click.echo(_rule(90))

    for voucher in vouchers:
        data = voucher.to_dict(include_merchants=False)
        expiry = data["expiry_date"] or "-"
        location = data["location"] or "-"
        if voucher.is_revoked:
            location += " (revoked)"
        click.echo(
            f"{voucher.id:<5} {voucher.voucher_code:<12} {data['type']:<15} {data['status']:<8} "
            f"{voucher.limit:<7} {expiry:<12} {location}"
        )

    click.echo(_rule(90, after=True))


@vouchers_group.command('show')
@click.argument('code')
@with_appcontext
def show_voucher(code):
    """Show one voucher by code."""
    try:
        voucher = get_voucher_by_code(code, include_revoked=True)
    except VoucherNotFoundError:
        click.echo(f"FAIL Voucher not found: {code}")
        raise SystemExit(1)

    data = voucher.to_dict()
    for key in ("id", "voucher_code", "sponsor_id", "purpose", "type", "status", "limit",
                "voucher_amount_cents", "amount_per_code_cents", "expiry_date", "location",
                "code_generation_method", "deleted_at"):
        click.echo(f"{key:<24} {data.get(key)}")

    click.echo(f"{'merchants':<24} {', '.join(str(mid) for mid in voucher.merchant_ids) or '-'}")

    transactions = (
        db.session.query(Transaction)
        .filter_by(voucher_id=voucher.id)
        .order_by(Transaction.id.asc())
        .all()
    )
    click.echo(f"{'transactions':<24} {len(transactions)}")
    for t in transactions:
        click.echo(f"  #{t.id} beneficiary={t.beneficiary_id} merchant={t.merchant_id} "
                   f"amount_cents={t.amount_cents} at={t.created_at}")


def register_commands(app):
    """Register all CLI commands with Flask app."""
    app.cli.add_command(system_group)
    app.cli.add_command(users_group)
    app.cli.add_command(vouchers_group)
