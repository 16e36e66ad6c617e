from voucherhub.models import User
from voucherhub.services import session_service


def test_users_create_and_issue_token(app, db_session):
    runner = app.test_cli_runner()

    created = runner.invoke(args=[
        "users", "create", "--email", "Grants@Example.com", "--usertype", "sponsor", "--name", "Grants Office",
    ])
    assert created.exit_code == 0, created.output
    assert "PASS Created sponsor" in created.output

    user = db_session.query(User).filter_by(email="grants@example.com").one()
    assert user.sponsor.sponsor_name == "Grants Office"

    issued = runner.invoke(args=["users", "issue-token", "--email", "grants@example.com"])
    assert issued.exit_code == 0, issued.output
    token = issued.output.strip()
    assert session_service.validate_session(token).user.id == user.id


def test_users_create_rejects_duplicate_email(app, db_session):
    runner = app.test_cli_runner()
    runner.invoke(args=["users", "create", "--email", "dup@example.com"])

    again = runner.invoke(args=["users", "create", "--email", "dup@example.com"])

    assert again.exit_code == 1
    assert "already exists" in again.output


def test_vouchers_list_and_show(app, make_voucher, sponsor):
    voucher = make_voucher(purpose="Flood relief", location="Ibadan")
    runner = app.test_cli_runner()

    listing = runner.invoke(args=["vouchers", "list", "--sponsor-id", str(sponsor.id)])
    assert voucher.voucher_code in listing.output

    shown = runner.invoke(args=["vouchers", "show", voucher.voucher_code])
    assert shown.exit_code == 0, shown.output
    assert "Flood relief" in shown.output

    missing = runner.invoke(args=["vouchers", "show", "NOPE000000"])
    assert missing.exit_code == 1
