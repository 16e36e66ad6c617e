# Overview: Service-layer operations for accounts; creates users with their sponsor, merchant or beneficiary profile.

from ..extensions import db
from ..models import Beneficiary, Merchant, Sponsor, User
from ..models.accounts import USERTYPE_MERCHANT, USERTYPE_SPONSOR, USERTYPE_USER, VALID_USERTYPES


def create_account(
    email: str,
    usertype: str = USERTYPE_USER,
    display_name: str | None = None,
    first_name: str | None = None,
    last_name: str | None = None,
    state: str | None = None,
    city: str | None = None,
) -> User:
    """
    Create a user together with the profile its usertype implies.

    - sponsor  -> Sponsor (display_name becomes sponsor_name)
    - merchant -> Merchant (display_name becomes store_name)
    - user     -> Beneficiary

    Args:
        email: Unique email address
        usertype: One of VALID_USERTYPES
        display_name: Sponsor or store name (ignored for beneficiaries)

    Returns:
        Created User with its profile attached

    Raises:
        ValueError: If usertype is unknown or the email is taken
    """
    email = (email or "").strip().lower()
    if not email:
        raise ValueError("Email is required")
    if usertype not in VALID_USERTYPES:
        raise ValueError(f"usertype must be one of: {', '.join(VALID_USERTYPES)}")

    if db.session.query(User.id).filter(User.email == email).first():
        raise ValueError("Email already exists")

    user = User(
        email=email,
        first_name=first_name,
        last_name=last_name,
        state=state,
        city=city,
        usertype=usertype,
        is_active=True,
    )
    db.session.add(user)
    db.session.flush()

    if usertype == USERTYPE_SPONSOR:
        db.session.add(Sponsor(user_id=user.id, sponsor_name=display_name))
    elif usertype == USERTYPE_MERCHANT:
        db.session.add(Merchant(user_id=user.id, store_name=display_name))
    else:
        db.session.add(Beneficiary(user_id=user.id, state=state))

    db.session.commit()
    return user
