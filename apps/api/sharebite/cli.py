"""CLI tools for ShareBite administration."""

import click
import httpx

from sharebite.core.config import settings
from sharebite.db.session import SessionLocal

REQUEST_TIMEOUT_SECONDS = 30

LOCAL_SWEEP_WARNING = (
    "Warning: INTERNAL_API_URL is not set, so this sweep runs directly against "
    "the database. Open dashboards will not see these changes until they reload."
)


@click.group()
def cli():
    """ShareBite CLI tools."""
    pass


def _internal_client() -> httpx.Client:
    return httpx.Client(base_url=settings.INTERNAL_API_URL, timeout=REQUEST_TIMEOUT_SECONDS)


def _sweep_via_api(path: str, params: dict | None = None) -> list[str]:
    """POST to an internal sweep endpoint and return the changed donation ids."""
    try:
        with _internal_client() as client:
            response = client.post(
                path,
                params=params,
                headers={"X-Internal-Secret": settings.INTERNAL_SECRET},
            )
    except httpx.HTTPError as exc:
        raise click.ClickException(f"API unreachable: {exc}")
    if response.status_code != 200:
        raise click.ClickException(
            f"API sweep failed ({response.status_code}): {response.text}"
        )
    return [str(donation_id) for donation_id in response.json()["donation_ids"]]


@cli.command()
def expire_donations():
    """
    Expire every posted donation whose expiry has passed.

    With INTERNAL_API_URL set the sweep runs inside the API process, so live
    dashboards receive the changes. Without it the sweep runs directly
    against the database and connected dashboards are not notified.

    Example:
        python -m sharebite.cli expire-donations
    """
    from sharebite.services import lifecycle_service

    if settings.INTERNAL_API_URL:
        changed = _sweep_via_api("/internal/scheduled/expire-donations")
    else:
        click.echo(LOCAL_SWEEP_WARNING, err=True)
        with SessionLocal() as db:
            changed = [str(d.id) for d in lifecycle_service.expire_overdue(db)]
    click.echo(f"✓ Expired {len(changed)} donation(s)")
    for donation_id in changed:
        click.echo(f"  {donation_id}")


@cli.command()
@click.option(
    "--window-minutes",
    type=int,
    default=None,
    help="Diversion window (defaults to DIVERSION_WINDOW_MINUTES)",
)
def divert_donations(window_minutes: int | None):
    """
    Divert edible donations about to expire into the non-edible queue.

    Routed through the API when INTERNAL_API_URL is set, as for
    expire-donations; otherwise dashboards are not notified.

    Example:
        python -m sharebite.cli divert-donations --window-minutes 30
    """
    from sharebite.services import lifecycle_service

    window = settings.DIVERSION_WINDOW_MINUTES if window_minutes is None else window_minutes
    if window <= 0:
        click.echo("Diversion disabled (window is 0)")
        return
    if settings.INTERNAL_API_URL:
        changed = _sweep_via_api(
            "/internal/scheduled/divert-donations", params={"window_minutes": window}
        )
    else:
        click.echo(LOCAL_SWEEP_WARNING, err=True)
        with SessionLocal() as db:
            changed = [
                str(d.id) for d in lifecycle_service.divert_near_expiry(db, window_minutes=window)
            ]
    click.echo(f"✓ Diverted {len(changed)} donation(s)")


@cli.command()
@click.option("--email", required=True, help="User email to revoke sessions for")
def revoke_sessions(email: str):
    """
    Revoke all sessions for a user by bumping their token_version.

    Example:
        python -m sharebite.cli revoke-sessions --email "user@example.com"
    """
    from sharebite.services import auth_service

    db = SessionLocal()
    try:
        user = auth_service.get_user_by_email(db, email)
        if not user:
            click.echo(f"❌ User not found: {email}")
            return

        old_version = user.token_version
        auth_service.revoke_all_sessions(db, user.id)
        db.refresh(user)

        click.echo(f"✓ Revoked all sessions for {email}")
        click.echo(f"  Token version: {old_version} → {user.token_version}")

    except Exception as e:
        db.rollback()
        click.echo(f"❌ Error: {e}")
    finally:
        db.close()


if __name__ == "__main__":
    cli()
