"""
Command-line administration of developer credentials.

    developer-gateway create --name "Acme Corp" --email dev@acme.com --limit 5000 --rate 100
    developer-gateway list
    developer-gateway rollover
"""

from typing import Optional

import typer

from .config import settings
from .database import SessionLocal, create_tables
from .exceptions import GatewayError
from .services.developers import DeveloperService
from .services.limiter import UsageLimiter
from .utils.logging import setup_logging

app = typer.Typer(help="Developer Gateway administration")


@app.callback()
def callback():
    """
    Developer Gateway CLI
    """
    setup_logging()


@app.command("init-db")
def init_db():
    """Create the database tables."""
    create_tables()
    typer.echo("Database tables created")


@app.command()
def create(
    name: str = typer.Option(..., "--name", "-n", help="Developer or company name"),
    email: Optional[str] = typer.Option(None, "--email", "-e"),
    limit: int = typer.Option(settings.default_monthly_limit, "--limit", "-l", help="Monthly request limit"),
    rate: int = typer.Option(settings.default_rate_limit_per_minute, "--rate", "-r", help="Requests per minute"),
    plan: Optional[str] = typer.Option(None, "--plan", "-p"),
    company: Optional[str] = typer.Option(None, "--company", "-c"),
    test: bool = typer.Option(False, "--test", help="Issue pk_test_/sk_test_ credentials"),
):
    """Create a developer and print its credentials (the secret is shown once)."""
    metadata = {"source": "cli"}
    if plan:
        metadata["plan"] = plan
    if company:
        metadata["company"] = company

    db = SessionLocal()
    try:
        created = DeveloperService(db).create_developer(
            name=name,
            email=email,
            monthly_limit=limit,
            rate_limit_per_minute=rate,
            metadata=metadata,
            environment="test" if test else "live",
        )
    except GatewayError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.close()

    developer = created.developer
    typer.echo(f"Developer ID:   {developer.id}")
    typer.echo(f"Name:           {developer.name}")
    typer.echo(f"Monthly limit:  {developer.limits.monthly_limit}")
    typer.echo(f"Rate limit:     {developer.limits.rate_limit_per_minute}/min")
    typer.echo(f"API key:        {created.api_key}")
    typer.echo(f"API secret:     {created.api_secret}")
    typer.secho(created.warning, fg=typer.colors.YELLOW)


@app.command("list")
def list_developers():
    """List every developer with its current usage."""
    db = SessionLocal()
    try:
        developers = DeveloperService(db).list_developers()
    finally:
        db.close()

    if not developers:
        typer.echo("No developers found")
        return

    for developer in developers:
        status = "active" if developer.is_active else "inactive"
        usage = (
            f"{developer.limits.current_month_used}/{developer.limits.monthly_limit}"
            if developer.limits
            else "-"
        )
        typer.echo(f"{developer.id}  {developer.api_key}  {status:8}  {usage:>12}  {developer.name}")


@app.command("reset-usage")
def reset_usage(developer_id: str = typer.Argument(..., help="Developer ID")):
    """Reset a developer's monthly counter."""
    db = SessionLocal()
    try:
        limits = DeveloperService(db).reset_monthly_usage(developer_id)
    except GatewayError as e:
        typer.echo(f"Error: {e.message}", err=True)
        raise typer.Exit(code=1)
    finally:
        db.close()
    typer.echo(f"Usage reset for {developer_id} ({limits.current_month})")


@app.command()
def rollover():
    """Zero every counter still tagged with a past month (run on the 1st)."""
    db = SessionLocal()
    try:
        count = UsageLimiter(db).reset_stale_months()
    finally:
        db.close()
    typer.echo(f"Rolled over {count} developer(s)")


@app.command()
def serve(
    host: str = typer.Option(settings.host),
    port: int = typer.Option(settings.port),
    reload: bool = typer.Option(False),
):
    """Run the API server."""
    import uvicorn

    uvicorn.run("developer_gateway.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
