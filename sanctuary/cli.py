"""Sanctuary access CLI tool (sanctuaryctl)."""

import json

import typer

app = typer.Typer(name="sanctuaryctl", help="Sanctuary access service CLI")
db_app = typer.Typer(help="Database management commands")
roles_app = typer.Typer(help="Role inspection commands")
permissions_app = typer.Typer(help="Permission inspection commands")
app.add_typer(db_app, name="db")
app.add_typer(roles_app, name="roles")
app.add_typer(permissions_app, name="permissions")


@db_app.command("create")
def db_create():
    """Create all tables if they don't exist."""
    from sanctuary.db.session import create_tables

    create_tables()
    typer.echo("Tables created (or already exist)")


@db_app.command("seed")
def db_seed(
    owner_email: str = typer.Option(None, help="Owner email (defaults to OWNER_EMAIL)"),
):
    """Seed system roles and the owner account."""
    from sanctuary.db.session import SessionLocal
    from sanctuary.db.seeds.seed_roles import seed_roles
    from sanctuary.db.seeds.seed_owner import seed_owner

    db = SessionLocal()
    try:
        created = seed_roles(db)
        owner = seed_owner(db, email=owner_email)
    finally:
        db.close()
    typer.echo(f"Seeded {created} roles")
    if owner is None:
        typer.echo("Owner not seeded (set OWNER_EMAIL or pass --owner-email)")


@roles_app.command("list")
def roles_list():
    """List roles, highest priority first."""
    from sanctuary.db.session import SessionLocal
    from sanctuary.services.role_service import role_service

    db = SessionLocal()
    try:
        for role in role_service.list_roles(db):
            flag = "" if role.is_active else " (inactive)"
            typer.echo(f"  [{role.id}] {role.name:<12} priority={role.priority}{flag}")
    finally:
        db.close()


@permissions_app.command("show")
def permissions_show(user_id: int = typer.Argument(..., help="User ID")):
    """Print a user's effective permission matrix."""
    from sanctuary.db.session import SessionLocal
    from sanctuary.services.auth_service import auth_service
    from sanctuary.services.role_service import role_service
    from sanctuary.core.exceptions import ResourceNotFoundError

    db = SessionLocal()
    try:
        try:
            user = auth_service.get_user(db, user_id)
        except ResourceNotFoundError as e:
            typer.echo(str(e), err=True)
            raise typer.Exit(code=1)
        permissions = role_service.get_permission_set(db, user)
        primary = permissions.primary_role
        typer.echo(f"owner: {permissions.is_owner}")
        typer.echo(f"primary role: {primary.role.name if primary else '-'}")
        typer.echo(json.dumps(permissions.effective, indent=2, sort_keys=True))
    finally:
        db.close()


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(False, help="Auto-reload"),
):
    """Start the API server."""
    import uvicorn
    uvicorn.run("sanctuary.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
