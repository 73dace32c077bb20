"""Tenant RBAC CLI tool (rbacctl)."""

import json

import typer
from sqlalchemy.engine import make_url

app = typer.Typer(name="rbacctl", help="Tenant RBAC CLI")
db_app = typer.Typer(help="Database management commands")
roles_app = typer.Typer(help="Role hierarchy commands")
app.add_typer(db_app, name="db")
app.add_typer(roles_app, name="roles")


@db_app.command("create")
def db_create():
    """Create the MySQL database if it doesn't exist."""
    import pymysql
    from tenant_rbac.core.config import settings

    url = make_url(settings.DATABASE_URL)
    conn = pymysql.connect(
        host=url.host, port=url.port or 3306, user=url.username, password=url.password or "",
    )
    try:
        cursor = conn.cursor()
        cursor.execute(
            f"CREATE DATABASE IF NOT EXISTS `{url.database}` "
            "CHARACTER SET utf8mb4 COLLATE utf8mb4_unicode_ci"
        )
        conn.commit()
        typer.echo(f"✅ Database '{url.database}' created (or already exists)")
    finally:
        conn.close()


@db_app.command("init")
def db_init():
    """Create all tables."""
    from tenant_rbac.db.base import Base
    from tenant_rbac.db.session import engine
    import tenant_rbac.models  # noqa: F401

    Base.metadata.create_all(bind=engine)
    typer.echo("✅ Tables created")


@db_app.command("seed")
def db_seed():
    """Seed the default role tree and the super-admin."""
    from tenant_rbac.db.session import SessionLocal
    from tenant_rbac.db.seeds.seed_roles import seed_roles
    from tenant_rbac.db.seeds.seed_super_admin import seed_super_admin

    db = SessionLocal()
    try:
        seed_roles(db)
        seed_super_admin(db)
    finally:
        db.close()
    typer.echo("✅ All seeds applied")


@roles_app.command("resolve")
def roles_resolve(
    role_id: int = typer.Argument(..., help="Role ID to resolve"),
):
    """Print a role's effective permissions."""
    from tenant_rbac.db.session import SessionLocal
    from tenant_rbac.services.role_service import build_role_service

    db = SessionLocal()
    try:
        permissions = build_role_service(db).resolve_effective_permissions(role_id)
    finally:
        db.close()
    for perm in permissions:
        typer.echo(f"  {'+' if perm['allowed'] else '-'} {perm['name']}")


@roles_app.command("cascade")
def roles_cascade(
    role_id: int = typer.Argument(..., help="Root role of the subtree to recompute"),
):
    """Recompute cached permissions for a role subtree and its users."""
    from tenant_rbac.db.session import SessionLocal
    from tenant_rbac.services.role_service import build_role_service

    db = SessionLocal()
    try:
        report = build_role_service(db, mode="sync").cascade(role_id)
    finally:
        db.close()
    typer.echo(json.dumps(report.as_dict(), indent=2))
    if not report.ok:
        raise typer.Exit(code=1)


@app.command("token")
def mint_token(
    user_id: int = typer.Argument(..., help="User ID to issue a development token for"),
):
    """Print a bearer token for local testing."""
    from tenant_rbac.core.security import create_access_token

    typer.echo(create_access_token({"sub": str(user_id)}))


@app.command("serve")
def serve(
    host: str = typer.Option("0.0.0.0", help="Host"),
    port: int = typer.Option(8000, help="Port"),
    reload: bool = typer.Option(True, help="Auto-reload"),
):
    """Start the FastAPI development server."""
    import uvicorn
    uvicorn.run("tenant_rbac.main:app", host=host, port=port, reload=reload)


if __name__ == "__main__":
    app()
