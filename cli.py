"""CLI tools for running and administering the form service."""
import json
import logging

import click

from auth import ensure_default_admin, hash_password
from config import settings
from DB_Link.database import Store, create_tables
from DB_Link.snapshot import export_snapshot, import_snapshot
from models.session import Session_local


@click.group()
def cli():
    """Form builder CLI tools."""
    logging.basicConfig(format="%(asctime)s %(levelname)s %(name)s: %(message)s",
                        datefmt='%Y-%m-%d %H:%M:%S')
    logging.root.setLevel(settings.LOG_LEVEL.upper())


@cli.command()
@click.option("--host", default="0.0.0.0", show_default=True)
@click.option("--port", default=8000, show_default=True, type=int)
@click.option("--reload", is_flag=True, help="Restart on code changes (development only)")
def serve(host: str, port: int, reload: bool):
    """Run the API with uvicorn."""
    import uvicorn

    uvicorn.run("main:app", host=host, port=port, reload=reload, log_config=None)


@cli.command("init-db")
def init_db():
    """Create tables and the default admin account."""
    create_tables()
    db = Session_local()
    try:
        created = ensure_default_admin(Store(db))
    finally:
        db.close()
    if created:
        click.echo(f"Created admin account '{settings.ADMIN_USERNAME}'")
    else:
        click.echo(f"Admin account '{settings.ADMIN_USERNAME}' already exists")


@cli.command("create-user")
@click.option("--username", required=True)
@click.password_option()
def create_user(username: str, password: str):
    """Register an additional administrator."""
    create_tables()
    db = Session_local()
    try:
        store = Store(db)
        if store.get_user_by_username(username):
            raise click.ClickException(f"User '{username}' already exists")
        user = store.create("users", {"username": username, "password": hash_password(password)})
        click.echo(f"Created user '{user.username}' with id {user.id}")
    finally:
        db.close()


@cli.command("export-json")
@click.argument("path", type=click.Path(dir_okay=False, writable=True))
def export_json(path: str):
    """Write every user, form and submission to a JSON snapshot."""
    db = Session_local()
    try:
        doc = export_snapshot(Store(db))
    finally:
        db.close()
    with open(path, "w", encoding="utf-8") as fh:
        json.dump(doc, fh, indent=2, ensure_ascii=False)
    click.echo(f"Wrote {len(doc['forms'])} forms and {len(doc['submissions'])} submissions to {path}")


@cli.command("import-json")
@click.argument("path", type=click.Path(exists=True, dir_okay=False))
def import_json(path: str):
    """Load a JSON snapshot (for example an old data/storage.json)."""
    with open(path, encoding="utf-8") as fh:
        doc = json.load(fh)
    create_tables()
    db = Session_local()
    try:
        imported = import_snapshot(Store(db), doc)
    finally:
        db.close()
    click.echo(
        f"Imported {imported['users']} users, {imported['forms']} forms "
        f"and {imported['submissions']} submissions"
    )


if __name__ == "__main__":
    cli()
