"""CLI utilities for publication upkeep."""

# purpose: give operators a shell entry point for seeding guidelines and running digests
# status: active
# depends_on: presswork.database, presswork.services.guidelines, presswork.tasks

from __future__ import annotations

import json
from uuid import UUID

import typer
from fastapi import HTTPException

from .. import models, tasks
from ..database import SessionLocal
from ..services import guidelines

app = typer.Typer(help="Presswork maintenance commands")


def seed_guidelines(publication_id: UUID | str, actor_email: str) -> dict[str, object]:
    """Create the stock guideline set for a publication on behalf of an admin."""

    try:
        publication_uuid = UUID(str(publication_id))
    except ValueError as exc:
        raise ValueError("Invalid publication identifier supplied") from exc

    session = SessionLocal()
    try:
        actor = session.query(models.User).filter(models.User.email == actor_email).first()
        if actor is None:
            raise ValueError("Actor email does not correspond to a known user")
        try:
            created = guidelines.create_default_guidelines(session, publication_uuid, actor)
        except HTTPException as exc:
            raise ValueError(exc.detail) from exc
        session.commit()
        return {
            "publication_id": str(publication_uuid),
            "created": len(created),
            "titles": [guideline.title for guideline in created],
        }
    finally:
        session.close()


@app.command("seed-guidelines")
def seed_guidelines_command(
    publication_id: str,
    actor_email: str = typer.Option(..., help="Email of a publication admin or the owner"),
) -> None:
    """CLI wrapper for :func:`seed_guidelines`."""

    try:
        summary = seed_guidelines(publication_id, actor_email)
    except ValueError as exc:
        raise typer.BadParameter(str(exc))
    typer.echo(json.dumps(summary))


@app.command("send-digest")
def send_digest_command() -> None:
    """Run the daily notification digest immediately."""

    result = tasks.enqueue_notification_digest()
    if isinstance(result, int):
        typer.echo(json.dumps({"sent": result}))
    else:
        typer.echo(json.dumps({"sent": None, "task_id": result.id}))


if __name__ == "__main__":
    app()
