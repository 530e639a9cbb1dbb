"""
Generate CRUD permissions for models.

Usage:
    python -m scripts.generate_permissions --models User,Product --actions create,edit
    python -m scripts.generate_permissions --force   # every mapped model
"""
import asyncio
from typing import List, Optional

import typer

from backoffice.core import config
from backoffice.core.database.base import Base
from backoffice.core.database.engine import import_models, init_db, session_scope
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.generator import DEFAULT_ACTIONS, generate_for_models, resource_token
from backoffice.utils import get_logger


log = get_logger(__name__)
app = typer.Typer(add_completion=False, help="Generate '{action} {resources}' permissions.")


def split_option(value: Optional[str]) -> List[str]:
    return [part.strip() for part in (value or "").split(",") if part.strip()]


def discover_models() -> List[str]:
    """Class names of every mapped model."""
    import_models()
    return sorted(mapper.class_.__name__ for mapper in Base.registry.mappers)


async def run(models: List[str], actions: List[str], guard: str, force: bool) -> dict[str, List[str]]:
    await init_db()
    async with session_scope() as db:
        return await generate_for_models(db, PermissionCache(), models, actions, guard, force)


@app.command()
def generate(
    models: Optional[str] = typer.Option(None, "--models", help="Comma separated model names (default: all mapped models)."),
    actions: Optional[str] = typer.Option(None, "--actions", help=f"Comma separated actions (default: {','.join(DEFAULT_ACTIONS)})."),
    guard: str = typer.Option(config.DEFAULT_GUARD, "--guard", help="Guard name."),
    force: bool = typer.Option(False, "--force", help="Recreate permissions that already exist."),
) -> None:
    model_names = split_option(models) or discover_models()
    action_names = split_option(actions) or list(DEFAULT_ACTIONS)

    created = asyncio.run(run(model_names, action_names, guard, force))

    total_created = 0
    for model in model_names:
        names = created.get(resource_token(model), [])
        skipped = len(action_names) - len(names)
        total_created += len(names)
        typer.echo(f"{model}: {len(names)} created, {skipped} skipped")
        for name in names:
            typer.echo(f"  + {name}")
    typer.echo(f"Done: {total_created} permissions created in guard '{guard}'.")


if __name__ == "__main__":
    app()
