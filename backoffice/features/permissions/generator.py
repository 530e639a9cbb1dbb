"""
Generate CRUD permission names for resources.

    generate_for_model(db, cache, "Product")
    -> ["create products", "edit products", "delete products", "view products"]
"""
import re
from typing import Any, Dict, Iterable, List, Optional

from sqlalchemy.ext.asyncio import AsyncSession

from backoffice.core import config
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.models import Permission
from backoffice.features.permissions.service import find_permission
from backoffice.utils import get_logger


log = get_logger(__name__)


DEFAULT_ACTIONS = ("create", "edit", "delete", "view")

_UNCOUNTABLE = frozenset({"data", "equipment", "information", "metadata", "news", "settings", "series"})
_IRREGULAR = {"person": "people", "child": "children", "man": "men", "woman": "women"}


def short_name(model: Any) -> str:
    """Class name of a model given as a class, an instance, a dotted path or a bare name."""
    if isinstance(model, str):
        return re.split(r"[.\\:]", model)[-1]
    if isinstance(model, type):
        return model.__name__
    return type(model).__name__


def kebab(name: str) -> str:
    name = re.sub(r"([a-z0-9])([A-Z])", r"\1-\2", name)
    name = re.sub(r"([A-Z]+)([A-Z][a-z])", r"\1-\2", name)
    return re.sub(r"[\s_]+", "-", name).lower()


def pluralize(word: str) -> str:
    if word in _UNCOUNTABLE:
        return word
    if word in _IRREGULAR:
        return _IRREGULAR[word]
    if re.search(r"[^aeiou]y$", word):
        return word[:-1] + "ies"
    if re.search(r"(s|x|z|ch|sh)$", word):
        return word + "es"
    return word + "s"


def resource_token(model: Any) -> str:
    """Plural kebab-case token for a model, e.g. ActivityLog -> activity-logs."""
    parts = kebab(short_name(model)).split("-")
    parts[-1] = pluralize(parts[-1])
    return "-".join(parts)


def permission_name(action: str, model: Any) -> str:
    return f"{action} {resource_token(model)}"


async def _generate(
    db: AsyncSession,
    names: Iterable[str],
    guard: str,
    force: bool,
) -> List[str]:
    created: List[str] = []
    # Each name once, first occurrence wins
    for name in dict.fromkeys(names):
        existing = await find_permission(db, name, guard)

        if existing is not None and not force:
            log.debug(f"Skipping existing permission {name!r}")
            continue

        if existing is not None:
            await db.delete(existing)
            await db.flush()

        db.add(Permission(name=name, guard_name=guard, roles=[]))
        await db.flush()
        created.append(name)
    return created


def _names(model: Any, actions: Iterable[str]) -> List[str]:
    return [permission_name(action, model) for action in actions]


async def generate_permissions(
    db: AsyncSession,
    cache: PermissionCache,
    names: Iterable[str],
    guard: Optional[str] = None,
    force: bool = False,
) -> List[str]:
    """Create permissions with explicit names, with the same skip and force rules."""
    guard = guard or config.DEFAULT_GUARD
    created = await _generate(db, list(names), guard, force)
    await db.commit()

    cache.forget(guard)
    log.info(f"Generated {len(created)} permissions in guard {guard!r}")
    return created


async def generate_for_model(
    db: AsyncSession,
    cache: PermissionCache,
    model: Any,
    actions: Optional[Iterable[str]] = None,
    guard: Optional[str] = None,
    force: bool = False,
) -> List[str]:
    """
    Create "{action} {resource}" permissions for one model.

    Existing permissions are skipped, or deleted and recreated when
    ``force`` is set. Returns the names actually created.
    """
    guard = guard or config.DEFAULT_GUARD
    created = await _generate(db, _names(model, actions or DEFAULT_ACTIONS), guard, force)
    await db.commit()

    cache.forget(guard)
    log.info(f"Generated {len(created)} permissions for {short_name(model)} in guard {guard!r}")
    return created


async def generate_for_models(
    db: AsyncSession,
    cache: PermissionCache,
    models: Iterable[Any],
    actions: Optional[Iterable[str]] = None,
    guard: Optional[str] = None,
    force: bool = False,
) -> Dict[str, List[str]]:
    """Generate permissions for several models, invalidating the cache once at the end."""
    guard = guard or config.DEFAULT_GUARD
    actions = list(actions or DEFAULT_ACTIONS)

    results: Dict[str, List[str]] = {}
    for model in models:
        results[resource_token(model)] = await _generate(db, _names(model, actions), guard, force)
    await db.commit()

    cache.forget(guard)
    log.info(f"Generated {sum(len(names) for names in results.values())} permissions in guard {guard!r}")
    return results
