import pytest

from backoffice.features.activity_logs.models import ActivityLog
from backoffice.features.permissions import generator
from backoffice.features.permissions.cache import PermissionCache
from backoffice.features.permissions.service import find_permission
from backoffice.features.users.models import User
from tests.factories import make_permission, make_role, make_user


class CountingCache(PermissionCache):
    def __init__(self):
        super().__init__()
        self.forgotten: list = []

    def forget(self, guard=None):
        self.forgotten.append(guard)
        super().forget(guard)


@pytest.mark.parametrize(
    "model, token",
    [
        ("Product", "products"),
        (User, "users"),
        (ActivityLog, "activity-logs"),
        ("App\\Models\\Category", "categories"),
        ("backoffice.features.Box", "boxes"),
        ("Person", "people"),
        ("Settings", "settings"),
    ],
)
def test_resource_token(model, token):
    assert generator.resource_token(model) == token


def test_permission_name():
    assert generator.permission_name("view", "Product") == "view products"


async def test_generate_is_idempotent(session):
    cache = CountingCache()

    first = await generator.generate_for_model(session, cache, "User", ["create", "edit"], "web")
    second = await generator.generate_for_model(session, cache, "User", ["create", "edit"], "web")

    assert first == ["create users", "edit users"]
    assert second == []
    assert cache.forgotten == ["web", "web"]


async def test_default_actions(session, cache):
    created = await generator.generate_for_model(session, cache, "Product")

    assert created == ["create products", "edit products", "delete products", "view products"]


async def test_force_recreates_existing_permissions(session, cache):
    telescope = await make_permission(session, "view telescope")
    horizon = await make_permission(session, "view horizon")
    old_ids = {telescope.id, horizon.id}

    created = await generator.generate_permissions(
        session, cache, ["view telescope", "view horizon"], "web", force=True
    )

    assert created == ["view telescope", "view horizon"]
    new_ids = {
        (await find_permission(session, "view telescope", "web")).id,
        (await find_permission(session, "view horizon", "web")).id,
    }
    assert new_ids.isdisjoint(old_ids)


async def test_force_on_model_permissions(session, cache):
    await generator.generate_for_model(session, cache, "Product", ["view"])
    old = await find_permission(session, "view products", "web")

    created = await generator.generate_for_model(session, cache, "Product", ["view", "edit"], force=True)

    assert created == ["view products", "edit products"]
    assert (await find_permission(session, "view products", "web")).id != old.id


async def test_generated_permissions_are_visible_immediately(session, authorization):
    role = await make_role(session, "admin", ("view telescope",))
    admin = await make_user(session, "admin@example.com", (role,))
    assert await authorization.can(session, admin, "view telescope")

    # Recreating drops existing grants; the next check must see that.
    await generator.generate_permissions(session, authorization.cache, ["view telescope"], force=True)

    assert not await authorization.can(session, admin, "view telescope")


async def test_generate_for_models_invalidates_once(session):
    cache = CountingCache()

    results = await generator.generate_for_models(session, cache, ["Product", "Order"], ["view"], "web")

    assert results == {"products": ["view products"], "orders": ["view orders"]}
    assert cache.forgotten == ["web"]


async def test_repeated_actions_are_generated_once(session, cache):
    await generator.generate_for_model(session, cache, "User", ["create"])

    created = await generator.generate_for_model(session, cache, "User", ["create", "create", "edit"], force=True)

    assert created == ["create users", "edit users"]
