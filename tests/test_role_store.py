import pytest
from sqlalchemy import select

from backoffice.core.exceptions import DuplicateError, NotFoundError, ValidationError
from backoffice.features.activity_logs.models import ActivityLog
from backoffice.features.activity_logs.service import AuditContext
from backoffice.features.permissions import service
from backoffice.features.users.models import primary_role
from tests.factories import make_permission, make_role, make_user


def names(role):
    return {permission.name for permission in role.permissions}


def test_coerce_ids_drops_garbage_and_duplicates():
    assert service.coerce_ids(["1", 2, "x", None, "2", 3.0]) == [1, 2, 3]
    assert service.coerce_ids(None) == []


async def test_content_manager_permission_sync(session, cache):
    manage = await make_permission(session, "manage posts")
    publish = await make_permission(session, "publish posts")

    role = await service.create_role(session, cache, "content-manager", permission_ids=[manage.id, publish.id])
    assert names(role) == {"manage posts", "publish posts"}
    assert role.guard_name == "web"

    role = await service.update_role(session, cache, role, "content-manager", permission_ids=[manage.id])
    assert names(role) == {"manage posts"}


async def test_update_with_subset_removes_exactly_the_difference(session, cache):
    perms = [await make_permission(session, f"perm {i}") for i in range(5)]
    role = await service.create_role(session, cache, "wide", permission_ids=[p.id for p in perms])

    keep = perms[1:3]
    role = await service.update_role(session, cache, role, "wide", permission_ids=[str(p.id) for p in keep])

    assert names(role) == {p.name for p in keep}


async def test_unknown_permission_ids_are_ignored(session, cache):
    view = await make_permission(session, "view posts")

    role = await service.create_role(session, cache, "viewer", permission_ids=[view.id, 9999, "abc"])

    assert names(role) == {"view posts"}


async def test_role_names_are_unique_per_guard(session, cache):
    await service.create_role(session, cache, "editor")

    with pytest.raises(ValidationError) as exc_info:
        await service.create_role(session, cache, "editor")
    assert "name" in exc_info.value.errors

    other_guard = await service.create_role(session, cache, "editor", guard="api")
    assert other_guard.guard_name == "api"


async def test_update_keeps_own_name(session, cache):
    role = await service.create_role(session, cache, "editor")
    await service.create_role(session, cache, "author")

    await service.update_role(session, cache, role, "editor")
    with pytest.raises(ValidationError):
        await service.update_role(session, cache, role, "author")


async def test_guard_change_invalidates_both_guards(session, cache):
    role = await service.create_role(session, cache, "editor")
    await cache.snapshot(session, "web")
    await cache.snapshot(session, "api")

    await service.update_role(session, cache, role, "editor", guard="api")

    assert role.guard_name == "api"
    assert not cache.is_cached("web")
    assert not cache.is_cached("api")


async def test_permissions_of_another_guard_are_not_attached(session, cache):
    web = await make_permission(session, "read posts")
    api = await make_permission(session, "read api", guard="api")

    role = await service.create_role(session, cache, "reader", permission_ids=[web.id, api.id])
    assert names(role) == {"read posts"}

    role = await service.update_role(session, cache, role, "reader", permission_ids=[api.id])
    assert names(role) == set()

    role = await service.update_role(session, cache, role, "reader", guard="api", permission_ids=[web.id, api.id])
    assert names(role) == {"read api"}


async def test_deleting_a_permission_refreshes_every_guard_holding_it(session, cache):
    api = await make_permission(session, "read api", guard="api")
    role = await make_role(session, "reader")
    role.permissions.append(api)
    await session.commit()
    user = await make_user(session, "jane@example.com", (role,))
    assert (await cache.grants_for(session, user.id, "web")).has_permission("read api")

    await service.delete_permission(session, cache, api)

    assert not cache.is_cached("web")
    assert "read api" not in (await cache.grants_for(session, user.id, "web")).permissions
    assert not cache.is_cached("api")


async def test_delete_role_removes_assignments(session, cache):
    role = await make_role(session, "editor", ("edit_users",))
    user = await make_user(session, "jane@example.com", (role,))
    assert (await cache.grants_for(session, user.id, "web")).has_permission("edit_users")

    await service.delete_role(session, cache, role)

    grants = await cache.grants_for(session, user.id, "web")
    assert grants.roles == ()
    assert grants.permissions == frozenset()
    with pytest.raises(NotFoundError):
        await service.get_role_or_404(session, role.id)


async def test_duplicate_permission_rejected(session, cache):
    await service.create_permission(session, cache, "view posts")

    with pytest.raises(DuplicateError) as exc_info:
        await service.create_permission(session, cache, "view posts")
    assert exc_info.value.errors == {"name": "The name has already been taken."}

    api = await service.create_permission(session, cache, "view posts", guard="api")
    assert api.guard_name == "api"


async def test_mutations_are_logged_with_actor(session, cache):
    actor = await make_user(session, "root@example.com")
    audit = AuditContext(user_id=actor.id, ip_address="127.0.0.1", user_agent="pytest")

    permission = await service.create_permission(session, cache, "view posts", audit=audit)
    role = await service.create_role(session, cache, "viewer", permission_ids=[permission.id], audit=audit)
    await service.update_role(session, cache, role, "reader", permission_ids=[permission.id], audit=audit)
    # No change, nothing logged
    await service.update_role(session, cache, role, "reader", permission_ids=[permission.id], audit=audit)
    await service.delete_role(session, cache, role, audit=audit)

    result = await session.execute(select(ActivityLog).order_by(ActivityLog.id))
    entries = result.scalars().all()

    assert [(e.event, e.subject_type) for e in entries] == [
        ("created", "permissions"),
        ("created", "roles"),
        ("updated", "roles"),
        ("deleted", "roles"),
    ]
    assert entries[1].properties["attributes"]["permissions"] == ["view posts"]
    assert entries[2].properties == {"attributes": {"name": "reader"}, "old": {"name": "viewer"}}
    assert all(e.causer_id == actor.id and e.ip_address == "127.0.0.1" for e in entries)


async def test_sync_user_roles_keeps_assignment_order(session, cache):
    admin = await make_role(session, "admin")
    editor = await make_role(session, "editor")
    viewer = await make_role(session, "viewer")
    user = await make_user(session, "jane@example.com", (editor,))

    await service.sync_user_roles(session, cache, user, [viewer.id, editor.id, admin.id])
    assert [role.name for role in user.roles] == ["editor", "viewer", "admin"]
    assert primary_role(user).name == "editor"

    await service.sync_user_roles(session, cache, user, [admin.id, "missing"])
    assert [role.name for role in user.roles] == ["admin"]

    grants = await cache.grants_for(session, user.id, "web")
    assert grants.roles == ("admin",)

    await service.sync_user_roles(session, cache, user, [])
    assert primary_role(user) is None


async def test_first_or_create_role(session):
    created = await service.first_or_create_role(session, "user")
    await session.commit()

    assert (await service.first_or_create_role(session, "user")).id == created.id
