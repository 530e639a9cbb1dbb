from tests.factories import auth_headers, make_permission, make_role, make_user


async def test_editor_is_denied_role_management(client, editor):
    headers = auth_headers(editor)

    assert (await client.get("/permissions/roles", headers=headers)).status_code == 403
    assert (await client.post("/permissions/roles", json={"name": "x"}, headers=headers)).status_code == 403
    assert (await client.get("/permissions/permissions", headers=headers)).status_code == 403
    assert (await client.post("/permissions/generate", json={"models": ["User"]}, headers=headers)).status_code == 403


async def test_admin_is_denied_role_management(client, admin):
    response = await client.get("/permissions/roles", headers=auth_headers(admin))

    assert response.status_code == 403


async def test_role_crud(client, superadmin, session):
    headers = auth_headers(superadmin)
    manage = await make_permission(session, "manage posts")
    publish = await make_permission(session, "publish posts")

    response = await client.post(
        "/permissions/roles",
        json={"name": "content-manager", "permissions": [manage.id, str(publish.id), "bogus"]},
        headers=headers,
    )
    assert response.status_code == 201
    role = response.json()
    assert role["guard_name"] == "web"
    assert {p["name"] for p in role["permissions"]} == {"manage posts", "publish posts"}
    assert role["permissions_count"] == 2

    response = await client.put(
        f"/permissions/roles/{role['id']}",
        json={"name": "content-manager", "permissions": [manage.id]},
        headers=headers,
    )
    assert response.status_code == 200
    assert [p["name"] for p in response.json()["permissions"]] == ["manage posts"]

    response = await client.get("/permissions/roles", params={"filter[search]": "content"}, headers=headers)
    assert [r["name"] for r in response.json()["data"]] == ["content-manager"]
    assert response.json()["data"][0]["permissions_count"] == 1

    response = await client.delete(f"/permissions/roles/{role['id']}", headers=headers)
    assert response.status_code == 204
    assert (await client.get(f"/permissions/roles/{role['id']}", headers=headers)).status_code == 404


async def test_duplicate_role_name(client, superadmin):
    headers = auth_headers(superadmin)

    response = await client.post("/permissions/roles", json={"name": "superadmin"}, headers=headers)

    assert response.status_code == 400
    assert response.json() == {"name": "The name has already been taken."}


async def test_role_change_reaches_next_request(client, superadmin, session):
    role = await make_role(session, "writer", ("write posts", "publish posts"))
    writer = await make_user(session, "writer@example.com", (role,))
    check = {"action": "publish posts"}

    response = await client.post("/permissions/check", json=check, headers=auth_headers(writer))
    assert response.json()["has_permission"] is True

    keep = [p.id for p in role.permissions if p.name == "write posts"]
    response = await client.put(
        f"/permissions/roles/{role.id}",
        json={"name": "writer", "permissions": keep},
        headers=auth_headers(superadmin),
    )
    assert response.status_code == 200

    response = await client.post("/permissions/check", json=check, headers=auth_headers(writer))
    assert response.json()["has_permission"] is False


async def test_permission_crud(client, superadmin):
    headers = auth_headers(superadmin)

    response = await client.post("/permissions/permissions", json={"name": " view reports "}, headers=headers)
    assert response.status_code == 201
    permission = response.json()
    assert permission["name"] == "view reports"

    response = await client.post("/permissions/permissions", json={"name": "view reports"}, headers=headers)
    assert response.status_code == 400

    response = await client.get("/permissions/permissions", headers=headers)
    assert [p["name"] for p in response.json()["data"]] == ["view reports"]

    response = await client.delete(f"/permissions/permissions/{permission['id']}", headers=headers)
    assert response.status_code == 204
    assert (await client.get(f"/permissions/permissions/{permission['id']}", headers=headers)).status_code == 404


async def test_generate_endpoint(client, superadmin):
    headers = auth_headers(superadmin)
    payload = {"models": ["User", "Product"], "actions": ["create", "edit"]}

    first = await client.post("/permissions/generate", json=payload, headers=headers)
    assert first.json() == {
        "created": {"users": ["create users", "edit users"], "products": ["create products", "edit products"]},
        "total_created": 4,
    }

    second = await client.post("/permissions/generate", json=payload, headers=headers)
    assert second.json()["total_created"] == 0


async def test_check_self_delete(client, superadmin, session):
    other = await make_user(session, "other@example.com")
    headers = auth_headers(superadmin)

    response = await client.post(
        "/permissions/check",
        json={"action": "delete", "resource_type": "users", "resource_id": other.id},
        headers=headers,
    )
    assert response.json()["has_permission"] is True

    response = await client.post(
        "/permissions/check",
        json={"action": "delete", "resource_type": "users", "resource_id": superadmin.id},
        headers=headers,
    )
    assert response.json()["has_permission"] is False


async def test_my_grants(client, admin):
    response = await client.get("/permissions/me/grants", headers=auth_headers(admin))

    assert response.status_code == 200
    body = response.json()
    assert body["roles"] == ["admin"]
    assert "view_users" in body["permissions"]
    assert body["guard_name"] == "web"
