from tests.factories import auth_headers, make_user


async def test_user_changes_are_logged(client, admin, superadmin):
    response = await client.post(
        "/users", json={"name": "Jane", "email": "jane@example.com"}, headers=auth_headers(admin)
    )
    jane_id = response.json()["id"]
    await client.put(
        f"/users/{jane_id}",
        json={"name": "Jane Doe", "email": "jane@example.com", "role": response.json()["roles"][0]["id"]},
        headers=auth_headers(admin),
    )
    await client.delete(f"/users/{jane_id}", headers=auth_headers(superadmin))

    response = await client.get(
        "/activity-logs",
        params={"filter[subject_type]": "users", "sort": "created_at"},
        headers=auth_headers(admin),
    )
    assert response.status_code == 200
    entries = response.json()["data"]

    assert [e["event"] for e in entries] == ["created", "updated", "deleted"]
    assert all(e["subject_id"] == jane_id for e in entries)
    assert entries[0]["description"] == "Created User"
    assert entries[0]["causer"]["email"] == "admin@example.com"
    assert "password" not in entries[0]["properties"]["attributes"]
    assert entries[1]["properties"] == {"attributes": {"name": "Jane Doe"}, "old": {"name": "Jane"}}
    assert entries[2]["causer_id"] == superadmin.id


async def test_filters(client, admin):
    await client.post("/users", json={"name": "Jane", "email": "jane@example.com"}, headers=auth_headers(admin))

    response = await client.get("/activity-logs", params={"filter[event]": "deleted"}, headers=auth_headers(admin))
    assert response.json()["meta"]["total"] == 0

    response = await client.get(
        "/activity-logs", params={"filter[causer_id]": admin.id}, headers=auth_headers(admin)
    )
    assert response.json()["meta"]["total"] == 1

    response = await client.get("/activity-logs", params={"filter[search]": "created"}, headers=auth_headers(admin))
    assert response.json()["meta"]["total"] == 1


async def test_show_entry(client, admin):
    await client.post("/users", json={"name": "Jane", "email": "jane@example.com"}, headers=auth_headers(admin))
    listed = await client.get("/activity-logs", headers=auth_headers(admin))
    entry_id = listed.json()["data"][0]["id"]

    response = await client.get(f"/activity-logs/{entry_id}", headers=auth_headers(admin))
    assert response.status_code == 200
    assert response.json()["event"] == "created"

    response = await client.get("/activity-logs/9999", headers=auth_headers(admin))
    assert response.status_code == 404


async def test_requires_view_activity_logs(client, editor, session):
    plain = await make_user(session, "plain@example.com")

    assert (await client.get("/activity-logs", headers=auth_headers(editor))).status_code == 403
    assert (await client.get("/activity-logs", headers=auth_headers(plain))).status_code == 403
