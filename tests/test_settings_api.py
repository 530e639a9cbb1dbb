from backoffice.features.settings.service import SettingsStore, SystemSettings, load_system_settings
from tests.factories import auth_headers, make_role, make_user


async def test_defaults_apply_until_saved(session):
    assert (await load_system_settings(session)).registration_enabled is True

    store = SettingsStore(session)
    assert await store.get("system", {"registration_enabled": True, "other": 1}) == {
        "registration_enabled": True,
        "other": 1,
    }


async def test_save_reports_changed_values(session):
    store = SettingsStore(session)

    assert await store.save("system", {"registration_enabled": False}) == {"registration_enabled": None}
    assert await store.save("system", {"registration_enabled": False}) == {}
    assert await store.save("system", {"registration_enabled": True}) == {"registration_enabled": False}
    await session.commit()

    assert await store.load("system", SystemSettings) == SystemSettings(registration_enabled=True)


async def test_superadmin_disables_registration(client, superadmin):
    headers = auth_headers(superadmin)

    response = await client.put("/settings/system", json={"registration_enabled": False}, headers=headers)
    assert response.status_code == 200
    assert response.json() == {"registration_enabled": False}

    assert (await client.get("/settings/system", headers=headers)).json() == {"registration_enabled": False}
    assert (await client.get("/")).json()["can_register"] is False

    response = await client.post(
        "/users/register", json={"name": "Jane", "email": "jane@example.com", "password": "long-enough"}
    )
    assert response.status_code == 403


async def test_settings_permission_is_enough(client, session):
    role = await make_role(session, "operator", ("can-manage-system-settings",))
    operator = await make_user(session, "operator@example.com", (role,))

    response = await client.get("/settings/system", headers=auth_headers(operator))

    assert response.status_code == 200


async def test_admin_without_permission_is_denied(client, admin):
    response = await client.put(
        "/settings/system", json={"registration_enabled": False}, headers=auth_headers(admin)
    )

    assert response.status_code == 403


async def test_root_reports_status(client):
    response = await client.get("/")

    assert response.json()["status"] == "online"
    assert response.json()["can_register"] is True
    assert (await client.get("/health")).json() == {"status": "healthy"}
