"""Tests for application bootstrap and route wiring."""

from fastapi.testclient import TestClient

from ipa_signer.main import Application, create_app


async def test_setup_wires_services(config):
    app = Application(config)
    await app.setup()

    assert app.signing_service is not None
    assert app.install_service is not None
    assert app.system_scheduler is not None
    assert app.signing_service.record_dao is app.install_service.record_dao
    for name in ("p12", "mp", "temp", "signed", "plist"):
        assert (config.work_root / name).is_dir()

    await app.shutdown()


async def test_routes_are_registered(config):
    app = await create_app(config)
    client = TestClient(app.fastapi_app)

    health = client.get("/health")
    assert health.status_code == 200
    assert health.json()["status"] == "healthy"

    assert client.get("/install/1700000000000_abc123").status_code == 404
    assert client.get("/install/not-a-suffix").status_code == 404
    assert client.get("/signed/signed_1700000000000_abc123.ipa").status_code == 404
    assert client.get("/plist/App_1700000000000_abc123.plist").status_code == 404

    response = client.post("/sign", files={"ipa": ("a.ipa", b"x")})
    assert response.status_code == 400
    assert response.json() == {"error": "P12 and MobileProvision required"}

    await app.shutdown()


async def test_background_services_start_and_stop(config):
    app = await create_app(config)

    await app.start_background_services()
    assert app.system_scheduler.is_running

    await app.shutdown()
    assert not app.system_scheduler.is_running
