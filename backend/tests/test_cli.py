"""
CLI command tests.
"""

from balepos.models import Bale, Customer, Device, DeviceStatus, Product, ShopSettings


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0, result.output
    assert "PASS Created 2 bales" in result.output
    assert db_session.query(Bale).count() == 2
    assert db_session.query(Product).count() == 5
    assert db_session.get(ShopSettings, 1) is not None
    blocked = db_session.query(Customer).filter_by(username="joy_reserver_123").one()
    assert blocked.is_blacklisted is True

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "WARN" in result.output
    assert db_session.query(Bale).count() == 2


def test_device_approval(app, db_session):
    device = Device(device_id="cli-device", name="Front", status=DeviceStatus.PENDING)
    db_session.add(device)
    db_session.commit()

    runner = app.test_cli_runner()
    result = runner.invoke(args=["devices", "approve", str(device.id)])
    assert result.exit_code == 0, result.output
    assert db_session.get(Device, device.id).status == DeviceStatus.APPROVED

    result = runner.invoke(args=["devices", "list"])
    assert "cli-device" not in result.output
    assert "Front" in result.output

    result = runner.invoke(args=["devices", "block", "999"])
    assert result.exit_code != 0


def test_mirror_flush_without_remote(app, db_session):
    result = app.test_cli_runner().invoke(args=["mirror", "flush"])
    assert result.exit_code == 0
    assert "MIRROR_URL is not set" in result.output


def test_sessions_list_empty(app, db_session):
    result = app.test_cli_runner().invoke(args=["sessions", "list", "--open"])
    assert "No sessions found" in result.output
