import json

from counterpos.extensions import db
from counterpos.models import Product, User
from counterpos.services import auth_service, settings_service


def test_system_init_is_idempotent(app, db_session):
    runner = app.test_cli_runner()

    result = runner.invoke(args=["system", "init", "--shop", "Corner Cafe", "--admin-pin", "2580"])
    assert result.exit_code == 0
    assert "PASS Created admin user 'admin'" in result.output
    assert settings_service.get_shop_settings().name == "Corner Cafe"
    assert auth_service.authenticate("admin", "2580") is not None

    result = runner.invoke(args=["system", "init"])
    assert result.exit_code == 0
    assert "already exists" in result.output
    assert db.session.query(User).count() == 1


def test_users_create_rejects_bad_pin(app, db_session):
    runner = app.test_cli_runner()
    result = runner.invoke(args=["users", "create", "--name", "sara", "--pin", "12", "--role", "cashier"])
    assert "FAIL" in result.output
    assert auth_service.get_user_by_name("sara") is None


def test_seed_demo_then_backup_round_trip(app, db_session, tmp_path):
    runner = app.test_cli_runner()
    assert runner.invoke(args=["system", "seed-demo"]).exit_code == 0
    products = db.session.query(Product).count()
    assert products == 3

    path = tmp_path / "backup.json"
    result = runner.invoke(args=["backup", "export", str(path)])
    assert result.exit_code == 0
    assert json.loads(path.read_text())["tables"]["recipes"]

    db.session.query(Product).filter_by(name="Milk").one().name = "Oat drink"
    db.session.commit()

    result = runner.invoke(args=["backup", "import", str(path), "--yes"])
    assert result.exit_code == 0
    assert db.session.query(Product).filter_by(name="Milk").count() == 1
    assert db.session.query(Product).count() == products
