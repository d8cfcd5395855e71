from config import Settings, pick_data_dir


def test_settings_default_to_sqlite_in_data_dir(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.delenv("DATABASE_URL", raising=False)
    monkeypatch.delenv("WEEKLY_OVERTIME_HOURS", raising=False)
    monkeypatch.setenv("LOG_LEVEL", "debug")

    settings = Settings.from_env()

    assert settings.data_dir == tmp_path
    assert settings.database_url == f"sqlite:///{(tmp_path / 'payroll.db').as_posix()}"
    assert settings.weekly_overtime_hours == 40.0
    assert settings.log_level == "DEBUG"


def test_settings_read_overrides(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path))
    monkeypatch.setenv("DATABASE_URL", "postgresql://crew@db.example/payroll")
    monkeypatch.setenv("WEEKLY_OVERTIME_HOURS", "38")

    settings = Settings.from_env()

    assert settings.database_url == "postgresql://crew@db.example/payroll"
    assert settings.weekly_overtime_hours == 38.0


def test_pick_data_dir_leaves_no_scratch_file(monkeypatch, tmp_path):
    monkeypatch.setenv("DATA_DIR", str(tmp_path / "nested"))

    chosen = pick_data_dir()

    assert chosen == tmp_path / "nested"
    assert not (chosen / ".rwtest").exists()
