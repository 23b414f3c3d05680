from leaderboard.config import ServerConfig


def test_defaults(monkeypatch):
    for name in ("LEADERBOARD_HOST", "HOST", "LEADERBOARD_PORT", "PORT", "LEADERBOARD_DATA_FILE", "LEADERBOARD_LOG_LEVEL"):
        monkeypatch.delenv(name, raising=False)
    cfg = ServerConfig.from_env()
    assert cfg.host == "0.0.0.0"
    assert cfg.port == 3001
    assert cfg.data_file.endswith("leaderboard-store.json")
    assert cfg.log_level == "INFO"


def test_prefixed_env_wins_over_plain(monkeypatch):
    monkeypatch.setenv("HOST", "10.0.0.1")
    monkeypatch.setenv("LEADERBOARD_HOST", "127.0.0.1")
    monkeypatch.setenv("PORT", "8080")
    monkeypatch.setenv("LEADERBOARD_DATA_FILE", "/tmp/lb.json")
    monkeypatch.setenv("LEADERBOARD_LOG_LEVEL", "debug")
    monkeypatch.delenv("LEADERBOARD_PORT", raising=False)
    cfg = ServerConfig.from_env()
    assert cfg.host == "127.0.0.1"
    assert cfg.port == 8080
    assert cfg.data_file == "/tmp/lb.json"
    assert cfg.log_level == "DEBUG"


def test_bad_port_falls_back(monkeypatch):
    monkeypatch.setenv("LEADERBOARD_PORT", "not-a-port")
    assert ServerConfig.from_env().port == 3001
