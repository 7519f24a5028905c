import pokemon_api.__main__ as entrypoint


def test_main_serves_module_level_app(monkeypatch):
    calls = []
    monkeypatch.setenv("PORT", "9001")
    monkeypatch.setattr(entrypoint.uvicorn, "run", lambda app, **kwargs: calls.append((app, kwargs)))

    entrypoint.main()

    assert len(calls) == 1
    app, kwargs = calls[0]
    # import string, so uvicorn builds the single app and runs its lifespan
    assert app == "pokemon_api.main:app"
    assert kwargs["port"] == 9001


def test_logger_follows_module_name():
    assert entrypoint.logger.name == "pokemon_api.__main__"
