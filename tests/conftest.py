pytest_plugins = ["foureyes.testing.conftest"]
