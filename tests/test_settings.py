"""Tests for configuration loading."""

from pathlib import Path

from mvnresolve.settings import Settings, is_flag_set, split_repositories


class TestSettings:
    """Tests for Settings.load."""

    def test_defaults(self):
        settings = Settings.load(env={}, properties={})

        assert settings.local_repository is None
        assert not settings.offline
        assert not settings.force_refresh
        assert not settings.allow_snapshots
        assert settings.timeouts == (10.0, 60.0)
        assert settings.repositories == []
        assert settings.default_local_repository == settings.cache_dir / "deps"

    def test_property_wins_over_env(self, tmp_path):
        settings = Settings.load(
            env={"MVNRESOLVE_LOCAL_REPO": str(tmp_path / "env")},
            properties={"mvnresolve.local": str(tmp_path / "prop")},
        )

        assert settings.local_repository == tmp_path / "prop"

    def test_local_repo_from_env(self, tmp_path):
        settings = Settings.load(env={"MVNRESOLVE_LOCAL_REPO": str(tmp_path / "env")}, properties={})

        assert settings.local_repository == tmp_path / "env"

    def test_home_expansion(self):
        settings = Settings.load(env={}, properties={"mvnresolve.local": "~/deps"})

        assert settings.local_repository == Path.home() / "deps"

    def test_flags(self):
        settings = Settings.load(env={}, properties={
            "mvnresolve.offline": "",
            "mvnresolve.reset": "true",
            "mvnresolve.allow.snapshots": "TRUE",
        })

        assert settings.offline
        assert settings.force_refresh
        assert settings.allow_snapshots

    def test_timeouts(self):
        settings = Settings.load(
            env={"MVNRESOLVE_CONNECT_TIMEOUT": "2000"},
            properties={"mvnresolve.request.timeout": "5000"},
        )

        assert settings.timeouts == (2.0, 5.0)

    def test_invalid_timeout_uses_default(self):
        settings = Settings.load(env={"MVNRESOLVE_CONNECT_TIMEOUT": "soon"}, properties={})

        assert settings.connect_timeout_ms == 10000

    def test_repositories_from_env_then_explicit(self):
        settings = Settings.load(env={"MVNRESOLVE_REPOS": "central, jcenter"}, properties={},
                                 repositories=["local"])

        assert settings.repositories == ["central", "jcenter", "local"]

    def test_overrides_win(self, tmp_path):
        settings = Settings.load(env={}, properties={"mvnresolve.offline": "true"}, offline=False)

        assert not settings.offline


class TestHelpers:

    def test_is_flag_set(self):
        assert is_flag_set("")
        assert is_flag_set("true")
        assert not is_flag_set("false")
        assert not is_flag_set(None)

    def test_split_repositories(self):
        assert split_repositories("a,b c") == ["a", "b", "c"]
        assert split_repositories(None) == []
