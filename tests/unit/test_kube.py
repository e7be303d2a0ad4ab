"""Unit tests for kubemirror.kube (credential resolution and API selection)."""

from __future__ import annotations

from collections.abc import Iterator
from pathlib import Path
from unittest.mock import AsyncMock, MagicMock, patch

import pytest
from kubernetes_asyncio import client as k8s_client
from kubernetes_asyncio import config as k8s_config

from kubemirror import kube
from kubemirror.errors import ConfigError
from kubemirror.kube import api_for_kind, build_source, load_kube_config

Loaders = tuple[AsyncMock, MagicMock]


@pytest.fixture
def loaders(monkeypatch: pytest.MonkeyPatch) -> Iterator[Loaders]:
    """Patch the kubernetes-asyncio loaders; in-cluster loading fails by default."""
    monkeypatch.delenv("KUBECONFIG", raising=False)
    load_file = AsyncMock()
    load_incluster = MagicMock(side_effect=k8s_config.ConfigException("not in a pod"))
    with (
        patch.object(kube.k8s_config, "load_kube_config", load_file),
        patch.object(kube.k8s_config, "load_incluster_config", load_incluster),
    ):
        yield load_file, load_incluster


def _kubeconfig(tmp_path: Path, name: str = "config") -> Path:
    path = tmp_path / name
    path.write_text("apiVersion: v1\nkind: Config\n")
    return path


class TestLoadKubeConfig:
    async def test_kubeconfig_env_wins(self, loaders: Loaders, tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> None:
        load_file, load_incluster = loaders
        env_path = _kubeconfig(tmp_path, "env-config")
        flag_path = _kubeconfig(tmp_path, "flag-config")
        monkeypatch.setenv("KUBECONFIG", str(env_path))

        assert await load_kube_config(str(flag_path)) == str(env_path)
        load_file.assert_awaited_once()
        load_incluster.assert_not_called()

    async def test_missing_kubeconfig_env_file_is_an_error(
        self, loaders: Loaders, monkeypatch: pytest.MonkeyPatch
    ) -> None:
        monkeypatch.setenv("KUBECONFIG", "/nonexistent/kubeconfig")
        with pytest.raises(ConfigError, match="KUBECONFIG is set but file not found"):
            await load_kube_config()

    async def test_explicit_path(self, loaders: Loaders, tmp_path: Path) -> None:
        path = _kubeconfig(tmp_path)
        assert await load_kube_config(str(path)) == str(path)

    async def test_missing_explicit_path_is_an_error(self, loaders: Loaders) -> None:
        with pytest.raises(ConfigError, match="kubeconfig provided but not found"):
            await load_kube_config("/nonexistent/kubeconfig")

    async def test_in_cluster(self, loaders: Loaders, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        load_file, load_incluster = loaders
        load_incluster.side_effect = None
        monkeypatch.setenv("HOME", str(tmp_path))

        assert await load_kube_config() == "in-cluster"
        load_file.assert_not_awaited()

    async def test_home_default(self, loaders: Loaders, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        (tmp_path / ".kube").mkdir()
        default = _kubeconfig(tmp_path / ".kube")
        monkeypatch.setenv("HOME", str(tmp_path))

        assert await load_kube_config() == str(default)

    async def test_nothing_found(self, loaders: Loaders, monkeypatch: pytest.MonkeyPatch, tmp_path: Path) -> None:
        monkeypatch.setenv("HOME", str(tmp_path))
        with pytest.raises(ConfigError, match="no kubeconfig found"):
            await load_kube_config()

    async def test_home_unset(self, loaders: Loaders, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.delenv("HOME", raising=False)
        with pytest.raises(ConfigError, match="HOME not set"):
            await load_kube_config()

    async def test_unparseable_file_is_an_error(self, loaders: Loaders, tmp_path: Path) -> None:
        load_file, _ = loaders
        load_file.side_effect = RuntimeError("bad yaml")
        with pytest.raises(ConfigError, match="bad yaml"):
            await load_kube_config(str(_kubeconfig(tmp_path)))


class TestApiForKind:
    @pytest.mark.parametrize(
        ("kind", "api_cls"),
        [
            ("Pod", k8s_client.CoreV1Api),
            ("Node", k8s_client.CoreV1Api),
            ("Deployment", k8s_client.AppsV1Api),
            ("Job", k8s_client.BatchV1Api),
        ],
    )
    def test_kind_maps_to_api_group(self, kind: str, api_cls: type) -> None:
        api_client = MagicMock()
        api = api_for_kind(kind, api_client)
        assert isinstance(api, api_cls)
        assert api.api_client is api_client

    def test_unsupported_kind(self) -> None:
        with pytest.raises(ValueError, match="Unsupported kind"):
            api_for_kind("Widget", MagicMock())

    def test_build_source_scopes(self) -> None:
        namespaced = build_source("Pod", "prod", api_client=MagicMock())
        assert namespaced.kind == "Pod"
        assert namespaced.namespace == "prod"

        everywhere = build_source("Pod", "", api_client=MagicMock())
        assert everywhere.namespace == ""

        cluster = build_source("Node", "prod", api_client=MagicMock())
        assert cluster.namespace == ""
