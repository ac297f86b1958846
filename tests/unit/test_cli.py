"""Unit tests for CLI commands."""

import pytest
from typer.testing import CliRunner

from provisioning_controller.cli import app
from provisioning_controller.store import ResourceKind

runner = CliRunner()


@pytest.fixture
def connected(monkeypatch, context):
    """Make commands use the in-memory controller context."""
    monkeypatch.setattr(
        "provisioning_controller.cli.build_context",
        lambda settings, in_cluster, kubeconfig, addresses: context,
    )
    return context


def test_version():
    """Test that version prints the package version."""
    result = runner.invoke(app, ["version"])
    assert result.exit_code == 0
    assert "provisioning-controller version 0.1.0" in result.stdout


def test_run_help():
    """Test that run command help works."""
    result = runner.invoke(app, ["run", "--help"])
    assert result.exit_code == 0
    assert "Run the controller until interrupted" in result.stdout
    assert "--config" in result.stdout
    assert "--in-cluster" in result.stdout
    assert "--kubeconfig" in result.stdout


@pytest.mark.parametrize(
    "addresses,expected",
    [
        (["192.168.0.1"], "v4"),
        (["2001:db8::68"], "v6"),
        (["2001:db8::68", "192.168.0.1"], "dual"),
        (["127.0.0.1", "2001:db8::68"], "v6"),
    ],
)
def test_network_stack(addresses, expected):
    """Test that network-stack classifies addresses."""
    result = runner.invoke(app, ["network-stack", *addresses])
    assert result.exit_code == 0
    assert result.stdout.strip() == expected


def test_network_stack_invalid_address():
    """Test that network-stack fails gracefully on garbage input."""
    result = runner.invoke(app, ["network-stack", "192.168.0.1", "not-an-ip"])
    assert result.exit_code == 1
    assert "not-an-ip" in result.stdout


def test_reconcile_once_converged(connected):
    """Test that reconcile-once shows a converged outcome."""
    result = runner.invoke(app, ["reconcile-once"])
    assert result.exit_code == 0
    assert "Reconcile Outcome" in result.stdout
    assert "api-int.ostest.test.metalkube.org" in result.stdout
    assert "Managed" in result.stdout
    assert "converged" in result.stdout


def test_reconcile_once_not_configured(connected):
    """Test that reconcile-once reports a missing Provisioning singleton."""
    connected.store.delete(ResourceKind.PROVISIONING, "provisioning-configuration")

    result = runner.invoke(app, ["reconcile-once"])
    assert result.exit_code == 0
    assert "not configured" in result.stdout


def test_reconcile_once_error(connected):
    """Test that reconcile-once exits non-zero when the pass fails."""
    connected.store.delete(ResourceKind.INFRASTRUCTURE, "cluster")

    result = runner.invoke(app, ["reconcile-once"])
    assert result.exit_code == 1
    assert "PlatformIndeterminate" in result.stdout
    assert "Would retry in 5s" in result.stdout


def test_reconcile_once_missing_config_file(tmp_path):
    """Test that a missing settings file fails before connecting."""
    result = runner.invoke(app, ["reconcile-once", "--config", str(tmp_path / "missing.yaml")])
    assert result.exit_code == 1
    assert "Configuration Error" in result.stdout
    assert "Settings file not found" in result.stdout


def test_reconcile_once_invalid_config_file(tmp_path):
    """Test that invalid settings are reported."""
    path = tmp_path / "settings.yaml"
    path.write_text("resync_seconds: -1\n")

    result = runner.invoke(app, ["reconcile-once", "--config", str(path)])
    assert result.exit_code == 1
    assert "Invalid controller settings" in result.stdout
    assert "resync_seconds" in result.stdout


def test_reconcile_once_without_cluster(monkeypatch):
    """Test that a kube config failure fails gracefully."""

    def fail(*args):
        raise RuntimeError("no kubeconfig")

    monkeypatch.setattr("provisioning_controller.cli.build_context", fail)

    result = runner.invoke(app, ["reconcile-once"])
    assert result.exit_code == 1
    assert "Failed to load Kubernetes configuration" in result.stdout


def test_reconcile_once_config_is_a_directory(tmp_path):
    """Test that an unreadable settings path is reported, not raised."""
    result = runner.invoke(app, ["reconcile-once", "--config", str(tmp_path)])
    assert result.exit_code == 1
    assert "Configuration Error" in result.stdout
    assert "Failed to read settings file" in result.stdout
