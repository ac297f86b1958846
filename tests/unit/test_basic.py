"""Basic tests to verify project setup."""


def test_import_provisioning_controller():
    """Test that the package can be imported."""
    import provisioning_controller

    assert provisioning_controller.__version__ == "0.1.0"


def test_import_cli():
    """Test that CLI module can be imported."""
    from provisioning_controller import cli

    assert cli.app is not None


def test_import_models():
    """Test that models module exports the public types."""
    from provisioning_controller import models

    assert models.ReconcileOutcome is not None
    assert models.PROVISIONING_SINGLETON_NAME == "provisioning-configuration"
