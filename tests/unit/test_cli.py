"""🧪 Tests for the lakeshare CLI commands."""

import pytest
from rich.console import Console

from lakeshare import cli


@pytest.fixture(autouse=True)
def wide_console(monkeypatch):
    """Keep rich from wrapping long ids in table cells."""
    monkeypatch.setattr(cli, "console", Console(width=240))


@pytest.fixture
def product_yaml(tmp_path):
    path = tmp_path / "sales.yaml"
    path.write_text(
        """
producer_domain_id: "222222222222"
storage_location: producer-bucket/sales/
database_name: sales
tables: [orders]
"""
    )
    return path


class TestCommands:
    def test_simulate(self, sample_mesh_yaml, capsys):
        cli.simulate(sample_mesh_yaml)

        out = capsys.readouterr().out
        assert "RegisterDataProduct" in out
        assert "CreateResourceLinks" in out
        assert "UpdateTableSchemas" in out
        assert "rl-orders" in out

    def test_publish_dry_run(self, product_yaml, sample_mesh_yaml, capsys):
        cli.publish(product_yaml, sample_mesh_yaml, dry_run=True)

        out = capsys.readouterr().out
        assert "Data product registered" in out
        assert "222222222222_sales" in out

    def test_publish_missing_file(self, tmp_path):
        with pytest.raises(cli.LakeshareError, match="No data product definition"):
            cli.publish(tmp_path / "missing.yaml", dry_run=True)

    def test_register_and_list_domains(self, sample_mesh_yaml, tmp_path, monkeypatch, capsys):
        monkeypatch.setenv("LAKESHARE_REGISTRY_DB", str(tmp_path / "registry.db"))
        cli.get_settings.cache_clear()

        try:
            cli.register_domain(sample_mesh_yaml, "222222222222")
            cli.list_domains()
        finally:
            cli.get_settings.cache_clear()

        out = capsys.readouterr().out
        assert "AllowCentralAccountToPutEvents" in out
        assert "222222222222_dataDomainEventBus" in out
        assert "111111111111" in out
