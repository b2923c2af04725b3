"""End-to-end tests for the slotguard CLI."""

import json
import shutil

import pytest
import yaml
from typer.testing import CliRunner

from slotguard import __version__
from slotguard.cli.app import app

runner = CliRunner()

EXAMPLE_MAIN = "0x183a6125c38840424c4a85fa12bab2ab606c4b6d0e7cc73c0c06ba5300eab500"


@pytest.fixture
def workspace(project, contracts_dir):
    """Project directory holding a copy of the fixture contracts."""
    for source in contracts_dir.glob("*.sol"):
        shutil.copy(source, project / source.name)
    return project


def invoke(*args: str):
    return runner.invoke(app, list(args))


class TestRoot:
    def test_version(self):
        result = invoke("--version")
        assert result.exit_code == 0
        assert result.stdout.strip() == f"slotguard {__version__}"

    def test_bad_log_format(self, workspace):
        result = invoke("--log-format", "xml", "namespace", "example.main")
        assert result.exit_code == 2

    def test_invalid_project_config(self, workspace):
        (workspace / "slotguard.toml").write_text('kind = "diamond"\n')
        result = invoke("namespace", "example.main")
        assert result.exit_code == 2


class TestLayout:
    def test_table(self, workspace):
        result = invoke("layout", "Vault.sol:Vault")
        assert result.exit_code == 0
        assert "6 variables, 101 slots" in result.stdout

    def test_json(self, workspace):
        result = invoke("layout", "Vault.sol:Vault", "--format", "json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["contract"] == "Vault"
        assert [item["label"] for item in data["storage"]][3:5] == ["totalDeposits", "balances"]

    def test_yaml(self, workspace):
        result = invoke("layout", "Vault.sol:Vault", "-f", "yaml")
        assert result.exit_code == 0
        assert yaml.safe_load(result.stdout)["storage"][0]["label"] == "_owner"

    def test_solc(self, workspace):
        result = invoke("layout", "Vault.sol:Vault", "--format", "solc")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert set(data) >= {"storage", "types"}
        assert data["storage"][0]["slot"] == "0"

    def test_single_contract_file_needs_no_name(self, workspace):
        result = invoke("layout", "Vault.sol", "-f", "json")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["contract"] == "Vault"

    def test_several_contracts_need_a_name(self, workspace):
        result = invoke("layout", "Upgradeable.sol")
        assert result.exit_code == 2
        assert "declares 3 contracts" in result.output

    def test_missing_file(self, workspace):
        result = invoke("layout", "Missing.sol:Missing")
        assert result.exit_code == 2

    def test_unknown_format(self, workspace):
        result = invoke("layout", "Vault.sol:Vault", "--format", "xml")
        assert result.exit_code == 2


class TestNamespace:
    def test_slot(self):
        result = invoke("namespace", "example.main")
        assert result.exit_code == 0
        assert result.stdout.strip() == EXAMPLE_MAIN

    def test_json(self):
        result = invoke("namespace", "example.main", "--json")
        assert json.loads(result.stdout) == {"id": "example.main", "formula": "erc7201", "slot": EXAMPLE_MAIN}


class TestValidate:
    def test_safe_contract(self, workspace):
        result = invoke("validate", "Vault.sol:Vault")
        assert result.exit_code == 0
        assert "PASS: Vault" in result.stdout

    def test_unsafe_contract(self, workspace):
        result = invoke("validate", "Unsafe.sol:Unsafe", "--json")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert [f["code"] for f in data["findings"]] == ["E001", "E002", "E003", "E004", "W001", "E104"]

    def test_unsafe_allow_flag(self, workspace):
        result = invoke(
            "validate",
            "Unsafe.sol:Unsafe",
            "--json",
            "--unsafe-allow", "constructor",
            "--unsafe-allow", "state-variable-assignment",
            "--unsafe-allow", "state-variable-immutable",
            "--unsafe-allow", "selfdestruct",
            "--unsafe-allow", "unprotected-initializer",
        )
        assert result.exit_code == 0
        assert [f["code"] for f in json.loads(result.stdout)["findings"]] == ["W001"]

    def test_strict_fails_on_warnings(self, workspace):
        result = invoke(
            "validate",
            "Unsafe.sol:Unsafe",
            "--strict",
            "--unsafe-allow", "constructor",
            "--unsafe-allow", "state-variable-assignment",
            "--unsafe-allow", "state-variable-immutable",
            "--unsafe-allow", "selfdestruct",
            "--unsafe-allow", "unprotected-initializer",
        )
        assert result.exit_code == 1

    def test_unknown_unsafe_allow_kind(self, workspace):
        result = invoke("validate", "Vault.sol:Vault", "--unsafe-allow", "everything")
        assert result.exit_code == 2

    def test_uups_requires_upgrade_function(self, workspace):
        result = invoke("validate", "Vault.sol:Vault", "--kind", "uups", "--json")
        assert result.exit_code == 1
        assert [f["code"] for f in json.loads(result.stdout)["findings"]] == ["E008"]

    def test_kind_from_project_config(self, workspace):
        (workspace / "slotguard.toml").write_text('kind = "uups"\n')
        result = invoke("validate", "Vault.sol:Vault")
        assert result.exit_code == 1

    def test_upgrade_from_annotation(self, workspace):
        result = invoke("validate", "VaultV2.sol:VaultV2", "--json")
        assert result.exit_code == 0
        assert json.loads(result.stdout)["layout"]["original"] == "Vault"

    def test_broken_upgrade(self, workspace):
        result = invoke("validate", "VaultV2Broken.sol:VaultV2Broken", "--json")
        assert result.exit_code == 1
        data = json.loads(result.stdout)
        assert data["findings"] == []
        assert data["layout"]["passed"] is False

    def test_skip_storage_check_setting(self, workspace, monkeypatch):
        monkeypatch.setenv("SLOTGUARD_UNSAFE_SKIP_STORAGE_CHECK", "true")
        result = invoke("validate", "VaultV2Broken.sol:VaultV2Broken")
        assert result.exit_code == 0


class TestCompare:
    def test_compatible(self, workspace):
        result = invoke("compare", "VaultV2.sol:VaultV2", "--from", "Vault.sol:Vault")
        assert result.exit_code == 0

    def test_incompatible(self, workspace):
        result = invoke("compare", "VaultV2Broken.sol:VaultV2Broken", "--from", "Vault.sol:Vault", "--json")
        assert result.exit_code == 1
        (operation,) = [op for op in json.loads(result.stdout)["operations"] if not op["safe"]]
        assert operation["kind"] == "insert"
        assert operation["src"] == "VaultV2Broken.sol:9"

    def test_annotation_is_default_reference(self, workspace):
        result = invoke("compare", "VaultV2Broken.sol:VaultV2Broken")
        assert result.exit_code == 1

    def test_from_layout_file(self, workspace):
        exported = invoke("layout", "Vault.sol:Vault", "--format", "json")
        (workspace / "vault.layout.json").write_text(exported.stdout)
        solc = invoke("layout", "Vault.sol:Vault", "--format", "solc")
        (workspace / "vault.solc.json").write_text(solc.stdout)

        assert invoke("compare", "VaultV2.sol:VaultV2", "--from", "vault.layout.json").exit_code == 0
        assert invoke("compare", "VaultV2.sol:VaultV2", "--from", "vault.solc.json").exit_code == 0
        assert invoke("compare", "VaultV2Broken.sol:VaultV2Broken", "--from", "vault.layout.json").exit_code == 1

    def test_no_reference(self, workspace):
        result = invoke("compare", "Vault.sol:Vault")
        assert result.exit_code == 2
        assert "oz-upgrades-from" in result.output


class TestSnapshot:
    def test_save_list_check(self, workspace):
        saved = invoke("snapshot", "save", "Vault.sol:Vault", "--version", "1.0.0", "--dir", "snaps")
        assert saved.exit_code == 0
        assert "Saved Vault@1.0.0" in saved.stdout

        listed = invoke("snapshot", "list", "--dir", "snaps", "--json")
        assert [(e["contract"], e["version"]) for e in json.loads(listed.stdout)] == [("Vault", "1.0.0")]

        ok = invoke("snapshot", "check", "VaultV2.sol:VaultV2", "--contract", "Vault", "--dir", "snaps")
        assert ok.exit_code == 0
        broken = invoke("snapshot", "check", "VaultV2Broken.sol:VaultV2Broken", "--contract", "Vault", "--dir", "snaps")
        assert broken.exit_code == 1

    def test_save_twice(self, workspace):
        assert invoke("snapshot", "save", "Vault.sol:Vault", "--version", "1.0.0", "--dir", "snaps").exit_code == 0
        again = invoke("snapshot", "save", "Vault.sol:Vault", "--version", "1.0.0", "--dir", "snaps")
        assert again.exit_code == 2
        overwrite = invoke(
            "snapshot", "save", "Vault.sol:Vault", "--version", "1.0.0", "--dir", "snaps", "--overwrite"
        )
        assert overwrite.exit_code == 0

    def test_default_directory_from_settings(self, workspace):
        (workspace / "slotguard.toml").write_text('snapshot-dir = "layouts"\n')
        assert invoke("snapshot", "save", "Vault.sol:Vault", "--version", "1.0.0").exit_code == 0
        assert (workspace / "layouts" / "manifest.json").is_file()

    def test_empty_list(self, workspace):
        result = invoke("snapshot", "list", "--dir", "snaps")
        assert result.exit_code == 0
        assert "No snapshots." in result.stdout

    def test_check_without_snapshot(self, workspace):
        result = invoke("snapshot", "check", "Vault.sol:Vault", "--dir", "snaps")
        assert result.exit_code == 2


class TestConfig:
    def test_show_json(self, workspace):
        (workspace / "slotguard.toml").write_text('kind = "uups"\nunsafe-allow = ["delegatecall"]\n')
        result = invoke("config", "show", "--format", "json")
        assert result.exit_code == 0
        data = json.loads(result.stdout)
        assert data["kind"] == "uups"
        assert data["unsafe_allow"] == ["delegatecall"]
        assert "project_root" not in data

    def test_show_env(self, workspace):
        result = invoke("config", "show", "--format", "env")
        assert "SLOTGUARD_KIND=transparent" in result.stdout.splitlines()

    def test_show_table(self, workspace):
        result = invoke("config", "show")
        assert result.exit_code == 0
        assert "Project Root:" in result.stdout
