from pathlib import Path

from replayscan.utils.common import load_config
from replayscan.utils.custom_types import BytecodeType

CONFIG_DIR = Path(__file__).parent.parent / "config_samples"


def config_paths():
    return [
        p
        for p in CONFIG_DIR.rglob("*")
        if p.suffix.lower() in (".json", ".yaml", ".yml")
    ]


def test_config_samples_exist():
    assert config_paths()


def test_config_fields_present():
    for path in config_paths():
        cfg = load_config(str(path))
        assert "contracts" in cfg and cfg["contracts"], f"{path} missing contracts"
        assert "explorer_hostname" in cfg or "explorer_hostname_env_var" in cfg


def test_contract_addresses_format():
    for path in config_paths():
        cfg = load_config(str(path))
        for addr in cfg.get("contracts", {}):
            assert (
                addr.startswith("0x") and len(addr) == 42
            ), f"Bad addr {addr} in {path}"


def test_ignore_values_are_known():
    for path in config_paths():
        binary_config = load_config(str(path)).get("bytecode_comparison") or {}
        BytecodeType.parse(binary_config.get("ignore"))
