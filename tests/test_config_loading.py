import json
import yaml
import pytest
from pathlib import Path

from replayscan.utils.common import load_config

FIXTURES_DIR = Path(__file__).parent / "fixtures"

FULL_JSON_FIXTURE = FIXTURES_DIR / "full_config.json"
FULL_YAML_FIXTURE = FIXTURES_DIR / "full_config.yaml"

ALL_TOP_LEVEL_KEYS = {
    "contracts",
    "explorer_hostname",
    "explorer_token_env_var",
    "explorer_hostname_env_var",
    "explorer_chain_id",
    "bytecode_comparison",
    "fail_on_bytecode_comparison_error",
}

ALL_BYTECODE_COMPARISON_KEYS = {
    "hardhat_config_name",
    "constructor_args",
    "constructor_calldata",
    "constructor_args_path",
    "libraries",
    "artifacts",
    "block",
    "ignore",
}

SAMPLE_CONFIG = {
    "contracts": {"0x0000000000000000000000000000000000000001": "TestContract"},
    "explorer_hostname": "api.etherscan.io",
    "explorer_token_env_var": "ETHERSCAN_TOKEN",
    "bytecode_comparison": {
        "constructor_args": {"0x0000000000000000000000000000000000000001": ["1"]},
        "block": {"0x0000000000000000000000000000000000000001": 100},
    },
}


def test_load_json_config(tmp_path):
    path = tmp_path / "config.json"
    path.write_text(json.dumps(SAMPLE_CONFIG))
    assert load_config(str(path)) == SAMPLE_CONFIG


def test_load_yaml_config(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(yaml.dump(SAMPLE_CONFIG))
    assert load_config(str(path)) == SAMPLE_CONFIG


def test_load_yml_config(tmp_path):
    path = tmp_path / "config.yml"
    path.write_text(yaml.dump(SAMPLE_CONFIG))
    assert load_config(str(path)) == SAMPLE_CONFIG


def test_unsupported_extension_raises(tmp_path):
    path = tmp_path / "config.toml"
    path.write_text("")
    with pytest.raises(ValueError, match="Unsupported config file extension"):
        load_config(str(path))


def test_case_insensitive_extension(tmp_path):
    yaml_path = tmp_path / "config.YAML"
    yaml_path.write_text(yaml.dump(SAMPLE_CONFIG))
    assert load_config(str(yaml_path)) == SAMPLE_CONFIG

    json_path = tmp_path / "config.JSON"
    json_path.write_text(json.dumps(SAMPLE_CONFIG))
    assert load_config(str(json_path)) == SAMPLE_CONFIG


def test_malformed_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("contracts:\n  bad: [unterminated\n")
    with pytest.raises(yaml.YAMLError):
        load_config(str(path))


def test_malformed_json_raises(tmp_path):
    path = tmp_path / "config.json"
    path.write_text('{"contracts": {trailing comma,}}')
    with pytest.raises(json.JSONDecodeError):
        load_config(str(path))


def test_empty_yaml_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text("# just a comment\n")
    with pytest.raises(ValueError, match="empty or contains only comments"):
        load_config(str(path))


def test_yaml_unquoted_hex_address_raises(tmp_path):
    """PyYAML reads unquoted 0x... keys as ints, that must not pass silently."""
    path = tmp_path / "config.yaml"
    path.write_text(
        """\
contracts:
  0x00000000000000000000000000000000000000AB: TestContract
explorer_hostname: api.etherscan.io
"""
    )
    with pytest.raises(ValueError, match="parsed as integer"):
        load_config(str(path))


@pytest.mark.parametrize(
    "section",
    ["constructor_args", "constructor_calldata", "constructor_args_path", "artifacts", "block"],
)
def test_bytecode_comparison_unquoted_hex_raises(tmp_path, section):
    path = tmp_path / "config.yaml"
    path.write_text(
        f"""\
contracts:
  "0x0000000000000000000000000000000000000001": TestContract
explorer_hostname: api.etherscan.io
bytecode_comparison:
  {section}:
    0x00000000000000000000000000000000000000AB: "1"
"""
    )
    with pytest.raises(ValueError, match=f"bytecode_comparison.{section}"):
        load_config(str(path))


def test_bytecode_comparison_library_unquoted_hex_raises(tmp_path):
    path = tmp_path / "config.yaml"
    path.write_text(
        """\
contracts:
  "0x0000000000000000000000000000000000000001": TestContract
explorer_hostname: api.etherscan.io
bytecode_comparison:
  libraries:
    "contracts/Foo.sol":
      MyLib: 0x00000000000000000000000000000000000000AB
"""
    )
    with pytest.raises(ValueError, match="bytecode_comparison.libraries"):
        load_config(str(path))


def test_full_fixtures_load_every_key():
    for fixture in (FULL_JSON_FIXTURE, FULL_YAML_FIXTURE):
        result = load_config(str(fixture))
        assert ALL_TOP_LEVEL_KEYS <= set(result.keys())
        assert ALL_BYTECODE_COMPARISON_KEYS <= set(result["bytecode_comparison"])


def test_full_fixtures_produce_identical_dicts():
    assert load_config(str(FULL_JSON_FIXTURE)) == load_config(str(FULL_YAML_FIXTURE))


def test_full_fixture_nested_types():
    result = load_config(str(FULL_YAML_FIXTURE))
    binary_config = result["bytecode_comparison"]

    for addr, name in result["contracts"].items():
        assert isinstance(addr, str) and addr.startswith("0x"), f"bad address {addr!r}"
        assert isinstance(name, str)

    assert result["explorer_chain_id"] == 1
    assert result["fail_on_bytecode_comparison_error"] is True

    for args in binary_config["constructor_args"].values():
        assert all(isinstance(arg, str) for arg in args)

    for block in binary_config["block"].values():
        assert isinstance(block, int)

    assert binary_config["ignore"] == "creation"
