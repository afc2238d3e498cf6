import hashlib
import json
import os
import subprocess
import pytest

from replayscan.utils import compiler
from replayscan.utils.custom_exceptions import CompileError

LONG_VERSION = "0.8.24+commit.e11b9ed9"
BINARY = b"#!/bin/sh\n"
BUILD = {
    "path": f"solc-linux-amd64-v{LONG_VERSION}",
    "longVersion": LONG_VERSION,
    "sha256": "0x" + hashlib.sha256(BINARY).hexdigest(),
}


class FakeResponse:
    def __init__(self, payload=None, content=b""):
        self.payload = payload
        self.content = content

    def json(self):
        return self.payload


@pytest.fixture
def solc_bin(monkeypatch, tmp_path):
    fetched = []

    def fake_fetch(url, headers=None):
        fetched.append(url)
        if url.endswith("list.json"):
            return FakeResponse({"builds": [BUILD]})
        return FakeResponse(content=BINARY)

    list_solc_builds = compiler.list_solc_builds
    list_solc_builds.cache_clear()
    monkeypatch.setattr(compiler, "fetch", fake_fetch)
    monkeypatch.setattr(compiler, "solc_platform", lambda: "linux-amd64")
    monkeypatch.setattr(compiler, "SOLC_DIR", str(tmp_path))
    yield fetched
    list_solc_builds.cache_clear()


def test_ensure_compiler_downloads_once(solc_bin, tmp_path):
    path = compiler.ensure_compiler(LONG_VERSION)

    assert path == os.path.join(str(tmp_path), BUILD["path"])
    assert open(path, "rb").read() == BINARY
    assert os.access(path, os.X_OK)

    assert compiler.ensure_compiler(LONG_VERSION) == path
    downloads = [url for url in solc_bin if not url.endswith("list.json")]
    assert len(downloads) == 1


def test_ensure_compiler_unknown_version(solc_bin):
    with pytest.raises(CompileError, match="not published"):
        compiler.ensure_compiler("0.4.11+commit.68ef5810")


def test_ensure_compiler_checksum_mismatch(solc_bin, monkeypatch):
    bad_build = dict(BUILD, sha256="0x" + "00" * 32)
    monkeypatch.setattr(
        compiler, "list_solc_builds", lambda solc_os: {LONG_VERSION: bad_build}
    )

    with pytest.raises(CompileError, match="checksum mismatch"):
        compiler.ensure_compiler(LONG_VERSION)


def fake_solc(monkeypatch, output, seen_input=None):
    def run(cmd, input, **kwargs):
        if seen_input is not None:
            seen_input.append(json.loads(input))
        return subprocess.CompletedProcess(cmd, 0, stdout=json.dumps(output).encode())

    monkeypatch.setattr(compiler.subprocess, "run", run)


def test_run_solc_raises_on_errors(monkeypatch):
    fake_solc(
        monkeypatch,
        {
            "errors": [
                {"severity": "warning", "message": "unused variable"},
                {"severity": "error", "formattedMessage": "ParserError: expected ;"},
            ]
        },
    )

    with pytest.raises(CompileError, match="ParserError"):
        compiler.run_solc("solc", {})


def test_select_contract_by_name():
    output = {
        "contracts": {
            "contracts/Lido.sol": {"Lido": {"abi": []}},
            "contracts/lib/Math.sol": {"Math": {"abi": []}},
        }
    }

    assert compiler.select_contract(output, "Lido") == {"abi": []}
    with pytest.raises(CompileError, match="not found"):
        compiler.select_contract(output, "Vault")


def test_select_contract_ambiguous_name():
    output = {
        "contracts": {
            "a/Token.sol": {"Token": {}},
            "b/Token.sol": {"Token": {}},
        }
    }

    with pytest.raises(CompileError, match="a/Token.sol, b/Token.sol"):
        compiler.select_contract(output, "Token")


def test_compile_source_metadata_links_libraries(monkeypatch):
    monkeypatch.setattr(compiler, "ensure_compiler", lambda version: "/bin/solc")
    seen_input = []
    fake_solc(
        monkeypatch,
        {"contracts": {"Vault.sol": {"Vault": {"abi": ["vault"]}}}},
        seen_input,
    )
    solc_input = {"language": "Solidity", "sources": {}, "settings": {}}
    contract_code = {
        "name": "Vault",
        "compiler": "v" + LONG_VERSION,
        "solcInput": solc_input,
    }
    libraries = {"Math.sol": {"Math": "0x0000000000000000000000000000000000000042"}}

    contract = compiler.compile_source_metadata(contract_code, libraries)

    assert contract == {"abi": ["vault"]}
    assert seen_input[0]["settings"]["libraries"] == libraries
    assert "libraries" not in solc_input["settings"]
