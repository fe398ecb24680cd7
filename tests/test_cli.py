"""Tests for cli/request_delegation.py — argument parsing and output."""

from __future__ import annotations

import argparse
import json
from decimal import Decimal

import pytest

from cli.request_delegation import _parse_arg, _run, _state_summary, build_parser
from config.settings import settings
from models import DelegationRequest, DelegationSignature
from models.state import DelegationState

from fakes import ACCOUNT, CONTRACT


class TestParser:

    def test_quote_command(self) -> None:
        args = build_parser().parse_args([
            "quote", "--contract", CONTRACT, "--function", "transfer",
            "--arg", '"0xabc"', "--arg", "100", "--account", ACCOUNT,
        ])
        assert args.command == "quote"
        assert args.contract == CONTRACT
        assert args.arg == ['"0xabc"', "100"]
        assert args.private_key is None

    def test_missing_contract_is_usage_error(self) -> None:
        with pytest.raises(SystemExit) as excinfo:
            build_parser().parse_args(["sign", "--function", "transfer"])
        assert excinfo.value.code == 2

    def test_timeout_is_float(self) -> None:
        args = build_parser().parse_args([
            "sign", "--contract", CONTRACT, "--function", "f", "--timeout", "2.5",
        ])
        assert args.timeout == 2.5


class TestParseArg:

    @pytest.mark.parametrize("raw,expected", [
        ("100", 100),
        ('"0xabc"', "0xabc"),
        ("[1, 2]", [1, 2]),
        ("true", True),
        ("0xabc", "0xabc"),
        ("alice", "alice"),
    ])
    def test_values(self, raw, expected) -> None:
        assert _parse_arg(raw) == expected


class TestStateSummary:

    def test_empty_state(self) -> None:
        summary = _state_summary(DelegationState())
        assert summary["approvedDelegationRequest"] is None
        assert summary["signature"] is None
        assert summary["warning"] == "Enter a contract address"

    def test_approved_and_signed(self) -> None:
        request = DelegationRequest.model_validate({
            "id": "r1",
            "fee": "1.5",
            "signatureOptions": [{"standard": "eth_personalSign", "dataToSign": "0x01"}],
        })
        state = DelegationState(
            approved_delegation_request=request,
            delegation_signature=DelegationSignature(
                request_id="r1", standard="eth_personalSign", signature="0xsig",
            ),
        )
        summary = _state_summary(state)
        json.dumps(summary)
        assert summary["approvedDelegationRequest"]["id"] == "r1"
        assert Decimal(summary["approvedDelegationRequest"]["fee"]) == Decimal("1.5")
        assert summary["signature"]["requestId"] == "r1"


class TestRun:

    @pytest.mark.asyncio
    async def test_sign_without_key_is_usage_error(self, tmp_path, monkeypatch) -> None:
        monkeypatch.setattr(settings, "SIGNER_PRIVATE_KEY", "")
        path = tmp_path / "backends.json"
        path.write_text("[]", encoding="utf-8")
        args = argparse.Namespace(
            command="sign", backends=str(path), private_key=None, account=ACCOUNT,
        )
        assert await _run(args) == 2

    @pytest.mark.asyncio
    async def test_no_backends_file_is_usage_error(self, monkeypatch) -> None:
        monkeypatch.setattr(settings, "BACKENDS_FILE", "")
        args = argparse.Namespace(command="quote", backends=None)
        assert await _run(args) == 2

    @pytest.mark.asyncio
    async def test_quote_with_no_backends_fails(self, tmp_path, capsys) -> None:
        path = tmp_path / "backends.json"
        path.write_text("[]", encoding="utf-8")
        args = build_parser().parse_args([
            "quote", "--contract", CONTRACT, "--function", "transfer",
            "--account", ACCOUNT, "--backends", str(path),
        ])
        assert await _run(args) == 1
        output = json.loads(capsys.readouterr().out)
        assert output["approvedDelegationRequest"] is None
        assert "no backend responded" in output["backendWarningMessage"]
