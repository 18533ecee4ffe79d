"""
Execution Result Tests
======================
"""

from src.shared.execution.execution_result import (
    ErrorCode,
    ExecutionStatus,
    failure_result,
    success_result,
)


class TestExecutionResult:

    def test_success_defaults_signatures_to_primary(self):
        result = success_result("sig1", "JUPITER", quoted_out_amount=42)

        assert result.success
        assert result.status == ExecutionStatus.SUCCESS
        assert result.signatures == ["sig1"]
        assert result.quoted_out_amount == 42

    def test_failure_never_carries_signatures(self):
        result = failure_result(ErrorCode.QUOTE_UNAVAILABLE, "no route", "JUPITER", signatures=["x"])

        assert not result.success
        assert result.tx_signature is None
        assert result.signatures == []

    def test_to_dict(self):
        data = failure_result(ErrorCode.BUNDLE_TIMEOUT, "slow", "JITO").to_dict()

        assert data["error_code"] == "BUNDLE_TIMEOUT"
        assert data["venue"] == "JITO"
        assert data["success"] is False
