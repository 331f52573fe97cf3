"""Tests for relflow.core.errors module."""

from relflow.core.errors import ErrorCode


class TestErrorCodeValues:
    def test_stable_exit_codes(self) -> None:
        assert ErrorCode.OK == 0
        assert ErrorCode.RESOLUTION_ERROR == 1
        assert ErrorCode.BUILD_ERROR == 2
        assert ErrorCode.PUBLISH_ERROR == 3
        assert ErrorCode.CONFIG_ERROR == 4
        assert ErrorCode.CANCELLED == 130


class TestErrorCodeUsage:
    def test_can_use_as_int(self) -> None:
        code: int = ErrorCode.PUBLISH_ERROR
        assert code == 3

    def test_str_is_readable(self) -> None:
        assert str(ErrorCode.BUILD_ERROR) == "build error"
