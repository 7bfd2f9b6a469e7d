"""
Unit tests for security utilities
"""
import pytest
from unittest.mock import patch

from educator.core.security_utils import (
    audit_log,
    generate_secure_token,
    mask_secret_tokens,
    sanitize_input,
    sanitize_log_data,
)


class TestDataMasking:
    """Test masking of sensitive values before logging"""

    def test_mask_secret_tokens(self):
        """Test OpenAI keys inside free text are truncated"""
        message = "Incorrect API key provided: sk-proj1234567890abcdef"
        masked = mask_secret_tokens(message)

        assert "1234567890abcdef" not in masked
        assert masked == "Incorrect API key provided: sk-proj***"
        assert mask_secret_tokens("no secrets here") == "no secrets here"
        assert mask_secret_tokens("") == ""

    @patch('educator.core.security_utils.settings')
    def test_sanitize_log_data(self, mock_settings):
        """Test log data sanitization"""
        mock_settings.PII_MASKING_ENABLED = True

        data = {
            "password": "secret123",
            "api_key": "sk_test_123456",
            "authorization": "Bearer token123456789",
            "detail": "upstream said sk-abcd1234efgh5678",
            "filename": "question.webm",
            "headers": {"x-api-key": "short", "cookie": "session=abcdefghijkl"},
        }

        sanitized = sanitize_log_data(data)

        assert sanitized["password"] == "***REDACTED***"
        assert sanitized["api_key"] == "***REDACTED***"
        assert sanitized["authorization"] == "Bearer tok***"
        assert sanitized["detail"] == "upstream said sk-abcd***"
        assert sanitized["filename"] == "question.webm"
        assert sanitized["headers"]["x-api-key"] == "***"
        assert sanitized["headers"]["cookie"] == "session=ab***"

    @patch('educator.core.security_utils.settings')
    def test_sanitize_log_data_disabled(self, mock_settings):
        """Test log data when masking is disabled"""
        mock_settings.PII_MASKING_ENABLED = False

        data = {"api_key": "sk-abcd1234efgh5678", "password": "secret"}

        assert sanitize_log_data(data) == data


class TestTokenGeneration:
    """Test turn id generation"""

    def test_generate_secure_token(self):
        """Test secure token generation"""
        token1 = generate_secure_token(32)
        token2 = generate_secure_token(32)

        assert len(token1) == 32
        assert token1 != token2
        assert token1.isalnum()
        assert len(generate_secure_token(16)) == 16


class TestInputSanitization:
    """Test user message cleaning"""

    def test_sanitize_input(self):
        """Test control characters and length"""
        assert sanitize_input("  What is gravity?  ") == "What is gravity?"
        assert sanitize_input("line one\nline two") == "line one\nline two"
        assert sanitize_input("bad\x00byte\x07s") == "badbytes"
        assert sanitize_input("x" * 5000) == "x" * 4000
        assert sanitize_input("abc", max_length=2) == "ab"
        assert sanitize_input("") == ""
        assert sanitize_input(None) == ""

    @patch('educator.core.security_utils.logger')
    def test_truncation_is_logged(self, mock_logger):
        """Test overlong input is cut and reported"""
        assert sanitize_input("y" * 4500) == "y" * 4000

        mock_logger.warning.assert_called_once_with("Input truncated from 4500 to 4000 characters")

    @patch('educator.core.security_utils.logger')
    def test_short_input_not_reported(self, mock_logger):
        sanitize_input("What is gravity?")

        mock_logger.warning.assert_not_called()


class TestAuditLogging:
    """Test audit logging decorator"""

    @patch('educator.core.security_utils.settings')
    @patch('educator.core.security_utils.logger')
    async def test_audit_log_async_success(self, mock_logger, mock_settings):
        """Test audit logging for async function success"""
        mock_settings.AUDIT_LOG_ENABLED = True

        @audit_log("chat_turn")
        async def handler(message: str):
            return {"ok": message}

        result = await handler(message="hi")

        assert result == {"ok": "hi"}
        log_message = mock_logger.info.call_args[0][0]
        assert "AUDIT: chat_turn" in log_message
        assert "Status: SUCCESS" in log_message

    @patch('educator.core.security_utils.settings')
    @patch('educator.core.security_utils.logger')
    async def test_audit_log_async_failure_masks_keys(self, mock_logger, mock_settings):
        """Test failures are logged with keys masked and re-raised"""
        mock_settings.AUDIT_LOG_ENABLED = True

        @audit_log("voice_chat_turn")
        async def handler():
            raise RuntimeError("bad key sk-abcd1234efgh5678")

        with pytest.raises(RuntimeError):
            await handler()

        log_message = mock_logger.error.call_args[0][0]
        assert "Status: FAILED" in log_message
        assert "sk-abcd***" in log_message
        assert "1234efgh5678" not in log_message

    @patch('educator.core.security_utils.settings')
    @patch('educator.core.security_utils.logger')
    def test_audit_log_sync_failure(self, mock_logger, mock_settings):
        """Test audit logging for sync function failure"""
        mock_settings.AUDIT_LOG_ENABLED = True

        @audit_log("list_voices")
        def handler():
            raise ValueError("Test error")

        with pytest.raises(ValueError):
            handler()

        log_message = mock_logger.error.call_args[0][0]
        assert "AUDIT: list_voices" in log_message
        assert "Error: Test error" in log_message

    @patch('educator.core.security_utils.settings')
    @patch('educator.core.security_utils.logger')
    def test_audit_log_disabled(self, mock_logger, mock_settings):
        """Test audit logging when disabled"""
        mock_settings.AUDIT_LOG_ENABLED = False

        @audit_log("list_voices")
        def handler():
            return "success"

        assert handler() == "success"
        mock_logger.info.assert_not_called()
