"""
Security utilities for log sanitization, tokens and input cleaning
"""
import asyncio
import re
import secrets
import string
import time
from functools import wraps
from typing import Any, Callable, Dict, Optional
import logging

from educator.core.config import settings

logger = logging.getLogger(__name__)

# Header/field names whose values never reach the logs
REDACTED_FIELDS = {'password', 'token', 'api_key', 'secret', 'openai_api_key'}
PARTIAL_FIELDS = {'authorization', 'cookie', 'x-api-key'}

_BEARER_PATTERN = re.compile(r'(sk-[A-Za-z0-9_\-]{4})[A-Za-z0-9_\-]+')


def mask_secret_tokens(text: str) -> str:
    """
    Mask OpenAI style secret keys embedded in free text

    Args:
        text: Text that may contain a key (e.g. an upstream error message)

    Returns:
        Text with keys truncated to their prefix
    """
    if not text:
        return text
    return _BEARER_PATTERN.sub(r'\1***', text)


def sanitize_log_data(data: Dict[str, Any]) -> Dict[str, Any]:
    """
    Sanitize sensitive data for logging

    Args:
        data: Dictionary containing potentially sensitive data

    Returns:
        Sanitized dictionary safe for logging
    """
    if not settings.PII_MASKING_ENABLED:
        return data

    sanitized = data.copy()

    for key, value in data.items():
        if value is None:
            continue

        key_lower = key.lower()
        if isinstance(value, dict):
            sanitized[key] = sanitize_log_data(value)
        elif key_lower in REDACTED_FIELDS:
            sanitized[key] = '***REDACTED***'
        elif key_lower in PARTIAL_FIELDS and isinstance(value, str):
            # Show only first few characters
            sanitized[key] = value[:10] + '***' if len(value) > 10 else '***'
        elif isinstance(value, str):
            sanitized[key] = mask_secret_tokens(value)

    return sanitized


def generate_secure_token(length: int = 32) -> str:
    """
    Generate a cryptographically secure random token

    Args:
        length: Length of the token

    Returns:
        Secure random token string
    """
    alphabet = string.ascii_letters + string.digits
    return ''.join(secrets.choice(alphabet) for _ in range(length))


def _audit(action: str, started: float, error: Optional[Exception] = None):
    if not settings.AUDIT_LOG_ENABLED:
        return
    outcome = f"AUDIT: {action} | Duration: {time.perf_counter() - started:.3f}s"
    if error is None:
        logger.info(f"{outcome} | Status: SUCCESS")
    else:
        logger.error(f"{outcome} | Status: FAILED | Error: {mask_secret_tokens(str(error))}")


# Audit Logging Decorator
def audit_log(action: str):
    """
    Decorator to log the outcome and duration of an endpoint

    Args:
        action: Description of the action being performed
    """
    def decorator(func: Callable) -> Callable:
        if asyncio.iscoroutinefunction(func):
            @wraps(func)
            async def async_wrapper(*args, **kwargs):
                started = time.perf_counter()
                try:
                    result = await func(*args, **kwargs)
                except Exception as e:
                    _audit(action, started, e)
                    raise
                _audit(action, started)
                return result
            return async_wrapper

        @wraps(func)
        def sync_wrapper(*args, **kwargs):
            started = time.perf_counter()
            try:
                result = func(*args, **kwargs)
            except Exception as e:
                _audit(action, started, e)
                raise
            _audit(action, started)
            return result
        return sync_wrapper

    return decorator


# Input Sanitization
def sanitize_input(text: str, max_length: int = 4000) -> str:
    """
    Sanitize user input before it reaches the generation service

    Args:
        text: Input text to sanitize
        max_length: Maximum allowed length

    Returns:
        Sanitized text
    """
    if not text:
        return ""

    if len(text) > max_length:
        logger.warning(f"Input truncated from {len(text)} to {max_length} characters")
        text = text[:max_length]

    # Remove null bytes
    text = text.replace('\x00', '')

    # Remove control characters except newlines and tabs
    text = ''.join(char for char in text if char == '\n' or char == '\t' or not ord(char) < 32)

    return text.strip()
