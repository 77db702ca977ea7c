"""
Logging filters.

Keeps signing keys out of log output.
"""

import logging
import re


class CredentialRedactionFilter(logging.Filter):
    """
    Security filter that redacts credentials from log messages.

    Redacts:
    - Private keys (64 hex chars, with or without 0x)
    - key=/secret=/password= style assignments
    - Long base64 strings

    Addresses (0x + 40 hex) are left alone.

    Usage:
        >>> handler = logging.StreamHandler()
        >>> handler.addFilter(CredentialRedactionFilter())
        >>> logger.addHandler(handler)
    """

    PRIVATE_KEY_PATTERN = re.compile(r'(?<![0-9a-fA-Fx])(?:0x)?[0-9a-fA-F]{64}(?![0-9a-fA-F])')
    SECRET_ASSIGNMENT_PATTERN = re.compile(
        r'((?:private_key|secret|password|key)["\']?\s*[:=]\s*["\']?)[a-zA-Z0-9+/=]{20,}["\']?',
        re.IGNORECASE
    )
    BASE64_SECRET_PATTERN = re.compile(r'[A-Za-z0-9+/]{40,}={0,2}')

    def filter(self, record: logging.LogRecord) -> bool:
        """
        Redact credentials from log record.

        Returns:
            Always True (record is never dropped, just sanitized)
        """
        if record.msg:
            record.msg = self._redact_credentials(str(record.msg))

        if record.args:
            if isinstance(record.args, dict):
                record.args = {
                    k: self._redact_credentials(str(v))
                    for k, v in record.args.items()
                }
            elif isinstance(record.args, tuple):
                record.args = tuple(
                    self._redact_credentials(str(arg))
                    for arg in record.args
                )

        if record.exc_text:
            record.exc_text = self._redact_credentials(record.exc_text)

        return True

    def _redact_credentials(self, text: str) -> str:
        if not text:
            return text

        text = self.PRIVATE_KEY_PATTERN.sub('0x[REDACTED]', text)
        text = self.SECRET_ASSIGNMENT_PATTERN.sub(r'\1[REDACTED]', text)

        def redact_base64(match):
            b64 = match.group(0)
            # hex-only runs are hashes/addresses already handled above
            if re.fullmatch(r'(?:0x)?[0-9a-fA-F]+', b64):
                return b64
            return b64[:8] + '...[REDACTED]'

        return self.BASE64_SECRET_PATTERN.sub(redact_base64, text)
