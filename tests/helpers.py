"""Constants and test doubles shared by the test modules."""
import re
from datetime import datetime, timezone

from core.notifier import NotifyResult

# Passwords that satisfy the default policy
PASSWORD = "Str0ng!Passw0rd"
OTHER_PASSWORD = "An0ther#Secret9"
THIRD_PASSWORD = "Th1rd$Kestrel42"

# Whole second so token iat/exp line up with clock arithmetic
START = datetime(2026, 3, 2, 12, 0, 0, tzinfo=timezone.utc)


class RecordingNotifier:
    """Notifier double that remembers every message."""

    def __init__(self):
        self.sent = []
        self.fail_for = set()

    def send(self, recipient, subject, body):
        if recipient in self.fail_for:
            return NotifyResult(ok=False, error="mailbox_unavailable")
        self.sent.append((recipient, subject, body))
        return NotifyResult(ok=True)

    def subjects(self):
        return [subject for _, subject, _ in self.sent]


def bearer(token):
    return {"Authorization": f"Bearer {token}"}


def reset_token_from(body):
    """Pull the token out of a password reset mail."""
    match = re.search(r"token=([0-9a-f-]{36})", body)
    assert match, body
    return match.group(1)
