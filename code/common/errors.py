# =============================================================================
#  Copycord
#  Copyright (C) 2025 github.com/Copycord
#
#  This source code is released under the GNU Affero General Public License
#  version 3.0. A copy of the license is available at:
#  https://www.gnu.org/licenses/agpl-3.0.en.html
# =============================================================================


class RelayError(Exception):
    """Base class for every error raised by the relay store and services."""


class NotFound(RelayError):
    def __init__(self, kind: str, entity_id):
        self.kind = kind
        self.entity_id = entity_id
        super().__init__(f"{kind} {entity_id} not found")


class Conflict(RelayError):
    """
    A uniqueness rule was violated. `existing_id` names the row that already
    holds the slot when it is known.
    """

    def __init__(self, message: str, existing_id=None):
        self.existing_id = existing_id
        super().__init__(message)


class DuplicateConnection(Conflict):
    def __init__(self, existing_id: int):
        super().__init__(f"connection already exists (id {existing_id})", existing_id)


class BannedUser(RelayError):
    def __init__(self, user_id: int):
        self.user_id = user_id
        super().__init__(f"user {user_id} is banned")


class WebhookMismatch(RelayError):
    def __init__(self, webhook_id: int, webhook_target: int, requested_target: int):
        self.webhook_id = webhook_id
        self.webhook_target = webhook_target
        self.requested_target = requested_target
        super().__init__(
            f"webhook {webhook_id} targets channel {webhook_target}, "
            f"not {requested_target}"
        )


class InvalidConnection(RelayError):
    pass


class InvalidMention(RelayError):
    pass


class ForeignKeyViolation(RelayError):
    pass


class StoreUnavailable(RelayError):
    """Transient store failure (lock timeout, busy database). Safe to retry."""


class Internal(RelayError):
    pass
