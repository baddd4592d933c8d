"""
Custom exceptions for the ratings system with user-friendly error messages.
"""

class LadderException(Exception):
    """Base exception for ratings-related errors."""
    def __init__(self, message: str, user_message: str = None):
        super().__init__(message)
        self.user_message = user_message or message

class RoomNotFoundError(LadderException):
    """Raised when a room document does not exist."""
    def __init__(self, room_id: str):
        super().__init__(
            f"Room '{room_id}' not found",
            "Room not found. It may have been deleted."
        )
        self.room_id = room_id

class PlayerNotFoundError(LadderException):
    """Raised when one or more player profiles do not exist."""
    def __init__(self, player_ids):
        ids = ", ".join(str(pid) for pid in player_ids)
        super().__init__(
            f"Players not found: {ids}",
            "One or more players could not be found."
        )
        self.player_ids = list(player_ids)

class MatchValidationError(LadderException):
    """Raised when submitted match data is invalid."""
    def __init__(self, reason: str):
        super().__init__(
            f"Invalid match data: {reason}",
            reason
        )

class DocumentNotFoundError(LadderException):
    """Raised when an update targets a document that does not exist."""
    def __init__(self, collection: str, doc_id: str):
        super().__init__(
            f"No document to update: {collection}/{doc_id}",
            "Database error occurred. Please try again later."
        )
        self.collection = collection
        self.doc_id = doc_id

class BatchLimitError(LadderException):
    """Raised when a single write batch exceeds the store's operation cap."""
    def __init__(self, limit: int):
        super().__init__(
            f"Write batch exceeds the store limit of {limit} operations",
            "Database error occurred. Please try again later."
        )
        self.limit = limit

class RecalculationError(LadderException):
    """Raised when a sport recalculation fails part way through."""
    def __init__(self, sport: str, details: str = None):
        super().__init__(
            f"Recalculation failed for {sport}: {details}",
            f"Recalculation of {sport} failed; already committed batches remain applied."
        )
        self.sport = sport
