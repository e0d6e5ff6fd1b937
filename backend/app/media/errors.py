"""Media errors raised by the service layer and mapped to HTTP status in routes."""


class MediaNotFoundError(LookupError):
    """No media record exists for the given id."""

    def __init__(self, media_id: int) -> None:
        super().__init__(f"Media not found: {media_id}")
        self.media_id = media_id
