INVALID_CREDENTIALS_MESSAGE = "Error 400: Invalid API Key. Please check your .env file and ensure it is active."
RETRIES_EXHAUSTED_MESSAGE = "Error: The AI service failed to respond after multiple retries."


class InvalidCredentials(Exception):
    def __init__(self):
        super().__init__(INVALID_CREDENTIALS_MESSAGE)


class RetriesExhausted(Exception):
    def __init__(self, attempts: int):
        super().__init__(RETRIES_EXHAUSTED_MESSAGE)
        self.attempts = attempts


class EmptyResponse(Exception):
    """The provider answered without raising but the text was blank."""

    def __init__(self):
        super().__init__("empty response from AI service")
