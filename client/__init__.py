from client.session_client import ApiError, SessionClient, SessionExpired
from client.single_flight import SingleFlight

__all__ = ["ApiError", "SessionClient", "SessionExpired", "SingleFlight"]
