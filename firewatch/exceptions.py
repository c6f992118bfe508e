"""Exception types for Fire Watch.

Library errors (aiohttp, GPIO, subprocess) are translated into these at the
client boundary so the control loop only has to know about one hierarchy.
"""


class FireWatchError(Exception):
    """Base class for all Fire Watch errors."""


class HardwareError(FireWatchError):
    """GPIO, sensor or ADC hardware could not be initialized."""


class CloudError(FireWatchError):
    """Cloud telemetry store rejected a request or was unreachable."""


class CloudAuthError(CloudError):
    """Cloud sign-in handshake failed."""


class ClassifierError(FireWatchError):
    """Remote classifier was unavailable or returned an unusable verdict."""


class NotificationError(FireWatchError):
    """SMS or voice notification could not be delivered."""
